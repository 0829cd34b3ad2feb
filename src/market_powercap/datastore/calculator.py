"""This module maps the time of day, and optionally the market data, to a target power.

Two interchangeable strategies implement the `PowerCalculator` interface:

- `TimeCurveCalculator` follows a deterministic daily curve,
  `max_source * max(0, sin(pi/16 * (t - phase_offset))) ** alpha`.
- `MarketBasedCalculator` applies a rule of three between the volume of the
  current market period and the highest volume of the day.

Both are pure: every input is passed explicitly, so that a result only depends
on the reference power, the clock value and the dataset. A result of 0 tells
the controller that it should fall back to the configured floor.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from market_powercap.config import Config, PowerStrategy
from market_powercap.providers.base import (
    PERIOD_MINUTES,
    MarketDataPoint,
    period_label,
)


def get_current_period(current_time: datetime) -> str:
    """Returns the label of the 15-minute market period containing `current_time`.

    Args:
        current_time: A wall-clock time, already expressed in the market timezone.

    Returns:
        The period label, e.g. "12:00-12:15", or "23:45-24:00" at the end of the day.
    """
    return period_label(current_time.hour, current_time.minute // PERIOD_MINUTES)


def find_period(
    data: Sequence[MarketDataPoint], period: str
) -> Optional[MarketDataPoint]:
    """Returns the first point of `data` labelled `period`, or None."""
    for point in data:
        if point.period == period:
            return point
    return None


def max_volume(data: Sequence[MarketDataPoint]) -> float:
    """Returns the highest volume of `data`, 0.0 when no volume is positive."""
    return max((point.volume for point in data if point.volume > 0), default=0.0)


class PowerCalculator(ABC):
    """Interface of a power calculation strategy."""

    @abstractmethod
    def calculate_power(
        self,
        max_source: float,
        current_time: datetime,
        data: Sequence[MarketDataPoint],
        day_max_volume: Optional[float] = None,
    ) -> int:
        """Calculates the target power for a moment of the day.

        Args:
            max_source: The reference maximum power in microwatts.
            current_time: The wall-clock time in the market timezone.
            data: The market data of the day, possibly empty.
            day_max_volume: The highest volume of `data` when already known.

        Returns:
            The target power in microwatts, 0 when no target can be derived.
        """


class TimeCurveCalculator(PowerCalculator):
    """Follows a sine-shaped daily power curve.

    With the default phase offset of 4 hours, the curve is positive between
    04:00 and 20:00 and peaks at 12:00. Outside that half-cycle the power is 0.
    """

    def __init__(self, alpha: float = 4.0, phase_offset: float = 4.0) -> None:
        self.alpha = alpha
        self.phase_offset = phase_offset

    def calculate_power(
        self,
        max_source: float,
        current_time: datetime,
        data: Sequence[MarketDataPoint] = (),
        day_max_volume: Optional[float] = None,
    ) -> int:
        hour_fraction = current_time.hour + current_time.minute / 60.0
        sine = np.sin(np.pi / 16 * (hour_fraction - self.phase_offset))
        # Negative half-cycle clamps to 0 whatever the parity of alpha
        power = max_source * np.power(max(0.0, float(sine)), self.alpha)
        return int(round(power))


class MarketBasedCalculator(PowerCalculator):
    """Scales the reference power by the relative market volume of the current period."""

    def calculate_power(
        self,
        max_source: float,
        current_time: datetime,
        data: Sequence[MarketDataPoint],
        day_max_volume: Optional[float] = None,
    ) -> int:
        """Applies the rule of three `power / max_source = volume / max_volume`.

        Args:
            max_source: The reference maximum power in microwatts.
            current_time: The wall-clock time in the market timezone.
            data: The market data of the day.
            day_max_volume: The highest volume of the day when already known,
                            computed from `data` otherwise.

        Returns:
            The rounded target power, or 0 when the current period is missing,
            has no volume, or the day has no positive volume.
        """
        point = find_period(data, get_current_period(current_time))
        if point is None or point.volume <= 0:
            return 0

        if day_max_volume is None:
            day_max_volume = max_volume(data)
        if day_max_volume <= 0:
            return 0

        return int(round(point.volume / day_max_volume * max_source))


def create_calculator(config: Config) -> PowerCalculator:
    """Builds the calculator selected by the configured power strategy."""
    if config.power_strategy == PowerStrategy.TIME_CURVE:
        return TimeCurveCalculator(config.alpha, config.phase_offset)
    return MarketBasedCalculator()
