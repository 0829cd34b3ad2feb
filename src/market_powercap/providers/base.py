"""This module defines the market data model and the provider interface.

A market day is split into 96 periods of 15 minutes labelled "HH:MM-HH:MM".
Periods ending on the hour end at the next hour ("10:45-11:00") and the last
period of the day is labelled "23:45-24:00".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import List

PERIOD_MINUTES = 15
PERIODS_PER_HOUR = 60 // PERIOD_MINUTES
PERIODS_PER_DAY = 24 * PERIODS_PER_HOUR


@dataclass(frozen=True)
class MarketDataPoint:
    """One market period of a day.

    Attributes:
        period: The period label, e.g. "12:00-12:15".
        volume: The traded volume in MWh (non-negative).
        price: The clearing price in EUR/MWh.
    """

    period: str
    volume: float
    price: float


def period_label(hour: int, quarter: int) -> str:
    """Returns the label of the `quarter`-th 15-minute period of `hour`.

    Args:
        hour: The hour of the day, 0 to 23.
        quarter: The period index within the hour, 0 to 3.

    Returns:
        The period label, "23:45-24:00" for the last period of the day.
    """
    start_minute = quarter * PERIOD_MINUTES
    end_minute = start_minute + PERIOD_MINUTES

    if end_minute < 60:
        return f"{hour:02d}:{start_minute:02d}-{hour:02d}:{end_minute:02d}"
    if hour == 23:
        return "23:45-24:00"
    return f"{hour:02d}:{start_minute:02d}-{hour + 1:02d}:00"


def normalize_period(label: str) -> str:
    """Returns `label` without spaces, with a period ending at midnight ending at "24:00".

    Market sites label the last period of the day "23:45 - 00:00"; it is stored
    and looked up as "23:45-24:00".
    """
    label = label.replace(" ", "")
    start, separator, end = label.partition("-")
    if separator and end == "00:00" and start != "00:00":
        return f"{start}-24:00"
    return label


def day_periods() -> List[str]:
    """Returns the 96 period labels of a day in chronological order."""
    return [
        period_label(hour, quarter)
        for hour in range(24)
        for quarter in range(PERIODS_PER_HOUR)
    ]


class MarketDataProvider(ABC):
    """Abstract base class for a source of daily market data.

    Implementations are interchangeable: the data store only relies on the
    three methods below.
    """

    @abstractmethod
    def get_name(self) -> str:
        """Returns the stable identifier of the provider."""

    @abstractmethod
    def fetch_data(self, day: date) -> List[MarketDataPoint]:
        """Produces the market data for a delivery day.

        Args:
            day: The delivery day.

        Returns:
            The ordered market data points of the day.

        Raises:
            FetchError: If the data cannot be produced.
        """

    def get_data_path(self, day: date) -> str:
        """Returns the file name under which the data of `day` is stored."""
        return f"{self.get_name().lower()}_data_{day.isoformat()}.csv"
