from datetime import date
from typing import List

import numpy as np

from market_powercap.providers.base import (
    PERIOD_MINUTES,
    MarketDataPoint,
    MarketDataProvider,
    day_periods,
)


class MockProvider(MarketDataProvider):
    """Generates a synthetic, day-periodic market profile.

    Volume follows a daily sine peaking around noon with a faster ripple on top,
    and price moves inversely to volume. The profile is identical for every day.
    """

    def get_name(self) -> str:
        return "Mock"

    def fetch_data(self, day: date) -> List[MarketDataPoint]:
        periods = day_periods()
        time_of_day = np.arange(len(periods)) * PERIOD_MINUTES / 60.0

        # Higher volume during the day, lower at night
        base_volume = 70.0 + 30.0 * np.sin((time_of_day - 6) * np.pi / 12)
        volume_noise = 10.0 * np.sin(time_of_day * np.pi / 3)
        volumes = np.maximum(20.0, base_volume + volume_noise)

        base_price = 120.0 - (volumes - 50.0) * 0.8
        price_noise = 20.0 * np.sin(time_of_day * np.pi / 2)
        prices = np.maximum(10.0, base_price + price_noise)

        return [
            MarketDataPoint(period=period, volume=float(volume), price=float(price))
            for period, volume, price in zip(
                periods, np.round(volumes, 1), np.round(prices, 2)
            )
        ]
