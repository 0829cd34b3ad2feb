from datetime import date
from typing import List, Optional, Sequence

from market_powercap.providers.base import MarketDataPoint, MarketDataProvider, day_periods


class StaticProvider(MarketDataProvider):
    """Serves a fixed dataset, whatever the requested day.

    Without explicit data, a default profile is used where the volume grows by
    2 MWh per hour until noon and decreases symmetrically afterwards.
    """

    def __init__(self, data: Optional[Sequence[MarketDataPoint]] = None) -> None:
        self._data = list(data) if data is not None else _default_data()

    def get_name(self) -> str:
        return "Static"

    def fetch_data(self, day: date) -> List[MarketDataPoint]:
        return list(self._data)

    def set_data(self, data: Sequence[MarketDataPoint]) -> None:
        """Replaces the served dataset."""
        self._data = list(data)


def _default_data() -> List[MarketDataPoint]:
    data = []
    for index, period in enumerate(day_periods()):
        hour = index // 4
        volume = 30.0 + hour * 2 if hour <= 12 else 30.0 + (24 - hour) * 2
        data.append(MarketDataPoint(period=period, volume=volume, price=120.0 - volume))
    return data
