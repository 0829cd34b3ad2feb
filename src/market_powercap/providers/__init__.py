"""
The `providers` module supplies the daily market data that drives the
market-proportional power strategy.

- [`base.py`](src/market_powercap/providers/base.py): the `MarketDataPoint`
  record, the 15-minute period labelling and the `MarketDataProvider` interface.

- [`epex.py`](src/market_powercap/providers/epex.py): `EPEXProvider`, which
  scrapes the EPEX SPOT intraday auction results.

- [`mock.py`](src/market_powercap/providers/mock.py): `MockProvider`, a
  synthetic sine-shaped profile for simulation.

- [`static.py`](src/market_powercap/providers/static.py): `StaticProvider`, a
  fixed dataset that ignores the requested day.

- [`factory.py`](src/market_powercap/providers/factory.py): `ProviderFactory`,
  which validates the provider configuration against `providers.yaml` and
  builds the selected provider.
"""

from market_powercap.providers.base import MarketDataPoint, MarketDataProvider
from market_powercap.providers.factory import ProviderFactory

__all__ = ["MarketDataPoint", "MarketDataProvider", "ProviderFactory"]
