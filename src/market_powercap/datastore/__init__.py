"""
The `datastore` module holds the market data of the day and turns it into a
target power.

- [`csv_store.py`](src/market_powercap/datastore/csv_store.py): the
  `CSVDataStore` class, which caches the dataset of the day, persists it to one
  CSV file per provider and day, and falls back to the previous day's file.

- [`calculator.py`](src/market_powercap/datastore/calculator.py): the power
  calculation strategies, a daily sine curve (`TimeCurveCalculator`) and the
  market-volume rule of three (`MarketBasedCalculator`).
"""

from market_powercap.datastore.calculator import (
    MarketBasedCalculator,
    PowerCalculator,
    TimeCurveCalculator,
    create_calculator,
    get_current_period,
)
from market_powercap.datastore.csv_store import CSVDataStore

__all__ = [
    "CSVDataStore",
    "MarketBasedCalculator",
    "PowerCalculator",
    "TimeCurveCalculator",
    "create_calculator",
    "get_current_period",
]
