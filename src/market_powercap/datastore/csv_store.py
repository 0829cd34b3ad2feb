"""This module implements the CSV-backed store for the daily market data.

The `CSVDataStore` keeps the dataset of the current day in memory together with
its highest volume, persists every fetched dataset to one CSV file per provider
and day, and falls back to the previous day's file when the data of the
requested day can neither be read nor fetched.

File format: a header row followed by one row per period, with the volume
written with 1 decimal and the price with 2 decimals::

    Period,Volume (MWh),Price (EUR/MWh)
    00:00-00:15,66.3,31.91
"""

from datetime import date, timedelta
from pathlib import Path
from typing import List, Sequence, Tuple

import pandas as pd

from market_powercap.datastore.calculator import max_volume
from market_powercap.providers.base import (
    MarketDataPoint,
    MarketDataProvider,
    normalize_period,
)
from market_powercap.util.exceptions import DataUnavailableError, FetchError
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

PERIOD_COLUMN = "Period"
VOLUME_COLUMN = "Volume (MWh)"
PRICE_COLUMN = "Price (EUR/MWh)"
COLUMNS = [PERIOD_COLUMN, VOLUME_COLUMN, PRICE_COLUMN]


class CSVDataStore:
    """Caches, persists and reloads the market data of the current day.

    The cached dataset and its maximum volume are replaced together in a single
    assignment, so a reader never sees a dataset paired with the maximum volume
    of another one.
    """

    def __init__(self, provider: MarketDataProvider, data_dir: Path) -> None:
        """Initializes the store.

        Args:
            provider: The provider used to refresh data and name the files.
            data_dir: The directory holding the CSV files.
        """
        self._provider = provider
        self._data_dir = Path(data_dir)
        self._snapshot: Tuple[Tuple[MarketDataPoint, ...], float] = ((), 0.0)

    @property
    def provider(self) -> MarketDataProvider:
        return self._provider

    def get_data_path(self, day: date) -> Path:
        """Returns the CSV file of `day` for the configured provider."""
        return self._data_dir / self._provider.get_data_path(day)

    def get_current_data(self) -> List[MarketDataPoint]:
        """Returns the cached dataset."""
        return list(self._snapshot[0])

    def get_max_volume(self) -> float:
        """Returns the highest volume of the cached dataset, 0.0 if none is positive."""
        return self._snapshot[1]

    def get_snapshot(self) -> Tuple[List[MarketDataPoint], float]:
        """Returns the cached dataset together with its highest volume."""
        data, day_max_volume = self._snapshot
        return list(data), day_max_volume

    def load_data(self, day: date) -> List[MarketDataPoint]:
        """Loads the market data of `day` into the cache.

        The persisted file is used when it exists and holds valid rows.
        Otherwise the data is refreshed from the provider and, if that fails,
        the persisted file of the previous day is used instead.

        Args:
            day: The delivery day to load.

        Returns:
            The loaded dataset.

        Raises:
            DataUnavailableError: If neither `day` nor the previous day has data.
        """
        data = self._load_persisted(day)
        if data:
            self._set_current(data)
            logger.info("Loaded %d market data points for %s", len(data), day)
            return data

        logger.info("No market data file for %s, fetching it", day)
        try:
            return self.refresh_data(day)
        except (FetchError, OSError) as err:
            logger.warning("Failed to refresh market data for %s: %s", day, err)

        yesterday = day - timedelta(days=1)
        logger.info("Trying fallback file: %s", self.get_data_path(yesterday))
        data = self._load_persisted(yesterday)
        if data:
            self._set_current(data)
            logger.warning(
                "Using market data of %s for %s (%d points)", yesterday, day, len(data)
            )
            return data

        raise DataUnavailableError(f"no market data available for {day} or {yesterday}")

    def save_data(self, day: date, data: Sequence[MarketDataPoint]) -> None:
        """Persists the dataset of `day`, overwriting any previous file, and caches it.

        Args:
            day: The delivery day of the data.
            data: The market data points.
        """
        path = self.get_data_path(day)
        path.parent.mkdir(parents=True, exist_ok=True)

        frame = pd.DataFrame(
            {
                PERIOD_COLUMN: [point.period for point in data],
                VOLUME_COLUMN: [f"{point.volume:.1f}" for point in data],
                PRICE_COLUMN: [f"{point.price:.2f}" for point in data],
            },
            columns=COLUMNS,
        )
        frame.to_csv(path, index=False)
        logger.debug("Saved %d market data points to %s", len(data), path)

        self._set_current(data)

    def fetch_data(self, day: date) -> List[MarketDataPoint]:
        """Fetches the dataset of `day` from the provider without caching it.

        Raises:
            FetchError: If the provider fails or returns no data.
        """
        logger.info(
            "Refreshing data for %s using provider %s", day, self._provider.get_name()
        )
        data = self._provider.fetch_data(day)
        if not data:
            raise FetchError("no data retrieved from provider")

        logger.info("Retrieved %d data points", len(data))
        return list(data)

    def refresh_data(self, day: date) -> List[MarketDataPoint]:
        """Fetches the dataset of `day` from the provider, then persists and caches it.

        Raises:
            FetchError: If the provider fails or returns no data. The cached
                        dataset is left untouched.
        """
        data = self.fetch_data(day)
        self.save_data(day, data)
        logger.info("Successfully refreshed data for %s", day)
        return data

    def _set_current(self, data: Sequence[MarketDataPoint]) -> None:
        self._snapshot = (tuple(data), max_volume(data))

    def _load_persisted(self, day: date) -> List[MarketDataPoint]:
        path = self.get_data_path(day)
        if not path.exists():
            return []
        return self._load_from_csv(path)

    def _load_from_csv(self, path: Path) -> List[MarketDataPoint]:
        """Parses a market data file, skipping malformed rows.

        Returns:
            The valid data points, empty if the file holds none.
        """

        def skip_bad_line(fields: List[str]) -> None:
            logger.warning("Skipping malformed record in %s: %s", path, fields)
            return None

        try:
            frame = pd.read_csv(
                path,
                dtype=str,
                keep_default_na=False,
                engine="python",
                on_bad_lines=skip_bad_line,
            )
        except pd.errors.EmptyDataError:
            logger.warning("Market data file %s is empty", path)
            return []
        except (OSError, pd.errors.ParserError) as err:
            logger.warning("Failed to read market data file %s: %s", path, err)
            return []

        if frame.shape[1] < len(COLUMNS):
            logger.warning("Market data file %s has %d columns", path, frame.shape[1])
            return []

        periods = frame.iloc[:, 0].fillna("").str.strip().map(normalize_period)
        volumes = pd.to_numeric(frame.iloc[:, 1], errors="coerce")
        prices = pd.to_numeric(frame.iloc[:, 2], errors="coerce")

        valid = (periods != "") & volumes.notna() & prices.notna() & (volumes >= 0)
        for position in (~valid).to_numpy().nonzero()[0]:
            # Line numbers count the header row
            logger.warning(
                "Skipping invalid record at line %d of %s: %s",
                position + 2,
                path,
                frame.iloc[position].tolist(),
            )

        return [
            MarketDataPoint(period=period, volume=float(volume), price=float(price))
            for period, volume, price in zip(
                periods[valid], volumes[valid], prices[valid]
            )
        ]
