"""Tests for the CSV market data store and its fallback behavior."""

from datetime import date, timedelta

import pytest

from market_powercap.datastore.csv_store import CSVDataStore
from market_powercap.providers.base import MarketDataPoint, MarketDataProvider
from market_powercap.providers.static import StaticProvider
from market_powercap.util.exceptions import DataUnavailableError, FetchError

DAY = date(2025, 3, 14)


class FailingProvider(MarketDataProvider):
    """Provider whose fetches always fail."""

    def __init__(self) -> None:
        self.calls = []

    def get_name(self) -> str:
        return "Failing"

    def fetch_data(self, day):
        self.calls.append(day)
        raise FetchError("market closed")


class EmptyProvider(FailingProvider):
    def fetch_data(self, day):
        self.calls.append(day)
        return []


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "market"


def test_save_then_load_round_trip(data_dir):
    data = [
        MarketDataPoint("00:00-00:15", 66.34, 31.914),
        MarketDataPoint("00:15-00:30", 0.0, -5.0),
        MarketDataPoint("12:00-12:15", 93.8, 42.15),
    ]
    store = CSVDataStore(StaticProvider(), data_dir)
    store.save_data(DAY, data)

    reloaded = CSVDataStore(StaticProvider(), data_dir)
    loaded = reloaded.load_data(DAY)

    assert loaded == [
        MarketDataPoint("00:00-00:15", 66.3, 31.91),
        MarketDataPoint("00:15-00:30", 0.0, -5.0),
        MarketDataPoint("12:00-12:15", 93.8, 42.15),
    ]
    assert reloaded.get_current_data() == loaded
    assert reloaded.get_max_volume() == 93.8


def test_file_format(data_dir):
    store = CSVDataStore(StaticProvider(), data_dir)
    store.save_data(DAY, [MarketDataPoint("00:00-00:15", 66.3, 31.9)])

    content = (data_dir / "static_data_2025-03-14.csv").read_text().splitlines()

    assert content == ["Period,Volume (MWh),Price (EUR/MWh)", "00:00-00:15,66.3,31.90"]


def test_save_overwrites_and_updates_cache(data_dir):
    store = CSVDataStore(StaticProvider(), data_dir)
    store.save_data(DAY, [MarketDataPoint("00:00-00:15", 10.0, 1.0)])
    store.save_data(DAY, [MarketDataPoint("00:00-00:15", 20.0, 2.0)])

    assert store.get_current_data() == [MarketDataPoint("00:00-00:15", 20.0, 2.0)]
    assert store.get_max_volume() == 20.0
    assert "20.0" in store.get_data_path(DAY).read_text()


def test_malformed_rows_are_skipped(data_dir, caplog):
    store = CSVDataStore(StaticProvider(), data_dir)
    path = store.get_data_path(DAY)
    path.parent.mkdir(parents=True)
    path.write_text(
        "Period,Volume (MWh),Price (EUR/MWh)\n"
        "00:00-00:15,66.3,31.91\n"
        "00:15-00:30,abc,30.00\n"
        "00:30-00:45,12.0\n"
        "00:45-01:00,1.0,2.0,3.0\n"
        "01:00-01:15,-4.0,30.00\n"
        "12:00-12:15,93.8,42.15\n"
    )

    data = store.load_data(DAY)

    assert [point.period for point in data] == ["00:00-00:15", "12:00-12:15"]
    assert "Skipping" in caplog.text


def test_missing_file_is_fetched_and_persisted(data_dir):
    store = CSVDataStore(StaticProvider(), data_dir)

    data = store.load_data(DAY)

    assert len(data) == 96
    assert store.get_data_path(DAY).exists()
    assert store.get_max_volume() == 54.0


def test_fallback_to_previous_day(data_dir):
    yesterday = DAY - timedelta(days=1)
    provider = FailingProvider()
    store = CSVDataStore(provider, data_dir)
    store.save_data(yesterday, [MarketDataPoint("12:00-12:15", 93.8, 42.15)])

    data = store.load_data(DAY)

    assert provider.calls == [DAY]
    assert data == [MarketDataPoint("12:00-12:15", 93.8, 42.15)]
    assert store.get_current_data() == data


def test_no_data_for_day_nor_previous_day(data_dir):
    store = CSVDataStore(FailingProvider(), data_dir)

    with pytest.raises(DataUnavailableError):
        store.load_data(DAY)

    assert store.get_current_data() == []
    assert store.get_max_volume() == 0.0


def test_file_without_valid_rows_is_refreshed(data_dir):
    store = CSVDataStore(StaticProvider(), data_dir)
    path = store.get_data_path(DAY)
    path.parent.mkdir(parents=True)
    path.write_text("Period,Volume (MWh),Price (EUR/MWh)\n")

    data = store.load_data(DAY)

    assert len(data) == 96


def test_empty_fetch_is_an_error(data_dir):
    store = CSVDataStore(EmptyProvider(), data_dir)

    with pytest.raises(FetchError):
        store.refresh_data(DAY)


def test_failed_refresh_keeps_previous_dataset(data_dir):
    store = CSVDataStore(FailingProvider(), data_dir)
    store.save_data(DAY, [MarketDataPoint("12:00-12:15", 93.8, 42.15)])

    with pytest.raises(FetchError):
        store.refresh_data(DAY + timedelta(days=1))

    assert store.get_current_data() == [MarketDataPoint("12:00-12:15", 93.8, 42.15)]
    assert store.get_max_volume() == 93.8


def test_midnight_end_label_is_normalized(data_dir):
    store = CSVDataStore(StaticProvider(), data_dir)
    path = store.get_data_path(DAY)
    path.parent.mkdir(parents=True)
    path.write_text(
        "Period,Volume (MWh),Price (EUR/MWh)\n"
        "23:30-23:45,40.0,55.10\n"
        "23:45 - 00:00,80.0,61.20\n"
    )

    data = store.load_data(DAY)

    assert [point.period for point in data] == ["23:30-23:45", "23:45-24:00"]
