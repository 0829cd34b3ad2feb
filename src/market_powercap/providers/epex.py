"""This module implements the market data provider for the EPEX SPOT market results.

The `EPEXProvider` downloads the public market results page of a delivery day
and extracts the period labels and the volume and price columns of the results
table. The page layout is not a stable API, so any failure along the way is
reported as a `FetchError` and the data store keeps its previous dataset.
"""

import re
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import requests

from market_powercap.providers.base import (
    MarketDataPoint,
    MarketDataProvider,
    normalize_period,
)
from market_powercap.util.exceptions import FetchError
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

DEFAULT_URL = "https://www.epexspot.com/en/market-results"
DEFAULT_PARAMS = {
    "market_area": "FR",
    "auction": "IDA1",
    "modality": "Auction",
    "sub_modality": "Intraday",
    "data_mode": "table",
}

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}
_PERIOD_RE = re.compile(r'<a href="#">(\d{2}:\d{2}\s*-\s*\d{2}:\d{2})</a>')
_ROW_RE = re.compile(r'<tr\s+class="child[^"]*"[^>]*>([\s\S]*?)</tr>')
_CELL_RE = re.compile(r"<td[^>]*>([^<]+)</td>")


class EPEXProvider(MarketDataProvider):
    """Fetches intraday auction results from the EPEX SPOT website."""

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        params: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initializes the provider.

        Args:
            base_url: The market results page URL.
            params: Query parameters identifying the market (area, auction...).
            timeout: The HTTP timeout in seconds.
            session: The HTTP session to use, a new one by default.
        """
        self._base_url = base_url or DEFAULT_URL
        self._params = dict(params) if params else dict(DEFAULT_PARAMS)
        self._timeout = timeout
        self._session = session or requests.Session()

    def get_name(self) -> str:
        return "EPEX"

    def fetch_data(self, day: date) -> List[MarketDataPoint]:
        """Downloads and parses the market results of a delivery day.

        The trading date of an intraday auction is the day before delivery.

        Args:
            day: The delivery day.

        Returns:
            The parsed market data points.

        Raises:
            FetchError: On HTTP failure or when no data can be extracted.
        """
        params = {
            "trading_date": (day - timedelta(days=1)).isoformat(),
            "delivery_date": day.isoformat(),
            **self._params,
            # Empty parameters expected by the results page
            "underlying_year": "",
            "technology": "",
            "period": "",
            "production_period": "",
        }

        try:
            response = self._session.get(
                self._base_url, params=params, headers=_HEADERS, timeout=self._timeout
            )
            response.raise_for_status()
        except requests.RequestException as err:
            raise FetchError(f"EPEX request failed: {err}") from err

        return self.parse_html(response.text)

    def parse_html(self, html: str) -> List[MarketDataPoint]:
        """Extracts the market data points from a results page.

        Args:
            html: The page content.

        Returns:
            One point per period for which a numeric volume and price were found.

        Raises:
            FetchError: If the page holds no usable data.
        """
        periods = [normalize_period(match) for match in _PERIOD_RE.findall(html)]
        volumes, prices = _extract_table_data(html)

        if not periods or not volumes or not prices:
            raise FetchError("failed to extract data from HTML")

        data = []
        for period, volume, price in zip(periods, volumes, prices):
            try:
                data.append(
                    MarketDataPoint(
                        period=period,
                        volume=float(volume.replace(",", "")),
                        price=float(price.replace(",", "")),
                    )
                )
            except ValueError:
                logger.debug("Skipping invalid EPEX row %s: %s / %s", period, volume, price)

        if not data:
            raise FetchError("no valid data points extracted")

        logger.info("Extracted %d EPEX data points", len(data))
        return data


def _extract_table_data(html: str) -> Tuple[List[str], List[str]]:
    tbody_start = html.find("<tbody>")
    tbody_end = html.find("</tbody>")
    if tbody_start == -1 or tbody_end == -1:
        return [], []

    tbody = html[tbody_start:tbody_end]

    volumes, prices = _extract_from_rows(tbody)
    if volumes:
        return volumes, prices
    return _extract_from_cells(tbody)


def _extract_from_rows(tbody: str) -> Tuple[List[str], List[str]]:
    volumes = []
    prices = []
    for row in _ROW_RE.findall(tbody):
        cells = _CELL_RE.findall(row)
        # Buy Volume, Sell Volume, Volume, Price
        if len(cells) == 4:
            volumes.append(cells[2].strip())
            prices.append(cells[3].strip())
    return volumes, prices


def _extract_from_cells(tbody: str) -> Tuple[List[str], List[str]]:
    cells = _CELL_RE.findall(tbody)
    volumes = []
    prices = []
    for i in range(0, len(cells) - 3, 4):
        volumes.append(cells[i + 2].strip())
        prices.append(cells[i + 3].strip())
    return volumes, prices
