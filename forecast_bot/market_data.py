"""
Market Data Collection for the Forecast Bot

Fetches a time-stamped price series for one symbol and normalizes the
provider-specific response into a single Series type. Three providers
are supported:

- chart:    Yahoo-style chart JSON over HTTP (default)
- stooq:    Stooq CSV download over HTTP
- yfinance: the yfinance library's history() DataFrame

Gaps (null / NaN / "N/D") are kept as samples with price=None so the
window selector can reason about them. Nothing here is cached: a Series
belongs to the run that fetched it.
"""

import io
import math
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import httpx
import pandas as pd
import yfinance as yf

from forecast_bot.config import QUOTE_REQUEST_TIMEOUT, USER_AGENT, Settings
from forecast_bot.exceptions import (
    EmptySeriesError, MalformedResponseError, UpstreamError
)
from forecast_bot.utils import fixed_offset

logger = logging.getLogger('forecast_bot.market_data')


@dataclass(frozen=True)
class Sample:
    """One point of a series. price is None for a gap."""
    timestamp: int
    price: Optional[float]

    @property
    def has_price(self) -> bool:
        return self.price is not None


@dataclass(frozen=True)
class Series:
    """Ascending, immutable sequence of samples for one symbol."""
    symbol: str
    samples: Tuple[Sample, ...]
    source: str = ""

    def __len__(self):
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)

    @property
    def valid_count(self) -> int:
        return sum(1 for s in self.samples if s.has_price)


@dataclass(frozen=True)
class WindowSpec:
    """Requested fetch span and granularity, in provider vocabulary."""
    range: str = "5d"
    interval: str = "5m"

    def __str__(self):
        return f"range={self.range} interval={self.interval}"


def _clean_price(value) -> Optional[float]:
    """Map a raw provider value to a float, or None for any gap marker."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    return price


def build_series(symbol: str, timestamps: Sequence, prices: Sequence,
                 context: str, source: str = "") -> Series:
    """
    Zip index-aligned timestamp and price arrays into a Series.

    Args:
        symbol: Quote symbol
        timestamps: Epoch seconds, ascending
        prices: Raw price values, gaps allowed anywhere
        context: Description attached to any raised error
        source: Provider name for audit logs

    Raises:
        MalformedResponseError: arrays differ in length, or timestamps are
            not integers or go backwards
        EmptySeriesError: zero samples
    """
    if len(timestamps) != len(prices):
        raise MalformedResponseError(
            f"timestamp/price length mismatch ({len(timestamps)} vs {len(prices)})", context
        )
    if len(timestamps) == 0:
        raise EmptySeriesError("provider returned zero samples", context)

    samples: List[Sample] = []
    previous = None
    for raw_ts, raw_price in zip(timestamps, prices):
        if isinstance(raw_ts, bool):
            raise MalformedResponseError(f"non-numeric timestamp {raw_ts!r}", context)
        try:
            ts = int(raw_ts)
        except (TypeError, ValueError):
            raise MalformedResponseError(f"non-numeric timestamp {raw_ts!r}", context)
        if previous is not None and ts < previous:
            raise MalformedResponseError(f"timestamps out of order at {ts}", context)
        previous = ts
        samples.append(Sample(timestamp=ts, price=_clean_price(raw_price)))

    series = Series(symbol=symbol, samples=tuple(samples), source=source)
    logger.info(f"Fetched {len(series)} samples ({series.valid_count} with price) [{context}]")
    return series


class SeriesClient:
    """
    Base class for quote providers.

    Subclasses implement _fetch(); fetch_series() adds the context string
    and a log line around it.
    """

    name = "base"

    def __init__(self, base_url: str = None, client: httpx.Client = None,
                 timeout: float = QUOTE_REQUEST_TIMEOUT, utc_offset_hours: float = 0):
        self.base_url = (base_url or "").rstrip("/")
        self.client = client
        self.timeout = timeout
        self.utc_offset_hours = utc_offset_hours

    def fetch_series(self, symbol: str, window_spec: WindowSpec) -> Series:
        """Fetch and normalize the series for symbol over window_spec."""
        context = f"provider={self.name} symbol={symbol} {window_spec}"
        logger.info(f"Fetching series [{context}]")
        return self._fetch(symbol, window_spec, context)

    def _fetch(self, symbol: str, window_spec: WindowSpec, context: str) -> Series:
        raise NotImplementedError

    def _get(self, url: str, params: dict, context: str) -> httpx.Response:
        """GET with status checking. Any transport failure is an UpstreamError."""
        client = self.client or httpx.Client(timeout=self.timeout, follow_redirects=True)
        try:
            resp = client.get(url, params=params, headers={"User-Agent": USER_AGENT})
        except httpx.HTTPError as e:
            raise UpstreamError(f"transport error: {e}", context) from e
        finally:
            if self.client is None:
                client.close()

        if not resp.is_success:
            body = resp.text[:200].strip()
            raise UpstreamError(
                f"HTTP {resp.status_code} from {url}" + (f": {body}" if body else ""),
                context, status_code=resp.status_code
            )
        return resp


class ChartSeriesClient(SeriesClient):
    """Yahoo-style chart endpoint: /v8/finance/chart/{symbol}?range=..&interval=.."""

    name = "chart"

    def _fetch(self, symbol, window_spec, context):
        url = f"{self.base_url}/v8/finance/chart/{symbol}"
        resp = self._get(url, {"range": window_spec.range, "interval": window_spec.interval}, context)
        try:
            payload = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"response is not JSON: {e}", context) from e
        timestamps, closes = self.parse_chart(payload, context)
        return build_series(symbol, timestamps, closes, context, source=self.name)

    @staticmethod
    def parse_chart(payload, context: str = "") -> Tuple[list, list]:
        """
        Pull (timestamps, closes) out of a chart envelope.

        The close series normally lives in indicators.quote[0].close; some
        responses only carry indicators.adjclose[0].adjclose.
        """
        chart = payload.get("chart") if isinstance(payload, dict) else None
        if not isinstance(chart, dict):
            raise MalformedResponseError("missing 'chart' envelope", context)

        error = chart.get("error")
        if error:
            description = error.get("description", error) if isinstance(error, dict) else error
            raise UpstreamError(f"provider error: {description}", context)

        results = chart.get("result")
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise MalformedResponseError("missing 'chart.result[0]'", context)
        result = results[0]

        timestamps = result.get("timestamp")
        if not isinstance(timestamps, list):
            raise MalformedResponseError("'timestamp' absent or not an array", context)

        indicators = result.get("indicators") or {}
        closes = None
        quotes = indicators.get("quote")
        if isinstance(quotes, list) and quotes and isinstance(quotes[0], dict):
            closes = quotes[0].get("close")
        if closes is None:
            adjclose = indicators.get("adjclose")
            if isinstance(adjclose, list) and adjclose and isinstance(adjclose[0], dict):
                closes = adjclose[0].get("adjclose")
        if not isinstance(closes, list):
            raise MalformedResponseError("close series absent or not an array", context)

        return timestamps, closes


class StooqSeriesClient(SeriesClient):
    """
    Stooq CSV download: /q/d/l/?s={symbol}&i={d|w|m}

    Rows carry civil dates (and a Time column for intraday exports); they
    are interpreted in the configured fixed offset.
    """

    name = "stooq"
    INTERVALS = {"1d": "d", "d": "d", "1wk": "w", "w": "w", "1mo": "m", "m": "m"}

    def _fetch(self, symbol, window_spec, context):
        interval = self.INTERVALS.get(window_spec.interval)
        if interval is None:
            logger.warning(f"Stooq has no '{window_spec.interval}' interval - using daily [{context}]")
            interval = "d"
        resp = self._get(f"{self.base_url}/q/d/l/", {"s": symbol.lower(), "i": interval}, context)
        timestamps, closes = self.parse_csv(resp.text, self.utc_offset_hours, context)
        return build_series(symbol, timestamps, closes, context, source=self.name)

    @staticmethod
    def parse_csv(text: str, utc_offset_hours: float = 0, context: str = "") -> Tuple[list, list]:
        """Parse a Stooq CSV body into (timestamps, closes)."""
        body = (text or "").strip()
        if not body or body.lower().startswith("no data"):
            raise EmptySeriesError("provider returned no data", context)

        try:
            frame = pd.read_csv(io.StringIO(body), dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise MalformedResponseError(f"unparseable CSV: {e}", context) from e

        for column in ("Date", "Close"):
            if column not in frame.columns:
                raise MalformedResponseError(f"CSV header has no '{column}' column", context)
        if frame.empty:
            raise EmptySeriesError("CSV has a header but no rows", context)

        stamps = frame["Date"]
        if "Time" in frame.columns:
            stamps = stamps + " " + frame["Time"]
        try:
            parsed = pd.to_datetime(stamps).dt.tz_localize(fixed_offset(utc_offset_hours))
        except (ValueError, TypeError) as e:
            raise MalformedResponseError(f"unparseable Date column: {e}", context) from e

        timestamps = [int(ts.timestamp()) for ts in parsed]
        closes = pd.to_numeric(frame["Close"], errors="coerce").tolist()
        return timestamps, closes


class YFinanceSeriesClient(SeriesClient):
    """yfinance Ticker.history() as a provider. base_url is ignored."""

    name = "yfinance"

    def _fetch(self, symbol, window_spec, context):
        try:
            hist = yf.Ticker(symbol).history(period=window_spec.range, interval=window_spec.interval)
        except Exception as e:
            raise UpstreamError(f"yfinance error: {e}", context) from e
        timestamps, closes = self.parse_history(hist, context)
        return build_series(symbol, timestamps, closes, context, source=self.name)

    @staticmethod
    def parse_history(hist: pd.DataFrame, context: str = "") -> Tuple[list, list]:
        if hist is None or not isinstance(hist, pd.DataFrame):
            raise MalformedResponseError("history is not a DataFrame", context)
        if "Close" not in hist.columns:
            if hist.empty:
                raise EmptySeriesError("history is empty", context)
            raise MalformedResponseError("history has no 'Close' column", context)
        if hist.empty:
            raise EmptySeriesError("history is empty", context)
        timestamps = [int(pd.Timestamp(ts).timestamp()) for ts in hist.index]
        return timestamps, hist["Close"].tolist()


def create_series_client(settings: Settings, client: httpx.Client = None) -> SeriesClient:
    """Build the provider selected in settings."""
    classes = {
        "chart": ChartSeriesClient,
        "stooq": StooqSeriesClient,
        "yfinance": YFinanceSeriesClient,
    }
    cls = classes[settings.provider]
    return cls(base_url=settings.base_url, client=client,
               utc_offset_hours=settings.utc_offset_hours)


def fetch_for_settings(settings: Settings, series_client: SeriesClient = None,
                       client: httpx.Client = None) -> Series:
    """Fetch the configured symbol with the configured WindowSpec."""
    series_client = series_client or create_series_client(settings, client=client)
    spec = WindowSpec(range=settings.fetch_range, interval=settings.fetch_interval)
    return series_client.fetch_series(settings.symbol, spec)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    series = fetch_for_settings(Settings.from_env())
    for sample in series.samples[-5:]:
        print(f"{datetime.fromtimestamp(sample.timestamp)}  {sample.price}")
