"""Currency conversion to USD for financial scoring.

Budgets and asks are compared in USD. Rates come from a pluggable source:
a static table, the exchange_rates database table, or an HTTP JSON
endpoint.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchiq.errors import UpstreamUnavailable
from matchiq.storage.models import ExchangeRate

logger = logging.getLogger(__name__)


# Approximate mid-market rates (1 unit of currency = N USD)
DEFAULT_RATES: Dict[str, float] = {
    "USD": 1.0,
    "EUR": 1.08,
    "GBP": 1.26,
    "JPY": 0.0067,
    "CNY": 0.137,
    "KRW": 0.00074,
    "THB": 0.028,
    "BDT": 0.0083,
    "INR": 0.012,
    "SGD": 0.74,
    "MYR": 0.22,
    "IDR": 0.000063,
    "VND": 0.000041,
    "PHP": 0.018,
    "AUD": 0.64,
    "CAD": 0.72,
    "CHF": 1.11,
    "HKD": 0.128,
    "TWD": 0.031,
    "AED": 0.272,
    "SAR": 0.267,
    "NZD": 0.60,
    "SEK": 0.095,
    "NOK": 0.092,
    "DKK": 0.145,
    "ZAR": 0.054,
    "BRL": 0.17,
    "MXN": 0.058,
    "PLN": 0.25,
    "CZK": 0.043,
    "HUF": 0.0027,
    "TRY": 0.031,
    "RUB": 0.011,
    "ILS": 0.28,
    "EGP": 0.020,
    "PKR": 0.0036,
    "LKR": 0.0031,
    "MMK": 0.00048,
    "KHR": 0.00024,
    "LAK": 0.000045,
}


class RateSource(Protocol):
    """Anything that can answer "how many USD is one unit of this currency"."""

    def rate_to_usd(self, code: str) -> Optional[float]:
        ...


class StaticRateSource:
    """Rates from an in-memory mapping."""

    def __init__(self, rates: Optional[Dict[str, float]] = None):
        source = DEFAULT_RATES if rates is None else rates
        self.rates = {code.upper(): float(rate) for code, rate in source.items()}

    def rate_to_usd(self, code: str) -> Optional[float]:
        return self.rates.get(code.upper())


class DatabaseRateSource:
    """Rates from the exchange_rates table."""

    def __init__(self, session_factory: Callable[[], Session]):
        """Initialize the source.

        Args:
            session_factory: Callable returning a new Session (e.g. a sessionmaker)
        """
        self.session_factory = session_factory

    def rate_to_usd(self, code: str) -> Optional[float]:
        try:
            with self.session_factory() as session:
                row = session.scalar(
                    select(ExchangeRate).where(ExchangeRate.currency_code == code.upper())
                )
                return row.rate_to_usd if row is not None else None
        except SQLAlchemyError as e:
            raise UpstreamUnavailable(f"Exchange rate lookup failed for {code}: {e}") from e


class HttpRateSource:
    """Rates from a JSON endpoint.

    The endpoint returns either ``{"rates": {"EUR": 1.08, ...}}`` or a flat
    ``{"EUR": 1.08, ...}`` mapping, expressed as USD per unit. The whole
    table is fetched once and reused until ``refresh()`` is called. A fetch
    that fails after all retries is remembered for ``failure_cooldown``
    seconds; lookups in that window raise UpstreamUnavailable without
    contacting the endpoint.
    """

    def __init__(
        self,
        url: str,
        client: Optional[httpx.Client] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        timeout: float = 10.0,
        failure_cooldown: float = 300.0,
    ):
        """Initialize the source.

        Args:
            url: Endpoint returning the rate table
            client: Optional preconfigured httpx.Client
            max_retries: Maximum number of attempts (default: 3)
            backoff_base: Base delay in seconds for exponential backoff
            timeout: Request timeout in seconds
            failure_cooldown: Seconds to keep failing fast after a failed fetch
        """
        self.url = url
        self.client = client
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.failure_cooldown = failure_cooldown
        self._rates: Optional[Dict[str, float]] = None
        self._failure: Optional[str] = None
        self._failed_at = 0.0
        self._lock = threading.Lock()

    def rate_to_usd(self, code: str) -> Optional[float]:
        with self._lock:
            if self._rates is None:
                if self._failure is not None and (
                    time.monotonic() - self._failed_at < self.failure_cooldown
                ):
                    raise UpstreamUnavailable(self._failure)
                try:
                    self._rates = self._fetch()
                except UpstreamUnavailable as e:
                    self._failure = str(e)
                    self._failed_at = time.monotonic()
                    raise
                self._failure = None
            rates = self._rates
        return rates.get(code.upper())

    def refresh(self) -> None:
        """Drop the cached table and any remembered failure."""
        with self._lock:
            self._rates = None
            self._failure = None

    def _fetch(self) -> Dict[str, float]:
        """Fetch the rate table with retry and exponential backoff."""
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"Fetching exchange rates: {self.url} (attempt {attempt + 1}/{self.max_retries})")
                if self.client is not None:
                    response = self.client.get(self.url, timeout=self.timeout)
                else:
                    with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                        response = client.get(self.url)
                response.raise_for_status()
                return self._parse(response.json())

            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning(
                    f"HTTP error {e.response.status_code} fetching rates from {self.url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Request error fetching rates from {self.url}: {str(e)} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
            except ValueError as e:
                last_error = e
                logger.warning(f"Malformed rate payload from {self.url}: {str(e)}")

            if attempt < self.max_retries - 1:
                self._exponential_backoff(attempt)

        logger.error(f"Failed to fetch exchange rates after {self.max_retries} attempts")
        raise UpstreamUnavailable(f"Exchange rate source unavailable: {last_error}")

    def _parse(self, payload: object) -> Dict[str, float]:
        if isinstance(payload, dict) and isinstance(payload.get("rates"), dict):
            payload = payload["rates"]
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object of currency rates")
        return {str(code).upper(): float(rate) for code, rate in payload.items()}

    def _exponential_backoff(self, attempt: int) -> None:
        delay = self.backoff_base * (2 ** attempt)  # 1s, 2s, 4s, etc.
        logger.debug(f"Exponential backoff: waiting {delay}s before retry")
        time.sleep(delay)


class ExchangeRateConverter:
    """Converts amounts to USD, caching rates per currency code.

    Unknown currency codes convert 1:1. A failing rate source raises
    UpstreamUnavailable so callers can degrade the financial dimension.
    """

    def __init__(self, source: Optional[RateSource] = None):
        self.source = source if source is not None else StaticRateSource()
        self._cache: Dict[str, Optional[float]] = {}
        self._lock = threading.Lock()

    def rate_for(self, code: str) -> Optional[float]:
        code = code.strip().upper()
        with self._lock:
            if code in self._cache:
                return self._cache[code]

        try:
            rate = self.source.rate_to_usd(code)
        except UpstreamUnavailable:
            raise
        except Exception as e:
            raise UpstreamUnavailable(f"Exchange rate lookup failed for {code}: {e}") from e

        with self._lock:
            self._cache[code] = rate
        return rate

    def to_usd(self, amount: float, code: Optional[str]) -> float:
        """Convert an amount in the given currency to USD.

        Args:
            amount: Amount in the source currency
            code: ISO 4217 code; empty or USD returns the amount unchanged

        Returns:
            Amount in USD
        """
        if not code or code.strip().upper() == "USD":
            return amount

        rate = self.rate_for(code)
        if rate is None:
            logger.debug(f"No exchange rate for {code}, converting 1:1")
            return amount
        return amount * rate

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def refresh(self) -> None:
        """Forget cached rates so the next lookups see current source data."""
        self.clear_cache()
        refresh_source = getattr(self.source, "refresh", None)
        if refresh_source is not None:
            refresh_source()
