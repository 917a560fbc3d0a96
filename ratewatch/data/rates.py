"""
ECB reference rate provider with an in-memory cache.
"""

import logging
import math
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

ECB_DAILY_URL = "https://www.ecb.europa.eu/stats/eurofxref/eurofxref-daily.xml"
DEFAULT_MAX_AGE = timedelta(hours=24)


class RateFetchError(Exception):
    """Raised when the rate table could not be downloaded."""

    pass


class RateParseError(Exception):
    """Raised when the rate document cannot be parsed."""

    pass


@dataclass(frozen=True)
class RateSnapshot:
    """Rates against the base currency from a single response."""

    base: str
    rates: Mapping[str, float] = field(default_factory=dict)
    refreshed_at: Optional[datetime] = None

    @property
    def empty(self) -> bool:
        return self.refreshed_at is None


def parse_rates_xml(text: str, base: str = "EUR") -> dict[str, float]:
    """
    Parse a reference rate document.

    Every element carrying both a ``currency`` and a ``rate`` attribute is
    read; entries with a malformed, non-finite or non-positive rate are
    skipped.

    Args:
        text: XML document
        base: Base currency, always present with rate 1

    Returns:
        Mapping of currency code to units per one unit of base

    Raises:
        RateParseError: If the document is not XML or holds no rates
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise RateParseError(f"Invalid rate document: {e}") from e

    base = base.upper()
    rates = {base: 1.0}
    for element in root.iter():
        currency = element.get("currency")
        raw_rate = element.get("rate")
        if not currency or raw_rate is None:
            continue

        currency = currency.strip().upper()
        try:
            rate = float(raw_rate)
        except ValueError:
            logger.debug(f"Skipping malformed rate for {currency}: {raw_rate!r}")
            continue
        if not math.isfinite(rate) or rate <= 0 or currency == base:
            continue
        rates[currency] = rate

    if len(rates) == 1:
        raise RateParseError("Rate document contains no rates")
    return rates


class RateProvider:
    """Serves cross rates from a cached daily rate table."""

    def __init__(
        self,
        url: str = ECB_DAILY_URL,
        base_currency: str = "EUR",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize rate provider.

        Args:
            url: Address of the daily rate XML
            base_currency: Currency every rate in the table is quoted against
            timeout: Request timeout in seconds
            max_retries: Attempts per refresh
            retry_delay: Initial delay between attempts, doubled each retry
            clock: Source of the current time
        """
        self.url = url
        self.base_currency = base_currency.upper()
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.clock = clock
        self._snapshot = RateSnapshot(base=self.base_currency)

    @property
    def snapshot(self) -> RateSnapshot:
        return self._snapshot

    @property
    def last_refreshed(self) -> Optional[datetime]:
        return self._snapshot.refreshed_at

    def refresh(self) -> bool:
        """
        Download the rate table and replace the cache.

        Returns:
            True if the cache was replaced, False if it was left untouched
        """
        for attempt in range(self.max_retries):
            try:
                rates = self._fetch_rates()
            except (RateFetchError, RateParseError) as e:
                logger.warning(
                    f"Rate refresh attempt {attempt + 1}/{self.max_retries} failed: {e}"
                )
                if attempt + 1 < self.max_retries:
                    time.sleep(self.retry_delay * (2**attempt))
                continue

            # Single assignment so readers never see a partial table
            self._snapshot = RateSnapshot(
                base=self.base_currency,
                rates=MappingProxyType(rates),
                refreshed_at=self.clock(),
            )
            logger.info(f"Loaded {len(rates)} rates against {self.base_currency}")
            return True

        return False

    def ensure_fresh(self, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
        """
        Refresh the cache if it is empty or older than `max_age`.

        Returns:
            True if usable rates are cached afterwards
        """
        snapshot = self._snapshot
        if snapshot.empty or self.clock() - snapshot.refreshed_at > max_age:
            self.refresh()
        return not self._snapshot.empty

    def get_rate(self, currency_from: str, currency_to: str) -> Optional[float]:
        """
        Get units of `currency_to` per one unit of `currency_from`.

        Returns:
            The cross rate, or None if either currency is not cached
        """
        from_code = (currency_from or "").upper()
        to_code = (currency_to or "").upper()
        if from_code == to_code:
            return 1.0

        rates = self._snapshot.rates
        rate_from = rates.get(from_code)
        rate_to = rates.get(to_code)
        if rate_from is None or rate_to is None:
            return None

        if from_code == self.base_currency:
            return rate_to
        if to_code == self.base_currency:
            return 1 / rate_from
        return rate_to / rate_from

    def list_codes(self) -> list[str]:
        """Sorted cached currency codes, always including the base."""
        codes = set(self._snapshot.rates)
        codes.add(self.base_currency)
        return sorted(codes)

    def _fetch_rates(self) -> dict[str, float]:
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RateFetchError(f"Could not fetch {self.url}: {e}") from e
        return parse_rates_xml(response.text, self.base_currency)
