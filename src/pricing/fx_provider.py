"""
FX rate provider module.

Retrieves today's USD and EUR selling rates (TRY per unit) from the TCMB
daily feed, falling back to fixed default rates on any failure.
"""

import logging
import math
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from src.utils.config_loader import AppConfig
from src.utils.logging_config import LogContext


logger = logging.getLogger(__name__)

LOCAL_CURRENCY = "TRY"
SUPPORTED_CURRENCIES = ("TRY", "USD", "EUR")

FALLBACK_USD = 33.0
FALLBACK_EUR = 35.5

# Every request must reach the origin so the rates reflect today's publication
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, max-age=0",
    "Pragma": "no-cache",
    "Accept": "application/xml,text/xml;q=0.9,*/*;q=0.8",
}

CODE_ATTRIBUTES = ("Kod", "CurrencyCode")
SELLING_RATE_FIELD = "ForexSelling"


class FXProviderError(Exception):
    """Exception raised for FX rate retrieval errors."""
    pass


class FXTransportError(FXProviderError):
    """The feed could not be downloaded (network error or non-success status)."""
    pass


class FXMissingFieldError(FXProviderError):
    """A required currency record or selling-rate field is absent."""
    pass


class FXParseError(FXProviderError):
    """The feed or one of its values could not be parsed into a valid rate."""
    pass


class UnsupportedCurrencyError(ValueError):
    """Raised when a line item uses a currency with no known rate."""

    def __init__(self, currency: str):
        super().__init__(
            f"Unsupported currency: {currency}. Expected one of {', '.join(SUPPORTED_CURRENCIES)}."
        )
        self.currency = currency


@dataclass(frozen=True)
class ExchangeRateSnapshot:
    """
    Today's selling rates, in local currency units per one foreign unit.

    Attributes:
        usd: TRY per 1 USD.
        eur: TRY per 1 EUR.
    """

    usd: float
    eur: float

    @classmethod
    def validated(cls, usd: float, eur: float) -> "ExchangeRateSnapshot":
        """
        Build a snapshot, checking that both rates are finite and positive.

        Raises:
            FXParseError: If either rate is invalid.
        """
        for code, value in (("USD", usd), ("EUR", eur)):
            if not _is_valid_rate(value):
                raise FXParseError(f"Invalid {code} rate: {value!r}")
        return cls(usd=float(usd), eur=float(eur))

    def to_dict(self) -> dict:
        return {"USD": self.usd, "EUR": self.eur}


def _is_valid_rate(value) -> bool:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


def fallback_snapshot(config: Optional[AppConfig] = None) -> ExchangeRateSnapshot:
    """
    Get the fixed fallback rates.

    Args:
        config: Optional configuration overriding the default fallback values.

    Returns:
        ExchangeRateSnapshot: Fallback rates ({USD: 33.0, EUR: 35.5} by default).
    """
    fx_config = getattr(config, "fx", None)
    usd = getattr(fx_config, "fallback_usd", FALLBACK_USD)
    eur = getattr(fx_config, "fallback_eur", FALLBACK_EUR)
    return ExchangeRateSnapshot(usd=float(usd), eur=float(eur))


def _parse_rate_value(raw: Optional[str], code: str) -> float:
    """Convert a selling-rate field to float, accepting a comma decimal separator."""
    if raw is None or not raw.strip():
        raise FXMissingFieldError(f"{SELLING_RATE_FIELD} is empty for {code}")

    text = raw.strip().replace(",", ".")
    try:
        value = float(text)
    except ValueError:
        raise FXParseError(f"Non-numeric {SELLING_RATE_FIELD} for {code}: {raw!r}")

    if not _is_valid_rate(value):
        raise FXParseError(f"{SELLING_RATE_FIELD} for {code} must be finite and positive, got {raw!r}")
    return value


def parse_selling_rates_xml(document: str | bytes) -> ExchangeRateSnapshot:
    """
    Parse the feed as an XML tree and look up each currency by its code attribute.

    Args:
        document: Raw feed content.

    Returns:
        ExchangeRateSnapshot: Parsed USD and EUR selling rates.

    Raises:
        FXParseError: If the document is not well-formed XML or a value is invalid.
        FXMissingFieldError: If a currency record or its selling rate is absent.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise FXParseError(f"Malformed feed document: {e}")

    records = {}
    for currency in root.iter("Currency"):
        for attribute in CODE_ATTRIBUTES:
            code = currency.get(attribute)
            if code and code not in records:
                records[code] = currency
                break

    rates = {}
    for code in ("USD", "EUR"):
        record = records.get(code)
        if record is None:
            raise FXMissingFieldError(f"Currency record not found for {code}")
        selling = record.find(SELLING_RATE_FIELD)
        if selling is None:
            raise FXMissingFieldError(f"{SELLING_RATE_FIELD} missing for {code}")
        rates[code] = _parse_rate_value(selling.text, code)

    return ExchangeRateSnapshot.validated(rates["USD"], rates["EUR"])


_SELLING_RATE_PATTERN = re.compile(
    r"<%s\s*/>|<%s>(.*?)</%s>" % (SELLING_RATE_FIELD, SELLING_RATE_FIELD, SELLING_RATE_FIELD),
    re.DOTALL,
)
_RECORD_END_PATTERN = re.compile(r"</Currency\s*>")


def _currency_record_pattern(code: str) -> re.Pattern:
    return re.compile(
        r'<Currency\b[^>]*?\b(?:%s)\s*=\s*"%s"' % ("|".join(CODE_ATTRIBUTES), re.escape(code))
    )


def scan_selling_rates_text(document: str) -> ExchangeRateSnapshot:
    """
    Scan the raw feed text for each currency record and take the first selling
    rate that follows its code, without reading past the record's closing tag.

    Args:
        document: Raw feed text.

    Returns:
        ExchangeRateSnapshot: Parsed USD and EUR selling rates.

    Raises:
        FXMissingFieldError: If a currency record or its selling rate is absent or empty.
        FXParseError: If a value is not a valid rate.
    """
    rates = {}
    for code in ("USD", "EUR"):
        record = _currency_record_pattern(code).search(document)
        if record is None:
            raise FXMissingFieldError(f"Currency record not found for {code}")

        record_end = _RECORD_END_PATTERN.search(document, record.end())
        body_end = record_end.start() if record_end else len(document)
        selling = _SELLING_RATE_PATTERN.search(document, record.end(), body_end)
        if selling is None:
            raise FXMissingFieldError(f"{SELLING_RATE_FIELD} missing for {code}")
        rates[code] = _parse_rate_value(selling.group(1), code)

    return ExchangeRateSnapshot.validated(rates["USD"], rates["EUR"])


def parse_selling_rates(document: str, strategy: str = "xml") -> ExchangeRateSnapshot:
    """
    Parse the feed with the configured strategy ("xml" or "scan").

    Raises:
        ValueError: If the strategy is unknown.
    """
    strategy = (strategy or "xml").lower()
    if strategy == "xml":
        return parse_selling_rates_xml(document)
    if strategy == "scan":
        return scan_selling_rates_text(document)
    raise ValueError(f"Unknown parse strategy: {strategy}")


def _download_feed(url: str, timeout: int) -> str:
    """
    Issue a single cache-bypassing GET for the feed.

    Raises:
        FXTransportError: On timeout, connection failure, or non-success status.
    """
    # Cache-busting parameter in case an intermediary ignores Cache-Control
    params = {"_": int(time.time() * 1000)}
    try:
        response = requests.get(url, headers=NO_CACHE_HEADERS, params=params, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.Timeout:
        raise FXTransportError(f"Feed request timed out after {timeout}s")
    except requests.exceptions.ConnectionError as e:
        raise FXTransportError(f"Connection error fetching feed: {e}")
    except requests.exceptions.HTTPError as e:
        raise FXTransportError(f"HTTP error from feed: {e}")
    except requests.exceptions.RequestException as e:
        raise FXTransportError(f"Request to feed failed: {e}")
    return response.text


def fetch_rates_with_source(config: Optional[AppConfig] = None) -> Tuple[ExchangeRateSnapshot, str]:
    """
    Fetch today's selling rates, never raising.

    Args:
        config: Application configuration with FX settings.

    Returns:
        Tuple of (snapshot, source):
            - (live rates, "tcmb") if successful
            - (fallback rates, "fallback (<reason>)") on any failure
    """
    config = config or AppConfig()
    fx_config = config.fx

    with LogContext(feed=fx_config.feed_url, strategy=fx_config.parse_strategy):
        logger.info("Fetching daily exchange rates")

        try:
            document = _download_feed(fx_config.feed_url, fx_config.timeout_seconds)
            snapshot = parse_selling_rates(document, fx_config.parse_strategy)
        except FXProviderError as e:
            logger.warning(f"{type(e).__name__}: {e}. Falling back to default rates")
            return fallback_snapshot(config), f"fallback ({e})"
        except Exception as e:
            logger.exception(f"Unexpected error fetching exchange rates: {e}")
            return fallback_snapshot(config), f"fallback (unexpected error: {e})"

        logger.info(f"Fetched exchange rates -> USD: {snapshot.usd}, EUR: {snapshot.eur}")
    return snapshot, "tcmb"


def fetch_rates(config: Optional[AppConfig] = None) -> ExchangeRateSnapshot:
    """
    Fetch today's selling rates, returning the fallback snapshot on failure.

    Args:
        config: Application configuration with FX settings.

    Returns:
        ExchangeRateSnapshot: Live or fallback rates.
    """
    snapshot, _ = fetch_rates_with_source(config)
    return snapshot


class ExchangeRateProvider:
    """
    Provider for daily USD/EUR selling rates.

    Stateless: every call performs exactly one feed request.

    Attributes:
        config: Application configuration.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        self.config = config or AppConfig()

    def fetch_rates(self) -> ExchangeRateSnapshot:
        return fetch_rates(self.config)

    def fetch_rates_with_source(self) -> Tuple[ExchangeRateSnapshot, str]:
        return fetch_rates_with_source(self.config)

    def get_fallback_rates(self) -> ExchangeRateSnapshot:
        return fallback_snapshot(self.config)


def get_exchange_rates(
    config: Optional[AppConfig] = None,
    manual_overrides: Optional[dict] = None,
) -> Tuple[ExchangeRateSnapshot, str]:
    """
    Get exchange rates honoring optional manual overrides.

    Priority per currency:
    1. manual override (if provided and positive)
    2. live feed rate
    3. fallback rate

    Args:
        config: Application configuration.
        manual_overrides: Optional mapping such as {"USD": 34.1, "EUR": 36.9}.

    Returns:
        Tuple of (snapshot, source).
    """
    overrides = {}
    for code, value in (manual_overrides or {}).items():
        code = str(code).upper()
        if value is None:
            continue
        if code not in ("USD", "EUR"):
            logger.warning(f"Ignoring manual override for unsupported currency {code}")
            continue
        if not _is_valid_rate(value):
            logger.warning(f"Invalid manual override {code}={value}, ignoring")
            continue
        overrides[code] = float(value)

    if len(overrides) == 2:
        logger.info(f"Using manual exchange rates: {overrides}")
        return ExchangeRateSnapshot(usd=overrides["USD"], eur=overrides["EUR"]), "manual_override"

    snapshot, source = fetch_rates_with_source(config)
    if not overrides:
        return snapshot, source

    snapshot = ExchangeRateSnapshot(
        usd=overrides.get("USD", snapshot.usd),
        eur=overrides.get("EUR", snapshot.eur),
    )
    return snapshot, f"{source}+manual_override"


def rate_for_currency(
    snapshot: ExchangeRateSnapshot,
    currency: str,
    local_currency: str = LOCAL_CURRENCY,
) -> float:
    """
    Resolve the conversion rate for a line item's currency.

    Args:
        snapshot: Current exchange rates.
        currency: Item currency code (TRY, USD or EUR).
        local_currency: Code that converts at 1.0.

    Returns:
        float: Local currency units per one unit of `currency`.

    Raises:
        UnsupportedCurrencyError: If the currency has no known rate.
    """
    code = (currency or "").upper()
    if code == local_currency:
        return 1.0
    if code == "USD":
        return snapshot.usd
    if code == "EUR":
        return snapshot.eur
    raise UnsupportedCurrencyError(currency)
