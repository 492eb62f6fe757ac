"""
Pricing module.

Handles daily FX selling-rate retrieval (with fallback rates) and
multi-currency line item and quote pricing.
"""

from src.pricing.fx_provider import (
    ExchangeRateProvider,
    ExchangeRateSnapshot,
    fetch_rates,
    get_exchange_rates,
    rate_for_currency,
)
from src.pricing.pricing_engine import (
    LineItemPricingInput,
    LineItemPricingResult,
    PricingEngine,
    calculate_item_totals,
    price_line_items_batch,
)
from src.pricing.quote_totals import QuoteLineItem, QuoteTotals, calculate_quote_totals

__all__ = [
    "ExchangeRateProvider",
    "ExchangeRateSnapshot",
    "fetch_rates",
    "get_exchange_rates",
    "rate_for_currency",
    "LineItemPricingInput",
    "LineItemPricingResult",
    "PricingEngine",
    "calculate_item_totals",
    "price_line_items_batch",
    "QuoteLineItem",
    "QuoteTotals",
    "calculate_quote_totals",
]
