"""
Quote totals module.

Prices every line item of a quote and rolls the results up into grand
totals (with VAT added for display) and per-group subtotals.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable

from src.pricing.fx_provider import SUPPORTED_CURRENCIES, ExchangeRateSnapshot, rate_for_currency
from src.pricing.pricing_engine import LineItemPricingInput, calculate_item_totals

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = 0.20
DEFAULT_GROUP_NAME = "Diğer"


@dataclass(frozen=True)
class QuoteLineItem:
    """
    A line item as entered on a quote, in its own currency.

    An item without its own vat_rate uses the quote's VAT rate when
    stripping VAT from VAT-inclusive prices.
    """

    list_price: float
    quantity: float
    currency: str = "TRY"
    base_price: float = 0.0
    discount_rate: float = 0.0
    profit_margin: float = 0.0
    vat_rate: float | None = None
    price_includes_vat: bool = False
    group_name: str | None = None


@dataclass
class GroupTotals:
    """Subtotals for one group of line items."""

    total_sell_tl: float = 0.0
    total_cost_tl: float = 0.0
    totals_by_currency: dict[str, float] = field(
        default_factory=lambda: {code: 0.0 for code in SUPPORTED_CURRENCIES}
    )


@dataclass
class QuoteTotals:
    """
    Quote-level totals in local currency.

    Attributes:
        grand_total_sell_ex_vat: Sum of item sell totals, VAT-exclusive.
        grand_total_cost: Sum of item cost totals.
        grand_total_profit: Sell minus cost.
        grand_total_profit_margin: Profit as a share of sell (0 when sell is 0).
        vat_amount: VAT on the VAT-exclusive sell total.
        grand_total_sell_with_vat: Sell total plus VAT.
        group_totals: Subtotals keyed by group name.
    """

    grand_total_sell_ex_vat: float = 0.0
    grand_total_cost: float = 0.0
    grand_total_profit: float = 0.0
    grand_total_profit_margin: float = 0.0
    vat_amount: float = 0.0
    grand_total_sell_with_vat: float = 0.0
    group_totals: dict[str, GroupTotals] = field(default_factory=dict)

    @property
    def total_amount(self) -> float:
        """Amount persisted as the proposal's totalAmount."""
        return self.grand_total_sell_ex_vat

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_quote_totals(
    items: Iterable[QuoteLineItem],
    rates: ExchangeRateSnapshot,
    vat_rate: float = DEFAULT_VAT_RATE,
    default_group_name: str = DEFAULT_GROUP_NAME,
) -> QuoteTotals:
    """
    Compute quote totals from its line items.

    Items without a quantity or list price are skipped.

    Args:
        items: Quote line items.
        rates: Exchange rates for USD/EUR items.
        vat_rate: VAT rate applied to the grand total, and to items without their own.
        default_group_name: Group for items without a group name.

    Returns:
        QuoteTotals: Grand totals and per-group subtotals.

    Raises:
        UnsupportedCurrencyError: If an item uses an unknown currency.
    """
    totals = QuoteTotals()
    skipped = 0

    for item in items:
        if not item.quantity or not item.list_price:
            skipped += 1
            continue

        currency = item.currency.upper()
        result = calculate_item_totals(
            LineItemPricingInput(
                list_price=item.list_price,
                base_price=item.base_price,
                discount_rate=item.discount_rate,
                profit_margin=item.profit_margin,
                exchange_rate=rate_for_currency(rates, currency),
                quantity=item.quantity,
                vat_rate=item.vat_rate if item.vat_rate is not None else vat_rate,
                price_includes_vat=item.price_includes_vat,
            )
        )

        totals.grand_total_sell_ex_vat += result.total_tl_sell
        totals.grand_total_cost += result.total_tl_cost

        group = totals.group_totals.setdefault(item.group_name or default_group_name, GroupTotals())
        group.total_sell_tl += result.total_tl_sell
        group.total_cost_tl += result.total_tl_cost
        group.totals_by_currency[currency] += result.original_sell_price * item.quantity

    if skipped:
        logger.debug(f"Skipped {skipped} line item(s) without quantity or list price")

    totals.grand_total_profit = totals.grand_total_sell_ex_vat - totals.grand_total_cost
    if totals.grand_total_sell_ex_vat > 0:
        totals.grand_total_profit_margin = totals.grand_total_profit / totals.grand_total_sell_ex_vat
    totals.vat_amount = totals.grand_total_sell_ex_vat * vat_rate
    totals.grand_total_sell_with_vat = totals.grand_total_sell_ex_vat + totals.vat_amount

    return totals
