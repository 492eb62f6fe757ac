"""
Pricing engine module.

Turns a line item's list price, discount, margin, VAT mode and exchange
rate into VAT-exclusive cost, sell and profit figures in local currency.

Formula:
    cost          = net_list_price × (1 − discount)   if net_list_price > 0
                  = net_base_price                     otherwise
    sell          = cost × (1 + margin)
    tl_cost       = cost × R,  tl_sell = sell × R
    profit        = tl_sell − tl_cost
    totals        = unit values × quantity
Where net prices strip VAT when the entered prices include it.
"""

import logging
import math
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import pandas as pd

from src.pricing.fx_provider import ExchangeRateSnapshot, rate_for_currency

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItemPricingInput:
    """
    Inputs for pricing a single line item.

    Attributes:
        list_price: Supplier list price in the item currency.
        base_price: Direct cost, used only when list_price is zero.
        discount_rate: Supplier discount, 0-1 (e.g. 0.15).
        profit_margin: Markup applied on cost, 0-1 or more.
        exchange_rate: Local currency per item currency unit (1 for TRY).
        quantity: Number of units.
        vat_rate: VAT rate, 0-1 (e.g. 0.20).
        price_includes_vat: Whether list/base prices were entered VAT-inclusive.
    """

    list_price: float
    base_price: float = 0.0
    discount_rate: float = 0.0
    profit_margin: float = 0.0
    exchange_rate: float = 1.0
    quantity: float = 1.0
    vat_rate: float = 0.0
    price_includes_vat: bool = False


@dataclass(frozen=True)
class LineItemPricingResult:
    """
    VAT-exclusive pricing figures for a line item.

    Unit values are cost, tl_cost, original_sell_price, tl_sell_price and
    profit_amount; the total_* values are multiplied by quantity.
    """

    cost: float
    tl_cost: float
    original_sell_price: float
    tl_sell_price: float
    profit_amount: float
    total_tl_cost: float
    total_tl_sell: float
    total_profit: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def _strip_vat(price: float, vat_divisor: float) -> float:
    # Float division semantics: x/0 is ±inf and 0/0 is nan
    if vat_divisor == 0:
        if price == 0 or math.isnan(price):
            return math.nan
        return math.copysign(math.inf, price)
    return price / vat_divisor


def calculate_item_totals(item: LineItemPricingInput) -> LineItemPricingResult:
    """
    Price a line item. Pure and total: never raises, never rounds.

    A positive list price always drives cost (list minus discount) and the
    base price is ignored; base price is the cost only when list price is 0.

    Args:
        item: Line item inputs.

    Returns:
        LineItemPricingResult: Unit and total figures, VAT-exclusive.
    """
    vat_divisor = 1 + item.vat_rate
    net_list_price = _strip_vat(item.list_price, vat_divisor) if item.price_includes_vat else item.list_price
    net_base_price = _strip_vat(item.base_price, vat_divisor) if item.price_includes_vat else item.base_price

    if net_list_price > 0:
        cost = net_list_price * (1 - item.discount_rate)
    else:
        cost = net_base_price

    original_sell_price = cost * (1 + item.profit_margin)

    tl_cost = cost * item.exchange_rate
    tl_sell_price = original_sell_price * item.exchange_rate

    profit_amount = tl_sell_price - tl_cost

    return LineItemPricingResult(
        cost=cost,
        tl_cost=tl_cost,
        original_sell_price=original_sell_price,
        tl_sell_price=tl_sell_price,
        profit_amount=profit_amount,
        total_tl_cost=tl_cost * item.quantity,
        total_tl_sell=tl_sell_price * item.quantity,
        total_profit=profit_amount * item.quantity,
    )


class PricingEngine:
    """
    Engine for pricing line items against a set of exchange rates.

    Attributes:
        rates: Exchange rates used to resolve an item's currency.
        local_currency: Currency code that converts at 1.0.
    """

    def __init__(self, rates: ExchangeRateSnapshot, local_currency: str = "TRY") -> None:
        self.rates = rates
        self.local_currency = local_currency

    def price(self, item: LineItemPricingInput) -> LineItemPricingResult:
        """Price an item using its own exchange_rate."""
        return calculate_item_totals(item)

    def price_in_currency(
        self,
        currency: str,
        list_price: float,
        base_price: float = 0.0,
        discount_rate: float = 0.0,
        profit_margin: float = 0.0,
        quantity: float = 1.0,
        vat_rate: float = 0.0,
        price_includes_vat: bool = False,
    ) -> LineItemPricingResult:
        """
        Price an item, taking the exchange rate from the item currency.

        Raises:
            UnsupportedCurrencyError: If the currency has no known rate.
        """
        exchange_rate = rate_for_currency(self.rates, currency, self.local_currency)
        return calculate_item_totals(
            LineItemPricingInput(
                list_price=list_price,
                base_price=base_price,
                discount_rate=discount_rate,
                profit_margin=profit_margin,
                exchange_rate=exchange_rate,
                quantity=quantity,
                vat_rate=vat_rate,
                price_includes_vat=price_includes_vat,
            )
        )


BATCH_REQUIRED_COLUMN = "list_price"

BATCH_INPUT_COLUMNS = {
    "base_price": 0.0,
    "discount_rate": 0.0,
    "profit_margin": 0.0,
    "quantity": 1.0,
    "vat_rate": 0.0,
}

BATCH_OUTPUT_COLUMNS = list(LineItemPricingResult.__dataclass_fields__)


def _as_flag(value: Any) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "y", "evet")
    return bool(value)


def price_line_items_batch(
    df: pd.DataFrame,
    rates: ExchangeRateSnapshot,
    currency_column: str = "currency",
    local_currency: str = "TRY",
) -> pd.DataFrame:
    """
    Price a batch of line items, e.g. from a bulk product import.

    Missing optional columns and blank optional cells take their defaults.
    Rows with a blank list_price, a non-numeric value or an unknown currency
    get None for every output column.

    Args:
        df: DataFrame with one line item per row.
        rates: Exchange rates used for the currency column.
        currency_column: Column holding the item currency.
        local_currency: Currency code that converts at 1.0.

    Returns:
        pd.DataFrame: Copy of df with exchange_rate and pricing columns added.
    """
    df = df.copy()

    def calc_row(row: pd.Series) -> pd.Series:
        empty = pd.Series({column: None for column in ["exchange_rate"] + BATCH_OUTPUT_COLUMNS})
        try:
            list_price = row.get(BATCH_REQUIRED_COLUMN)
            if list_price is None or pd.isna(list_price):
                raise ValueError(f"missing {BATCH_REQUIRED_COLUMN}")
            values = {BATCH_REQUIRED_COLUMN: float(list_price)}
            for column, default in BATCH_INPUT_COLUMNS.items():
                raw = row.get(column, default)
                values[column] = default if raw is None or pd.isna(raw) else float(raw)
            includes_vat = _as_flag(row.get("price_includes_vat", False))
            currency = row.get(currency_column, local_currency)
            if currency is None or pd.isna(currency):
                currency = local_currency
            exchange_rate = rate_for_currency(rates, str(currency), local_currency)
        except (ValueError, TypeError) as e:
            logger.debug(f"Skipping unpriceable row {row.name}: {e}")
            return empty

        result = calculate_item_totals(
            LineItemPricingInput(
                exchange_rate=exchange_rate,
                price_includes_vat=includes_vat,
                **values,
            )
        )
        return pd.Series({"exchange_rate": exchange_rate, **result.to_dict()})

    if df.empty:
        for column in ["exchange_rate"] + BATCH_OUTPUT_COLUMNS:
            df[column] = pd.Series(dtype="float64")
        return df

    priced = df.apply(calc_row, axis=1)
    for column in priced.columns:
        df[column] = priced[column]

    return df


def round_money(value: float, decimal_places: int = 2) -> float:
    """
    Round a monetary value half-up for display.

    Args:
        value: Value to round.
        decimal_places: Number of decimal places.

    Returns:
        float: Rounded value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return float(Decimal(str(value)).quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP))


def get_pricing_summary(
    result: LineItemPricingResult,
    currency: str = "TRY",
    exchange_rate: float = 1.0,
) -> str:
    """
    Get a human-readable summary of a line item calculation.

    Args:
        result: Pricing result to summarize.
        currency: Item currency code.
        exchange_rate: Rate that was applied.

    Returns:
        str: Formatted pricing breakdown.
    """
    return (
        f"{currency} {result.cost:.2f} cost → {currency} {result.original_sell_price:.2f} sell "
        f"× {exchange_rate:.4f} = TRY {result.tl_sell_price:.2f} "
        f"(profit TRY {result.profit_amount:.2f}/unit, TRY {result.total_profit:.2f} total)"
    )

