"""
Pydantic models for the quoting web API.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ExchangeRates(BaseModel):
    """Exchange rates as {USD, EUR}."""

    USD: float = Field(..., gt=0, description="TRY per 1 USD")
    EUR: float = Field(..., gt=0, description="TRY per 1 EUR")


class ExchangeRatesResponse(BaseModel):
    """Response model for the exchange rates endpoint."""

    success: bool
    USD: float
    EUR: float
    source: str
    error: Optional[str] = None


class LineItemRequest(CamelModel):
    """
    Line item pricing request.

    When `currency` is given, the rate is resolved from `exchange_rates`
    (or today's rates) instead of `exchange_rate`.
    """

    list_price: float = 0.0
    base_price: float = 0.0
    discount_rate: float = 0.0
    profit_margin: float = 0.0
    exchange_rate: float = 1.0
    quantity: float = 1.0
    vat_rate: float = Field(0.0, gt=-1)
    price_includes_vat: bool = False
    currency: Optional[str] = None
    exchange_rates: Optional[ExchangeRates] = None

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v):
        """Uppercase and strip the currency code."""
        if v:
            v = v.strip().upper()
            return v if v else None
        return None


class LineItemResponse(CamelModel):
    """VAT-exclusive pricing figures for a line item."""

    cost: float
    tl_cost: float
    original_sell_price: float
    tl_sell_price: float
    profit_amount: float
    total_tl_cost: float
    total_tl_sell: float
    total_profit: float
    exchange_rate: float


class QuoteItem(CamelModel):
    """A quote line item in its own currency."""

    list_price: float = 0.0
    quantity: float = 0.0
    currency: str = "TRY"
    base_price: float = 0.0
    discount_rate: float = 0.0
    profit_margin: float = 0.0
    vat_rate: Optional[float] = Field(None, gt=-1)
    price_includes_vat: bool = False
    group_name: Optional[str] = None


class QuoteTotalsRequest(CamelModel):
    """Request model for quote totals."""

    items: List[QuoteItem] = Field(default_factory=list)
    exchange_rates: Optional[ExchangeRates] = None
    vat_rate: Optional[float] = Field(None, ge=0)


class GroupTotalsResponse(CamelModel):
    """Subtotals for one group of quote items."""

    total_sell_tl: float
    total_cost_tl: float
    totals_by_currency: Dict[str, float]


class QuoteTotalsResponse(CamelModel):
    """Response model for quote totals."""

    grand_total_sell_ex_vat: float
    grand_total_cost: float
    grand_total_profit: float
    grand_total_profit_margin: float
    vat_amount: float
    grand_total_sell_with_vat: float
    group_totals: Dict[str, GroupTotalsResponse]
    exchange_rates: ExchangeRates


class DashboardRequest(CamelModel):
    """Proposal and customer records to aggregate."""

    proposals: List[Dict[str, Any]] = Field(default_factory=list)
    customers: List[Dict[str, Any]] = Field(default_factory=list)
    now: Optional[datetime] = None


class MetricChange(BaseModel):
    """Change of one metric against the previous month."""

    indicator: str
    percent: Optional[float] = None
    text: str


class DashboardResponse(CamelModel):
    """Response model for dashboard metrics."""

    total_customers: int
    active_quotes: int
    approved_quotes_count: int
    total_revenue: float
    active_quotes_previous: int
    approved_quotes_count_previous: int
    total_revenue_previous: float
    changes: Dict[str, MetricChange]
