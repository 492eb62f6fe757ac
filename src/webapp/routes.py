"""
FastAPI routes for the quoting web API.

Handles:
- Today's exchange rates (never fails; falls back to default rates)
- Line item pricing
- Quote totals
- Dashboard metrics over supplied proposal/customer records
"""

import logging
from functools import lru_cache
from typing import Optional

import yaml
from fastapi import APIRouter, Depends
from pydantic.alias_generators import to_camel

from src.pricing.fx_provider import (
    ExchangeRateSnapshot,
    UnsupportedCurrencyError,
    fetch_rates_with_source,
    rate_for_currency,
)
from src.pricing.pricing_engine import LineItemPricingInput, calculate_item_totals
from src.pricing.quote_totals import QuoteLineItem, calculate_quote_totals
from src.reporting.proposal_aggregator import (
    Customer,
    ProposalVersion,
    compute_dashboard_metrics,
    format_change_text,
)
from src.utils.config_loader import AppConfig, load_config, load_env
from src.webapp.exceptions import ConfigurationError, InvalidRecordError, UnsupportedCurrencyInputError
from src.webapp.schemas import (
    DashboardRequest,
    DashboardResponse,
    ExchangeRates,
    ExchangeRatesResponse,
    LineItemRequest,
    LineItemResponse,
    MetricChange,
    QuoteTotalsRequest,
    QuoteTotalsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@lru_cache
def get_app_config() -> AppConfig:
    """Load configuration once per process."""
    load_env()
    try:
        return load_config()
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid configuration file: {e}")


def _resolve_rates(rates: Optional[ExchangeRates], config: AppConfig) -> ExchangeRateSnapshot:
    if rates is not None:
        return ExchangeRateSnapshot(usd=rates.USD, eur=rates.EUR)
    snapshot, _ = fetch_rates_with_source(config)
    return snapshot


@router.get("/exchange-rates", response_model=ExchangeRatesResponse)
def exchange_rates_endpoint(
    config: AppConfig = Depends(get_app_config),
) -> ExchangeRatesResponse:
    """Fetch today's selling rates; answers with fallback rates on failure."""
    snapshot, source = fetch_rates_with_source(config)
    success = not source.startswith("fallback")
    return ExchangeRatesResponse(
        success=success,
        USD=snapshot.usd,
        EUR=snapshot.eur,
        source="tcmb" if success else "fallback",
        error=None if success else source,
    )


@router.post("/pricing/line-item", response_model=LineItemResponse)
def price_line_item_endpoint(
    request: LineItemRequest,
    config: AppConfig = Depends(get_app_config),
) -> LineItemResponse:
    """Price a single line item."""
    exchange_rate = request.exchange_rate
    if request.currency:
        snapshot = _resolve_rates(request.exchange_rates, config)
        try:
            exchange_rate = rate_for_currency(snapshot, request.currency, config.pricing.local_currency)
        except UnsupportedCurrencyError as e:
            raise UnsupportedCurrencyInputError(e.currency)

    result = calculate_item_totals(
        LineItemPricingInput(
            list_price=request.list_price,
            base_price=request.base_price,
            discount_rate=request.discount_rate,
            profit_margin=request.profit_margin,
            exchange_rate=exchange_rate,
            quantity=request.quantity,
            vat_rate=request.vat_rate,
            price_includes_vat=request.price_includes_vat,
        )
    )
    return LineItemResponse(exchange_rate=exchange_rate, **result.to_dict())


@router.post("/pricing/quote-totals", response_model=QuoteTotalsResponse)
def quote_totals_endpoint(
    request: QuoteTotalsRequest,
    config: AppConfig = Depends(get_app_config),
) -> QuoteTotalsResponse:
    """Compute grand totals and group subtotals for a quote."""
    snapshot = _resolve_rates(request.exchange_rates, config)
    vat_rate = request.vat_rate if request.vat_rate is not None else config.pricing.default_vat_rate

    items = [QuoteLineItem(**item.model_dump()) for item in request.items]
    try:
        totals = calculate_quote_totals(
            items,
            snapshot,
            vat_rate=vat_rate,
            default_group_name=config.reporting.default_group_name,
        )
    except UnsupportedCurrencyError as e:
        raise UnsupportedCurrencyInputError(e.currency)

    return QuoteTotalsResponse(
        exchange_rates=ExchangeRates(**snapshot.to_dict()),
        **totals.to_dict(),
    )


@router.post("/dashboard/metrics", response_model=DashboardResponse)
def dashboard_metrics_endpoint(request: DashboardRequest) -> DashboardResponse:
    """Aggregate proposal versions into month-over-month dashboard metrics."""
    proposals = []
    for index, record in enumerate(request.proposals):
        try:
            proposals.append(ProposalVersion.from_record(record))
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidRecordError(f"Invalid proposal record at index {index}: {e}", index)

    customers = []
    for index, record in enumerate(request.customers):
        try:
            customers.append(Customer.from_record(record))
        except KeyError as e:
            raise InvalidRecordError(
                f"Invalid customer record at index {index}: missing {e}", index, kind="customer"
            )

    metrics = compute_dashboard_metrics(proposals, customers, request.now)
    changes = {
        to_camel(name): MetricChange(
            indicator=change.indicator.value,
            percent=change.percent,
            text=format_change_text(change),
        )
        for name, change in metrics.changes().items()
    }
    return DashboardResponse(changes=changes, **metrics.to_dict())
