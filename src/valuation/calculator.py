from __future__ import annotations

from valuation.config import DEFAULT_PRICING_CONFIG, PricingConfig
from valuation.data_models import (
    LocationCategory,
    PriceBreakdown,
    ValuationRequest,
    ValuationResult,
    round_amount,
)
from valuation.errors import UnknownConditionError, UnknownModelError, YearOutOfRangeError


def validate_request(request: ValuationRequest, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> None:
    if request.model not in config.pricing_table:
        raise UnknownModelError(request.model)
    if request.year < config.min_year or request.year > config.reference_year:
        raise YearOutOfRangeError(request.year, config.min_year, config.reference_year)
    if request.condition not in config.condition_multipliers:
        raise UnknownConditionError(request.condition, list(config.condition_multipliers))


def classify_location(location: str, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> LocationCategory:
    # Exact, case-sensitive match; anything unknown is simply "other".
    if location in config.metro_locations:
        return LocationCategory.METRO
    if location in config.rural_locations:
        return LocationCategory.RURAL
    return LocationCategory.OTHER


def location_adjustment_pct(location: str, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> float:
    category = classify_location(location, config)
    if category is LocationCategory.METRO:
        return config.metro_adjustment_pct
    if category is LocationCategory.RURAL:
        return config.rural_adjustment_pct
    return 0.0


def confidence_score(request: ValuationRequest, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> float:
    score = config.base_confidence
    if not request.hours:
        score -= config.missing_hours_penalty
    if request.hours > config.high_hours_threshold:
        score -= config.high_hours_penalty
    if not request.serial_number:
        score -= config.missing_serial_penalty
    if request.condition == "breakdown":
        score -= config.breakdown_penalty
    score = max(score, config.min_confidence)
    return round_amount(score * 100) / 100


def calculate(request: ValuationRequest, config: PricingConfig = DEFAULT_PRICING_CONFIG) -> ValuationResult:
    """Price one unit of equipment.

    Steps run in a fixed order and each works on the running price:
    age depreciation, hour-based wear, condition multiplier, location
    premium/discount. Raises a ``ValuationValidationError`` subclass for
    unknown models, out-of-range years and unknown conditions.
    """
    validate_request(request, config)

    base_price = float(config.pricing_table[request.model].base_price)

    age_years = config.reference_year - request.year
    depreciation_pct = min(age_years * config.depreciation_rate_pct, config.max_depreciation_pct)
    age_depreciation = base_price * depreciation_pct / 100
    price_after_age = base_price - age_depreciation

    raw_hour_deduction = request.hours * config.cost_per_hour
    hour_deduction = min(raw_hour_deduction, price_after_age * config.max_hour_deduction_ratio)
    price_after_hours = price_after_age - hour_deduction

    multiplier = config.condition_multipliers[request.condition]
    price_after_condition = price_after_hours * multiplier

    location_pct = location_adjustment_pct(request.location, config)
    location_adjustment = price_after_condition * location_pct / 100
    final_price = price_after_condition + location_adjustment

    confidence = confidence_score(request, config)

    breakdown = PriceBreakdown(
        base_price=base_price,
        age_depreciation=-age_depreciation,
        hour_based_deduction=-hour_deduction,
        condition_adjustment=price_after_condition - price_after_hours,
        location_adjustment=location_adjustment,
    )
    notes = _pricing_notes(
        request,
        config,
        base_price=base_price,
        age_years=age_years,
        age_depreciation=age_depreciation,
        hour_deduction=hour_deduction,
        multiplier=multiplier,
        location_pct=location_pct,
        confidence=confidence,
    )
    return ValuationResult(
        request=request,
        breakdown=breakdown,
        final_price=final_price,
        confidence_score=confidence,
        pricing_notes=notes,
    )


def _pricing_notes(
    request: ValuationRequest,
    config: PricingConfig,
    *,
    base_price: float,
    age_years: int,
    age_depreciation: float,
    hour_deduction: float,
    multiplier: float,
    location_pct: float,
    confidence: float,
) -> tuple[str, ...]:
    cur = config.currency_symbol
    sign = "+" if location_pct > 0 else ""
    return (
        f"Base price for {request.model}: {cur}{round_amount(base_price):,}",
        f"Age depreciation ({age_years} years @ {_fmt_number(config.depreciation_rate_pct)}%/year): "
        f"{cur}{round_amount(age_depreciation):,}",
        f"Hour-based wear ({_fmt_number(request.hours)} hours @ {cur}{_fmt_number(config.cost_per_hour)}/hour): "
        f"{cur}{round_amount(hour_deduction):,}",
        f"Condition adjustment ({request.condition}): {round_amount(multiplier * 100)}% of depreciated value",
        f"Location adjustment ({request.location}): {sign}{_fmt_number(location_pct)}%",
        f"Confidence score: {round_amount(confidence * 100)}%",
    )


def _fmt_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
