from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from valuation.data_models import ModelPrice


def _frozen(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class PricingConfig:
    """Reference tables and tunables for the valuation calculator.

    Everything the algorithm depends on lives here so tests and deployments can
    inject their own tables without touching the calculator.
    """

    reference_year: int = 2024  # valuation "now"; never read from the clock
    min_year: int = 2000
    depreciation_rate_pct: float = 10.0
    max_depreciation_pct: float = 85.0
    cost_per_hour: float = 50.0
    max_hour_deduction_ratio: float = 0.30
    currency_symbol: str = "₹"

    base_confidence: float = 0.95
    missing_hours_penalty: float = 0.10
    high_hours_threshold: float = 12_000
    high_hours_penalty: float = 0.05
    missing_serial_penalty: float = 0.05
    breakdown_penalty: float = 0.15
    min_confidence: float = 0.50

    pricing_table: Mapping[str, ModelPrice] = field(
        default_factory=lambda: {
            "JCB 3DX": ModelPrice(base_price=450_000, year_reference=2000),
            "JCB 3CX": ModelPrice(base_price=400_000, year_reference=2000),
            "JCB 4CX": ModelPrice(base_price=550_000, year_reference=2000),
        }
    )
    condition_multipliers: Mapping[str, float] = field(
        default_factory=lambda: {
            "excellent": 1.0,
            "good": 0.85,
            "average": 0.65,
            "poor": 0.45,
            "breakdown": 0.2,  # parts value
        }
    )
    metro_locations: tuple[str, ...] = ("Delhi", "Haryana", "Gujarat", "Maharashtra", "Tamil Nadu")
    rural_locations: tuple[str, ...] = ("Bihar", "Jharkhand", "Uttar Pradesh", "Madhya Pradesh")
    metro_adjustment_pct: float = 10.0
    rural_adjustment_pct: float = -8.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "pricing_table", _frozen(self.pricing_table))
        object.__setattr__(self, "condition_multipliers", _frozen(self.condition_multipliers))
        overlap = set(self.metro_locations) & set(self.rural_locations)
        if overlap:
            raise ValueError(f"Locations cannot be both metro and rural: {sorted(overlap)}")
        if self.min_year > self.reference_year:
            raise ValueError("min_year must not be after reference_year")
        for condition, multiplier in self.condition_multipliers.items():
            if not 0 < multiplier <= 1:
                raise ValueError(f"Condition multiplier for {condition!r} must be in (0, 1]")

    @property
    def supported_locations(self) -> list[str]:
        return [*self.metro_locations, *self.rural_locations]


DEFAULT_PRICING_CONFIG = PricingConfig()
