from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Literal


Condition = Literal["excellent", "good", "average", "poor", "breakdown"]


class LocationCategory(str, Enum):
    METRO = "metro"
    RURAL = "rural"
    OTHER = "other"


def round_amount(value: float) -> int:
    """Round half up to a whole currency unit (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ModelPrice:
    base_price: float
    year_reference: int


@dataclass(frozen=True)
class ValuationRequest:
    model: str
    year: int
    condition: str
    location: str
    hours: float = 0
    serial_number: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "year": self.year,
            "condition": self.condition,
            "location": self.location,
            "hours": self.hours,
            "serialNumber": self.serial_number,
        }


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: float
    age_depreciation: float
    hour_based_deduction: float
    condition_adjustment: float
    location_adjustment: float

    @property
    def total_adjustment(self) -> float:
        return (
            self.age_depreciation
            + self.hour_based_deduction
            + self.condition_adjustment
            + self.location_adjustment
        )

    def to_payload(self) -> dict[str, int]:
        return {
            "basePrice": round_amount(self.base_price),
            "ageDepreciation": round_amount(self.age_depreciation),
            "hourBasedDeduction": round_amount(self.hour_based_deduction),
            "conditionAdjustment": round_amount(self.condition_adjustment),
            "locationAdjustment": round_amount(self.location_adjustment),
        }


@dataclass(frozen=True)
class ValuationResult:
    """Priced estimate for one request.

    Amounts are kept unrounded; ``to_payload`` rounds them for display and
    storage. ``valuation_id`` is only set once the store has accepted the row.
    """

    request: ValuationRequest
    breakdown: PriceBreakdown
    final_price: float
    confidence_score: float
    pricing_notes: tuple[str, ...]
    valuation_id: str | None = None

    def with_valuation_id(self, valuation_id: str) -> ValuationResult:
        return replace(self, valuation_id=valuation_id)

    def to_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "input": self.request.to_payload(),
            "breakdown": self.breakdown.to_payload(),
            "finalPrice": round_amount(self.final_price),
            "confidenceScore": self.confidence_score,
            "pricingNotes": list(self.pricing_notes),
        }
        if self.valuation_id is not None:
            data["valuationId"] = self.valuation_id
        return data
