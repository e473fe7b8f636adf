"""Pricing policy for the quote engine.

All regulated or product-owned numbers live here instead of being scattered
through the pricing and validation code: VAT, generic hourly bounds,
ROT/RUT deduction rules (dated and versioned), risk margin parameters and
the review threshold. The policy is immutable and injected into the
pricing engine, validators and orchestrator.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Tuple


ROT = "rot"
RUT = "rut"
NO_DEDUCTION = "none"


@dataclass(frozen=True)
class DeductionRule:
    """A ROT or RUT deduction rule in force from a given date."""

    kind: str
    rate: float
    cap_per_person: float
    effective_from: date
    version: str
    effective_until: Optional[date] = None

    def applies_on(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_until is None or on_date <= self.effective_until


# Skatteverket: ROT temporarily raised to 50 % for work paid 2025-05-12..2025-12-31.
# Values flagged for product-owner confirmation before each tax year.
DEFAULT_DEDUCTION_RULES: Tuple[DeductionRule, ...] = (
    DeductionRule(ROT, 0.30, 50000, date(2021, 1, 1), "rot-2021", date(2025, 5, 11)),
    DeductionRule(ROT, 0.50, 50000, date(2025, 5, 12), "rot-2025-temp", date(2025, 12, 31)),
    DeductionRule(ROT, 0.30, 50000, date(2026, 1, 1), "rot-2026"),
    DeductionRule(RUT, 0.50, 75000, date(2021, 1, 1), "rut-2021"),
)


@dataclass(frozen=True)
class PricingPolicy:
    """Immutable pricing and validation policy."""

    vat_rate: float = 0.25

    # Generic hourly bounds (kr/h, excl. VAT)
    min_hourly_rate: float = 500.0
    warn_hourly_rate: float = 1200.0
    max_hourly_rate: float = 1500.0

    # Service vehicle default when the user has no equipment rate for it
    default_service_vehicle_per_day: float = 800.0

    deduction_rules: Tuple[DeductionRule, ...] = field(default=DEFAULT_DEDUCTION_RULES)

    # Risk margin: applied to high-value quotes resting on many weak assumptions
    risk_margin_value_threshold: float = 100000.0
    risk_margin_low_confidence: int = 60
    risk_margin_min_low_confidence_count: int = 3
    risk_margin_rate: float = 0.05

    # Assumption confidence
    min_history_samples: int = 3
    review_threshold: float = 0.7

    def deduction_rule(self, kind: str, on_date: Optional[date] = None) -> Optional[DeductionRule]:
        """Return the ROT/RUT rule in force on a date, or None for no deduction."""
        if kind not in (ROT, RUT):
            return None
        on_date = on_date or date.today()
        matching = [r for r in self.deduction_rules if r.kind == kind and r.applies_on(on_date)]
        if not matching:
            return None
        return max(matching, key=lambda r: r.effective_from)


DEFAULT_POLICY = PricingPolicy()
