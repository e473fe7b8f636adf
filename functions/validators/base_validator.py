"""Base quote validator.

Runs the generic sanity checks every priced quote must pass, in a fixed
order, and gives job-specific validators a hook for domain rules. Errors
block a final quote; warnings are advisory. Validators are pure: the same
quote always yields the same result.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from config.pricing_policy import DEFAULT_POLICY, PricingPolicy
from models.quote import Quote
from models.rates import Benchmark
from models.validation import Severity, ValidationIssue, ValidationResult
from services.job_registry import find_job_definition
from services.pricing_engine import normalize_item_name

logger = structlog.get_logger()


@dataclass(frozen=True)
class ValidationLimits:
    """Bounds for the generic checks."""

    min_hourly_rate: float = 500.0
    warn_hourly_rate: float = 1200.0
    max_hourly_rate: float = 1500.0
    # Upper bound on total cost per labor hour; materials included
    max_cost_per_hour: float = 1500.0
    min_total_hours: float = 1.0
    min_work_items: int = 1
    max_work_item_share: float = 0.70
    min_material_ratio: float = 0.05
    max_material_ratio: float = 3.0
    warn_equipment_ratio: float = 0.5
    max_equipment_ratio: float = 1.0
    # Hours per work item relative to the job's standard time for the quantity
    min_time_ratio: float = 0.5
    max_time_ratio: float = 2.5

    @classmethod
    def from_policy(cls, policy: PricingPolicy, **overrides) -> "ValidationLimits":
        values = {
            "min_hourly_rate": policy.min_hourly_rate,
            "warn_hourly_rate": policy.warn_hourly_rate,
            "max_hourly_rate": policy.max_hourly_rate,
            "max_cost_per_hour": policy.max_hourly_rate,
        }
        values.update(overrides)
        return cls(**values)


def has_item(quote_items: List[str], keyword: str) -> bool:
    """Whether any line name contains a word starting with keyword."""
    keyword = normalize_item_name(keyword)
    for name in quote_items:
        normalized = normalize_item_name(name)
        if keyword in normalized.split() or any(w.startswith(keyword) for w in normalized.split()):
            return True
        if " " in keyword and keyword in normalized:
            return True
    return False


# Lower floors for budget materials; premium is held to the standard floor
QUALITY_FLOOR_FACTORS = {"budget": 0.75, "standard": 1.0, "premium": 1.0}


def area_price_floor(
    area: float,
    per_sqm: float,
    reference_area: float,
    marginal_per_sqm: float,
    quality: str = "standard"
) -> float:
    """Lowest acceptable total for an area-priced renovation.

    Up to reference_area the floor grows by per_sqm for each kvm. Beyond it
    each extra kvm only adds marginal_per_sqm, since fixed installation work
    (plumbing, electrics, inspection) does not grow with the room.
    """
    if area <= reference_area:
        floor = per_sqm * area
    else:
        floor = per_sqm * reference_area + marginal_per_sqm * (area - reference_area)
    return round(floor * QUALITY_FLOOR_FACTORS.get(quality, 1.0), 2)


class _Collector:
    """Accumulates issues while a validator runs."""

    def __init__(self):
        self.issues: List[ValidationIssue] = []

    def error(self, code: str, message: str, bound: Optional[float] = None, actual: Optional[float] = None) -> None:
        self.issues.append(ValidationIssue(
            code=code, message=message, severity=Severity.ERROR, bound=bound, actual=actual
        ))

    def warning(self, code: str, message: str, bound: Optional[float] = None, actual: Optional[float] = None) -> None:
        self.issues.append(ValidationIssue(
            code=code, message=message, severity=Severity.WARNING, bound=bound, actual=actual
        ))


class BaseQuoteValidator:
    """Generic checks plus a domain hook.

    Subclasses set `name`, override `limits_overrides` and implement
    `domain_checks` for job-specific rules.
    """

    name = "generic"
    limits_overrides: Dict[str, Any] = {}

    def __init__(self, policy: Optional[PricingPolicy] = None):
        self.policy = policy or DEFAULT_POLICY
        self.limits = ValidationLimits.from_policy(self.policy, **self.limits_overrides)

    def validate(
        self,
        quote: Quote,
        description: str = "",
        benchmark: Optional[Benchmark] = None
    ) -> ValidationResult:
        """Validate a quote and return every violated bound."""
        collector = _Collector()
        details = self._generic_checks(quote, collector)
        self._benchmark_check(quote, benchmark, collector, details)
        self._time_estimate_check(quote, collector, details)
        self.domain_checks(quote, description, collector, details)

        errors = [i.message for i in collector.issues if i.severity == Severity.ERROR]
        warnings = [i.message for i in collector.issues if i.severity == Severity.WARNING]

        logger.info(
            "quote_validated",
            validator=self.name,
            job_type=quote.job_type,
            passed=not errors,
            errors=len(errors),
            warnings=len(warnings)
        )
        return ValidationResult(
            passed=not errors,
            errors=errors,
            warnings=warnings,
            issues=collector.issues,
            details=details,
            validator_used=self.name,
        )

    def domain_checks(
        self,
        quote: Quote,
        description: str,
        collector: _Collector,
        details: Dict[str, Any]
    ) -> None:
        """Job-specific checks. The generic validator has none."""

    def _generic_checks(self, quote: Quote, collector: _Collector) -> Dict[str, Any]:
        limits = self.limits
        summary = quote.summary
        total_hours = quote.total_hours
        work_cost = summary.work_cost
        material_cost = summary.material_cost
        equipment_cost = summary.equipment_cost
        total_cost = round(work_cost + material_cost + equipment_cost, 2)

        effective_rate = work_cost / total_hours if total_hours > 0 else 0.0
        material_ratio = material_cost / work_cost if work_cost > 0 else 0.0
        equipment_ratio = equipment_cost / work_cost if work_cost > 0 else 0.0
        min_cost = total_hours * limits.min_hourly_rate
        max_cost = total_hours * limits.max_cost_per_hour

        # 1. Total hours
        if total_hours < limits.min_total_hours:
            collector.error(
                "min_total_hours",
                f"För få timmar: {total_hours:g} h (minst {limits.min_total_hours:g} h)",
                bound=limits.min_total_hours, actual=total_hours
            )

        # 2. Total cost against hours
        if total_hours > 0 and total_cost < min_cost:
            collector.error(
                "min_total_cost",
                f"Totalpriset {total_cost:,.0f} kr är för lågt för {total_hours:g} h "
                f"(minst {min_cost:,.0f} kr vid {limits.min_hourly_rate:.0f} kr/h)",
                bound=min_cost, actual=total_cost
            )
        elif total_hours > 0 and total_cost > max_cost:
            collector.warning(
                "max_total_cost",
                f"Totalpriset {total_cost:,.0f} kr är högt för {total_hours:g} h "
                f"(över {max_cost:,.0f} kr vid {limits.max_cost_per_hour:.0f} kr/h)",
                bound=max_cost, actual=total_cost
            )

        # 3. Effective hourly rate
        if total_hours > 0:
            if effective_rate < limits.min_hourly_rate:
                collector.error(
                    "min_hourly_rate",
                    f"Timpriset är för lågt: {effective_rate:.0f} kr/h (minimum {limits.min_hourly_rate:.0f} kr/h)",
                    bound=limits.min_hourly_rate, actual=round(effective_rate, 2)
                )
            elif effective_rate > limits.max_hourly_rate:
                collector.warning(
                    "max_hourly_rate",
                    f"Timpriset är mycket högt: {effective_rate:.0f} kr/h (max {limits.max_hourly_rate:.0f} kr/h)",
                    bound=limits.max_hourly_rate, actual=round(effective_rate, 2)
                )
            elif effective_rate > limits.warn_hourly_rate:
                collector.warning(
                    "high_hourly_rate",
                    f"Timpriset är högt: {effective_rate:.0f} kr/h",
                    bound=limits.warn_hourly_rate, actual=round(effective_rate, 2)
                )

        # 4. Work items present
        if len(quote.work_items) < limits.min_work_items:
            collector.error(
                "no_work_items",
                "Offerten saknar arbetsmoment",
                bound=limits.min_work_items, actual=len(quote.work_items)
            )

        # 5. No single item dominates the hours
        if len(quote.work_items) > 1 and total_hours > 0:
            for item in quote.work_items:
                share = item.hours / total_hours
                if share > limits.max_work_item_share:
                    collector.warning(
                        "work_item_share",
                        f"\"{item.name}\" står för {share:.0%} av alla timmar",
                        bound=limits.max_work_item_share, actual=round(share, 3)
                    )

        # 6. Material to labor ratio
        if material_cost > 0 and work_cost > 0:
            if material_ratio < limits.min_material_ratio:
                collector.warning(
                    "low_material_ratio",
                    f"Materialkostnaden är ovanligt låg ({material_ratio:.0%} av arbetskostnaden)",
                    bound=limits.min_material_ratio, actual=round(material_ratio, 3)
                )
            elif material_ratio > limits.max_material_ratio:
                collector.warning(
                    "high_material_ratio",
                    f"Materialkostnaden är ovanligt hög ({material_ratio:.0%} av arbetskostnaden)",
                    bound=limits.max_material_ratio, actual=round(material_ratio, 3)
                )

        # 7. Equipment to labor ratio
        if equipment_cost > 0 and work_cost > 0:
            if equipment_ratio > limits.max_equipment_ratio:
                collector.error(
                    "max_equipment_ratio",
                    f"Utrustningskostnaden överstiger arbetskostnaden ({equipment_ratio:.0%})",
                    bound=limits.max_equipment_ratio, actual=round(equipment_ratio, 3)
                )
            elif equipment_ratio > limits.warn_equipment_ratio:
                collector.warning(
                    "high_equipment_ratio",
                    f"Utrustningskostnaden är hög ({equipment_ratio:.0%} av arbetskostnaden)",
                    bound=limits.warn_equipment_ratio, actual=round(equipment_ratio, 3)
                )

        return {
            "totalHours": total_hours,
            "totalCost": total_cost,
            "workCost": work_cost,
            "materialCost": material_cost,
            "equipmentCost": equipment_cost,
            "effectiveHourlyRate": round(effective_rate, 2),
            "materialToWorkRatio": round(material_ratio, 3),
            "equipmentToWorkRatio": round(equipment_ratio, 3),
            "calculatedMinCost": round(min_cost, 2),
            "calculatedMaxCost": round(max_cost, 2),
        }

    def _benchmark_check(
        self,
        quote: Quote,
        benchmark: Optional[Benchmark],
        collector: _Collector,
        details: Dict[str, Any]
    ) -> None:
        if benchmark is None or not quote.unit_qty or quote.unit_type == "tim":
            return
        per_unit = details["totalCost"] / quote.unit_qty
        details["pricePerUnit"] = round(per_unit, 2)
        details["benchmarkMedian"] = benchmark.median_value

        low = benchmark.min_value if benchmark.min_value is not None else benchmark.median_value * 0.5
        high = benchmark.max_value if benchmark.max_value is not None else benchmark.median_value * 2.0
        if per_unit < low:
            collector.warning(
                "below_benchmark",
                f"Priset {per_unit:,.0f} kr/{quote.unit_type} ligger under branschens nivå ({low:,.0f} kr)",
                bound=low, actual=round(per_unit, 2)
            )
        elif per_unit > high:
            collector.warning(
                "above_benchmark",
                f"Priset {per_unit:,.0f} kr/{quote.unit_type} ligger över branschens nivå ({high:,.0f} kr)",
                bound=high, actual=round(per_unit, 2)
            )

    def _time_estimate_check(self, quote: Quote, collector: _Collector, details: Dict[str, Any]) -> None:
        """Warn when a standard work item's hours are far from its standard time."""
        job_def = find_job_definition(quote.job_type)
        standards = {normalize_item_name(item.name): item for item in job_def.work_items}
        if not standards:
            return

        unit_qty = quote.unit_qty or 0
        out_of_range = []
        for item in quote.work_items:
            standard = standards.get(normalize_item_name(item.name))
            if standard is None:
                continue
            expected = standard.base_hours(unit_qty)
            if expected <= 0:
                continue
            low = round(expected * self.limits.min_time_ratio, 2)
            high = round(expected * self.limits.max_time_ratio, 2)
            if low <= item.hours <= high:
                continue
            out_of_range.append(item.name)
            collector.warning(
                "unrealistic_hours",
                f"{item.hours:g} h för \"{item.name}\" avviker från normal tidsåtgång "
                f"({low:g}-{high:g} h för {unit_qty:g} {quote.unit_type})",
                bound=low if item.hours < low else high, actual=item.hours
            )
        details["hoursOutOfRange"] = out_of_range
