"""Cleaning quote validator.

A move-out clean covers every surface and the sanitary areas, uses
cleaning supplies and is priced above a per-square-metre floor.
Cleaners bill below craftsmen, so the generic hourly floor is lowered and
the market recommendation only warns.
"""

from typing import Any, Dict, NamedTuple

from models.quote import Quote
from validators.base_validator import QUALITY_FLOOR_FACTORS, BaseQuoteValidator, has_item


class RequiredWork(NamedTuple):
    keyword: str
    label: str
    min_hours: float


REQUIRED_WORK = (
    RequiredWork("grundstäd", "Grundstädning", 3.0),
    RequiredWork("sanitet", "Sanitetsutrymmen", 1.5),
)

MIN_COST_PER_SQM = 40.0
RECOMMENDED_COST_PER_SQM = 80.0
LOW_COST_FACTOR = 0.7
RECOMMENDED_HOURLY_RATE = 500.0


class CleaningQuoteValidator(BaseQuoteValidator):
    """Cleaning-specific rules on top of the generic bounds."""

    name = "cleaning"
    # One cleaning task dominates the hours and supplies are cheap
    limits_overrides = {"min_hourly_rate": 400.0, "max_work_item_share": 0.95, "min_material_ratio": 0.01}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        for required in REQUIRED_WORK:
            if has_item(quote.exclusions, required.keyword):
                continue
            matching = [i for i in quote.work_items if has_item([i.name], required.keyword)]
            if not matching:
                collector.error("missing_work_item", f"Arbetsmoment saknas: {required.label}")
                continue
            hours = sum(i.hours for i in matching)
            if hours < required.min_hours:
                collector.warning(
                    "work_item_hours",
                    f"För få timmar för {required.label}: {hours:g} h (minst {required.min_hours:g} h)",
                    bound=required.min_hours, actual=hours
                )

        if not quote.materials and not quote.customer_provides_material:
            collector.warning("missing_material", "Ingen kostnad för städmaterial eller rengöringsmedel")

        rate = details["effectiveHourlyRate"]
        if self.limits.min_hourly_rate <= rate < RECOMMENDED_HOURLY_RATE:
            collector.warning(
                "low_hourly_rate",
                f"Timpriset {rate:.0f} kr/h är lågt för städning (rekommenderat {RECOMMENDED_HOURLY_RATE:.0f} kr/h)",
                bound=RECOMMENDED_HOURLY_RATE, actual=rate
            )

        area = quote.unit_qty or 0
        if area <= 0:
            return
        total_cost = details["totalCost"]
        details["costPerSqm"] = round(total_cost / area, 2)
        minimum = round(area * MIN_COST_PER_SQM * QUALITY_FLOOR_FACTORS.get(quote.quality_level, 1.0), 2)
        low = area * RECOMMENDED_COST_PER_SQM * LOW_COST_FACTOR
        if total_cost < minimum:
            collector.error(
                "min_cost_per_sqm",
                f"Priset {total_cost:,.0f} kr är för lågt för {area:g} kvm städning (minst {minimum:,.0f} kr)",
                bound=minimum, actual=total_cost
            )
        elif total_cost < low:
            collector.warning(
                "low_cost_per_sqm",
                f"Priset {total_cost:,.0f} kr är lågt för {area:g} kvm flyttstädning "
                f"(rekommenderat {area * RECOMMENDED_COST_PER_SQM:,.0f} kr)",
                bound=low, actual=total_cost
            )
