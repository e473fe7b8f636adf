"""Kitchen quote validator.

A kitchen renovation needs demolition, plumbing, electrics, cabinet and
worktop fitting, wall finishing and a final inspection, each with a
minimum number of hours, and a total price per square metre above the
industry floor.
"""

from typing import Any, Dict

from models.quote import Quote
from validators.base_validator import BaseQuoteValidator, area_price_floor, has_item


REQUIRED_WORK = (
    ("rivning", "Rivning befintligt kök", 10.0),
    ("vvs", "VVS-installation", 8.0),
    ("el", "El-installation", 12.0),
    ("montering", "Montering skåp och bänkskiva", 16.0),
    ("väggbeklädning", "Väggbeklädning", 8.0),
    ("slutbesiktning", "Slutbesiktning och städning", 4.0),
)

MIN_COST_PER_SQM = 12000.0
RECOMMENDED_COST_PER_SQM = 18000.0
# Beyond a typical kitchen each extra kvm adds cabinets and wall, not installations
REFERENCE_AREA = 15.0
MARGINAL_MIN_PER_SQM = 7000.0
MARGINAL_RECOMMENDED_PER_SQM = 10000.0
HOURS_TOLERANCE = 0.8


class KitchenQuoteValidator(BaseQuoteValidator):
    """Kitchen-specific rules on top of the generic bounds."""

    name = "kitchen"
    limits_overrides = {"min_hourly_rate": 600.0, "max_cost_per_hour": 4000.0}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        for keyword, label, min_hours in REQUIRED_WORK:
            if has_item(quote.exclusions, keyword):
                continue
            matching = [i for i in quote.work_items if has_item([i.name], keyword)]
            if not matching:
                collector.error("missing_work_item", f"Arbetsmoment saknas: {label}")
                continue
            hours = sum(i.hours for i in matching)
            minimum = min_hours * HOURS_TOLERANCE
            if hours < minimum:
                collector.error(
                    "work_item_hours",
                    f"För få timmar för {label}: {hours:g} h (minst {minimum:g} h)",
                    bound=minimum, actual=hours
                )

        # Price floor covers a full kitchen delivery; not applicable when the customer supplies it
        area = quote.unit_qty or 0
        if area <= 0 or quote.customer_provides_material:
            return
        total = quote.summary.total_with_vat
        details["costPerSqmInclVat"] = round(total / area, 2)
        minimum = area_price_floor(
            area, MIN_COST_PER_SQM, REFERENCE_AREA, MARGINAL_MIN_PER_SQM, quote.quality_level
        )
        recommended = area_price_floor(
            area, RECOMMENDED_COST_PER_SQM, REFERENCE_AREA, MARGINAL_RECOMMENDED_PER_SQM, quote.quality_level
        )
        details["minTotalForArea"] = minimum
        if total < minimum:
            collector.error(
                "min_cost_per_sqm",
                f"Priset {total:,.0f} kr inkl. moms är under minimum {minimum:,.0f} kr för ett kök på {area:g} kvm",
                bound=minimum, actual=total
            )
        elif total < recommended:
            collector.warning(
                "low_cost_per_sqm",
                f"Priset {total:,.0f} kr inkl. moms är under rekommenderade {recommended:,.0f} kr för ett kök på {area:g} kvm",
                bound=recommended, actual=total
            )
