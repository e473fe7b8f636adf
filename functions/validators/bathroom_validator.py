"""Bathroom quote validator.

Wet-room renovations must include plumbing, electrics, underfloor heating,
waterproofing, ventilation and tiling, enough hours in total, and a price
per square metre inside the industry range.
"""

from typing import Any, Dict

from models.quote import Quote
from validators.base_validator import BaseQuoteValidator, area_price_floor, has_item


REQUIRED_WORK = {
    "vvs": "VVS-installation",
    "el": "El-installation",
    "golvvärme": "Golvvärme",
    "tätskikt": "Tätskikt",
    "ventilation": "Ventilation",
    "kakel": "Kakel och klinker",
}

EXPECTED_MATERIALS = {
    "tätskikt": "Tätskiktssystem",
    "kakel": "Kakel",
    "klinker": "Klinker",
    "golvbrunn": "Golvbrunn",
    "golvvärme": "Golvvärmematta",
}

MIN_TOTAL_HOURS = 50.0
PRICE_PER_SQM_MIN = 18000.0
PRICE_PER_SQM_MAX = 30000.0
CRITICAL_LOW_FACTOR = 0.85
HIGH_FACTOR = 1.2
# Floor is per kvm up to a typical bathroom, then grows by the marginal rate
REFERENCE_AREA = 6.0
MARGINAL_PER_SQM_MIN = 5000.0


class BathroomQuoteValidator(BaseQuoteValidator):
    """Bathroom-specific rules on top of the generic bounds."""

    name = "bathroom"
    limits_overrides = {"min_hourly_rate": 600.0, "max_cost_per_hour": 3500.0}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        names = [item.name for item in quote.work_items]
        for keyword, label in REQUIRED_WORK.items():
            if has_item(quote.exclusions, keyword):
                continue
            if not has_item(names, keyword):
                collector.error("missing_work_item", f"Arbetsmoment saknas: {label}")

        if not quote.customer_provides_material:
            material_names = [m.name for m in quote.materials]
            for keyword, label in EXPECTED_MATERIALS.items():
                if has_item(quote.exclusions, keyword):
                    continue
                if not has_item(material_names, keyword):
                    collector.warning("missing_material", f"Material saknas: {label}")

        if quote.total_hours < MIN_TOTAL_HOURS and not quote.exclusions:
            collector.error(
                "min_bathroom_hours",
                f"För få timmar för en badrumsrenovering: {quote.total_hours:g} h (minst {MIN_TOTAL_HOURS:g} h)",
                bound=MIN_TOTAL_HOURS, actual=quote.total_hours
            )

        area = quote.unit_qty or 0
        if area <= 0 or quote.customer_provides_material:
            return
        total_cost = details["totalCost"]
        per_sqm = total_cost / area
        details["costPerSqm"] = round(per_sqm, 2)
        floor = area_price_floor(
            area,
            PRICE_PER_SQM_MIN * CRITICAL_LOW_FACTOR,
            REFERENCE_AREA,
            MARGINAL_PER_SQM_MIN,
            quote.quality_level
        )
        details["minTotalForArea"] = floor
        high = PRICE_PER_SQM_MAX * HIGH_FACTOR
        if total_cost < floor:
            collector.error(
                "min_cost_per_sqm",
                f"Priset {total_cost:,.0f} kr är kritiskt lågt för ett badrum på {area:g} kvm (minst {floor:,.0f} kr)",
                bound=floor, actual=total_cost
            )
        elif per_sqm > high:
            collector.warning(
                "high_cost_per_sqm",
                f"Priset {per_sqm:,.0f} kr/kvm är högt för ett badrum (över {high:,.0f} kr/kvm)",
                bound=high, actual=round(per_sqm, 2)
            )
