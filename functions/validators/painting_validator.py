"""Painting quote validator.

Painting requires preparation, filling/sanding, primer, finishing coats
and clean-up, each with a minimum number of hours per square metre, and
enough paint for the area.
"""

import re
from typing import Any, Dict, List, NamedTuple

from models.quote import Quote
from validators.base_validator import BaseQuoteValidator, has_item


class RequiredWork(NamedTuple):
    keyword: str
    label: str
    hours_per_sqm: float


class RequiredMaterial(NamedTuple):
    keyword: str
    label: str
    liters_per_sqm: float


REQUIRED_WORK = (
    RequiredWork("förbered", "Förberedelser och skydd", 0.05),
    RequiredWork("spackl", "Spackling och slipning", 0.10),
    RequiredWork("grundmål", "Grundmålning", 0.10),
    RequiredWork("slutstryk", "Slutstrykningar", 0.15),
    RequiredWork("städ", "Städning och efterarbete", 0.04),
)

REQUIRED_MATERIALS = (
    RequiredMaterial("väggfärg", "Väggfärg", 0.15),
    RequiredMaterial("grundfärg", "Grundfärg", 0.10),
)

MIN_COST_PER_SQM = 150.0
RECOMMENDED_COST_PER_SQM = 300.0
HOURS_TOLERANCE = 0.7

DARK_COLOR_PATTERN = re.compile(r"\b(mörk\w*|svart\w*|mörkblå\w*|blå\w*)\b")
CEILING_PATTERN = re.compile(r"\btak(et|målning)?\b")


class PaintingQuoteValidator(BaseQuoteValidator):
    """Painting-specific rules on top of the generic bounds."""

    name = "painting"
    limits_overrides = {"min_hourly_rate": 450.0}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        area = quote.unit_qty or 0
        if area <= 0:
            return

        names = [item.name for item in quote.work_items]
        for required in REQUIRED_WORK:
            if has_item(quote.exclusions, required.keyword):
                continue
            matching = [i for i in quote.work_items if has_item([i.name], required.keyword)]
            if not matching:
                collector.error(
                    "missing_work_item",
                    f"Arbetsmoment saknas: {required.label}",
                )
                continue
            hours = sum(i.hours for i in matching)
            minimum = required.hours_per_sqm * area * HOURS_TOLERANCE
            if hours < minimum:
                collector.error(
                    "work_item_hours",
                    f"För få timmar för {required.label}: {hours:g} h (minst {minimum:.1f} h för {area:g} kvm)",
                    bound=round(minimum, 2), actual=hours
                )

        cost_per_sqm = details["totalCost"] / area
        details["costPerSqm"] = round(cost_per_sqm, 2)
        if cost_per_sqm < MIN_COST_PER_SQM:
            collector.error(
                "min_cost_per_sqm",
                f"Priset {cost_per_sqm:.0f} kr/kvm är under minimum {MIN_COST_PER_SQM:.0f} kr/kvm",
                bound=MIN_COST_PER_SQM, actual=round(cost_per_sqm, 2)
            )
        elif cost_per_sqm < RECOMMENDED_COST_PER_SQM:
            collector.warning(
                "low_cost_per_sqm",
                f"Priset {cost_per_sqm:.0f} kr/kvm är under rekommenderade {RECOMMENDED_COST_PER_SQM:.0f} kr/kvm",
                bound=RECOMMENDED_COST_PER_SQM, actual=round(cost_per_sqm, 2)
            )

        if not quote.customer_provides_material:
            for required in REQUIRED_MATERIALS:
                if has_item(quote.exclusions, required.keyword):
                    continue
                liters = sum(m.quantity for m in quote.materials if has_item([m.name], required.keyword))
                minimum = required.liters_per_sqm * area
                if liters < minimum:
                    collector.warning(
                        "material_quantity",
                        f"{required.label}: {liters:g} liter kan vara för lite för {area:g} kvm "
                        f"(rekommenderat {minimum:.1f} liter)",
                        bound=round(minimum, 2), actual=liters
                    )

        text = (description or "").lower()
        if DARK_COLOR_PATTERN.search(text):
            collector.warning(
                "dark_color",
                "Mörka kulörer kräver ofta en extra strykning",
            )
        if CEILING_PATTERN.search(text) and not has_item(names, "tak"):
            collector.warning(
                "ceiling_work",
                "Takmålning nämns men inget separat moment för tak finns",
            )
