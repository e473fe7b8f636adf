"""Electrical quote validator.

Electrical work must be done by a certified electrician: planning,
installation and connection with testing are all required, the hourly
floor is higher than for other trades and every job carries a minimum
total.
"""

from typing import Any, Dict, NamedTuple

from models.quote import Quote
from validators.base_validator import BaseQuoteValidator, has_item


class RequiredWork(NamedTuple):
    keywords: tuple
    label: str
    min_hours: float


REQUIRED_WORK = (
    RequiredWork(("planering", "felsökning"), "Planering och felsökning", 2.0),
    RequiredWork(("installation", "dragning"), "Installation", 4.0),
    RequiredWork(("inkoppling", "testning"), "Inkoppling och testning", 1.5),
)

MIN_TOTAL_COST = 5000.0
MIN_MATERIAL_COST = 1000.0
RECOMMENDED_HOURLY_RATE = 950.0


class ElectricalQuoteValidator(BaseQuoteValidator):
    """Electrical-specific rules on top of the generic bounds."""

    name = "electrical"
    limits_overrides = {"min_hourly_rate": 800.0, "max_cost_per_hour": 2500.0, "max_work_item_share": 0.85}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        for required in REQUIRED_WORK:
            if any(has_item(quote.exclusions, k) for k in required.keywords):
                continue
            matching = [
                i for i in quote.work_items
                if any(has_item([i.name], k) for k in required.keywords)
            ]
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

        total_cost = details["totalCost"]
        if total_cost < MIN_TOTAL_COST:
            collector.error(
                "min_electrical_total",
                f"Totalpriset {total_cost:,.0f} kr är under minimum {MIN_TOTAL_COST:,.0f} kr för elarbete",
                bound=MIN_TOTAL_COST, actual=total_cost
            )

        if not quote.customer_provides_material and quote.summary.material_cost < MIN_MATERIAL_COST:
            collector.warning(
                "low_material_cost",
                f"Elmaterial för {quote.summary.material_cost:,.0f} kr är lågt; "
                f"kablar, uttag och kopplingsdon kostar vanligtvis minst {MIN_MATERIAL_COST:,.0f} kr",
                bound=MIN_MATERIAL_COST, actual=quote.summary.material_cost
            )

        rate = details["effectiveHourlyRate"]
        if self.limits.min_hourly_rate <= rate < RECOMMENDED_HOURLY_RATE:
            collector.warning(
                "low_hourly_rate",
                f"Timpriset {rate:.0f} kr/h är lågt för behörig elektriker (rekommenderat {RECOMMENDED_HOURLY_RATE:.0f} kr/h)",
                bound=RECOMMENDED_HOURLY_RATE, actual=rate
            )
