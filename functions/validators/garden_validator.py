"""Garden quote validator.

Garden work is billed by the hour. Tree felling is dangerous work with
its own market floor: a higher hourly rate, chainsaw and safety gear,
and a minimum price and number of hours per tree. The tree count comes
from free text, so those checks only warn.
"""

import re
from typing import Any, Dict, Optional

from models.quote import Quote
from services.pricing_engine import normalize_item_name
from validators.base_validator import BaseQuoteValidator


FELLING_PATTERN = re.compile(r"\b(fäll\w*|trädfällning\w*)\b")
TREE_COUNT_PATTERN = re.compile(
    r"\b(\d+|en|ett|två|tre|fyra|fem|sex|sju|åtta|nio|tio)\s+(?:st\s+)?"
    r"(träd|gran\w*|tall\w*|björk\w*|ek\w*|lönn\w*|asp\w*|al|alar)\b"
)
NUMBER_WORDS = {
    "en": 1, "ett": 1, "två": 2, "tre": 3, "fyra": 4, "fem": 5,
    "sex": 6, "sju": 7, "åtta": 8, "nio": 9, "tio": 10,
}

FELLING_MIN_HOURLY_RATE = 800.0
MIN_COST_PER_TREE = 4000.0
MIN_HOURS_PER_TREE = 5.0


def count_trees(text: str) -> Optional[int]:
    """Number of trees named in free text ("Fälla 3 granar"), or None."""
    match = TREE_COUNT_PATTERN.search(normalize_item_name(text))
    if not match:
        return None
    word = match.group(1)
    return int(word) if word.isdigit() else NUMBER_WORDS[word]


def is_tree_felling(quote: Quote, description: str) -> bool:
    texts = [description, quote.job_type] + [item.name for item in quote.work_items]
    return any(FELLING_PATTERN.search(normalize_item_name(t)) for t in texts)


class GardenQuoteValidator(BaseQuoteValidator):
    """Garden-specific rules on top of the generic bounds."""

    name = "garden"
    limits_overrides = {"min_hourly_rate": 400.0}

    def domain_checks(self, quote: Quote, description: str, collector, details: Dict[str, Any]) -> None:
        if not is_tree_felling(quote, description):
            return
        details["treeFelling"] = True

        rate = details["effectiveHourlyRate"]
        if rate < FELLING_MIN_HOURLY_RATE:
            collector.warning(
                "low_hourly_rate",
                f"Timpriset {rate:.0f} kr/h är lågt för trädfällning (minst {FELLING_MIN_HOURLY_RATE:.0f} kr/h)",
                bound=FELLING_MIN_HOURLY_RATE, actual=rate
            )

        if quote.summary.equipment_cost <= 0:
            collector.warning(
                "missing_equipment",
                "Ingen kostnad för motorsåg eller säkerhetsutrustning; kontrollera att den ingår i timpriset"
            )

        trees = count_trees(description)
        if not trees:
            return
        details["trees"] = trees
        min_cost = trees * MIN_COST_PER_TREE
        min_hours = trees * MIN_HOURS_PER_TREE
        if details["totalCost"] < min_cost:
            collector.warning(
                "low_cost_per_tree",
                f"Priset {details['totalCost']:,.0f} kr är lågt för {trees} träd (minst {min_cost:,.0f} kr)",
                bound=min_cost, actual=details["totalCost"]
            )
        if quote.total_hours < min_hours:
            collector.warning(
                "min_tree_hours",
                f"För få timmar för {trees} träd: {quote.total_hours:g} h (minst {min_hours:g} h)",
                bound=min_hours, actual=quote.total_hours
            )
