"""ROT/RUT Classification Agent.

Decides whether a job qualifies for the ROT deduction (renovation and
repair), the RUT deduction (household services) or neither. A versioned
rule table is evaluated first; the LLM is consulted only when no rule
fires, and hard exclusions are re-checked afterwards so the model can
never grant a deduction the rules forbid.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from agents.base_agent import AgentRun, BaseQuoteAgent, TokenUsage
from config.errors import QuoteError
from config.pricing_policy import NO_DEDUCTION, ROT, RUT
from models.classification import ClassificationResult, ItemClassification
from models.quote import WorkItem
from services.llm_service import LLMService

logger = structlog.get_logger()


RULE_TABLE_VERSION = "2025.2"

EXCLUDE = "exclude"
ALLOW = "allow"


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the deduction rule table.

    Rules are evaluated in ascending precedence; the first rule whose
    pattern matches (and whose `unless` pattern does not) decides.
    """

    rule_id: str
    pattern: str
    deduction_type: str
    kind: str
    precedence: int
    reasoning: str
    unless: Optional[str] = None
    source: str = "Skatteverket"

    def matches(self, text: str) -> bool:
        if not re.search(self.pattern, text):
            return False
        return not (self.unless and re.search(self.unless, text))


ROT_WORK_PATTERN = (
    r"renover|rivning|demonter|montering|installation|vvs|\bel\b|elinstall|elektriker|"
    r"murning|murare|kakel|klinker|målning|måla|spackl|slipning|golvlägg|golv|parkett|"
    r"takarbete|takläggning|taktäck|fönsterbyte|fönster|dörr|badrum|våtrum|tätskikt|"
    r"kök|ventilation|golvvärme|värmesystem|isolering|fasad|puts|snickeri|altan|trall"
)

RUT_WORK_PATTERN = (
    r"städ|fönsterputs|gräsklipp|häckklipp|beskär|ogräs|trädgårdsskötsel|trädgård|"
    r"lövkratt|snöskott|flytthjälp|flyttjänst|bärhjälp"
)

MATERIAL_ONLY_PATTERN = r"^(material|inköp|leverans|materialleverans)\b|(endast|bara) material"

RULE_TABLE: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "excl-tree-felling", r"trädfällning|fäll(a|er|ning)\b", NO_DEDUCTION, EXCLUDE, 10,
        "Trädfällning ger inget avdrag, endast beskärning av levande träd är RUT",
        unless=r"beskär",
    ),
    ClassificationRule(
        "excl-stump-grinding", r"stubbfräs", NO_DEDUCTION, EXCLUDE, 11,
        "Stubbfräsning räknas som markarbete och ger inget avdrag",
    ),
    ClassificationRule(
        "excl-new-construction", r"nybygg|nyproduktion|bygga (ett |en )?nytt? (hus|garage|attefall)",
        NO_DEDUCTION, EXCLUDE, 12,
        "Nybyggnation ger inget ROT-avdrag",
    ),
    ClassificationRule(
        "excl-third-party", r"grannens|annans (fastighet|tomt)|kommunens", NO_DEDUCTION, EXCLUDE, 13,
        "Arbete på annans fastighet ger inget avdrag",
    ),
    ClassificationRule(
        "excl-commercial", r"\b(kontor\w*|butik\w*|lokaler|lokalen|företagslokal\w*|restaurang\w*)\b",
        NO_DEDUCTION, EXCLUDE, 14,
        "Arbete i kommersiella lokaler ger inget avdrag, endast bostäder",
    ),
    ClassificationRule(
        "excl-groundwork", r"dränering|markarbete|markanläggning", NO_DEDUCTION, EXCLUDE, 15,
        "Dränering och markanläggning ger inget avdrag",
    ),
    ClassificationRule(
        "excl-material-only", r"(endast|bara) material|materialleverans", NO_DEDUCTION, EXCLUDE, 16,
        "Endast arbetskostnad är avdragsgill, inte material",
    ),
    ClassificationRule(
        "rut-cleaning", r"städ|fönsterputs", RUT, ALLOW, 20,
        "Städning av bostad är RUT-arbete",
    ),
    ClassificationRule(
        "rut-garden", r"gräsklipp|häckklipp|beskär|ogräs|trädgårdsskötsel|lövkratt|snöskott", RUT, ALLOW, 21,
        "Trädgårdsskötsel vid bostaden är RUT-arbete",
    ),
    ClassificationRule(
        "rut-moving", r"flytthjälp|flyttjänst|bärhjälp", RUT, ALLOW, 22,
        "Flyttjänster är RUT-arbete",
    ),
    ClassificationRule(
        "rot-renovation", ROT_WORK_PATTERN, ROT, ALLOW, 30,
        "Reparation, underhåll och ombyggnad av bostad är ROT-arbete",
    ),
)

EXCLUSION_RULES = tuple(r for r in RULE_TABLE if r.kind == EXCLUDE)


CLASSIFICATION_SYSTEM_PROMPT = """Du är expert på svenska ROT- och RUT-avdrag enligt Skatteverket.

ROT: reparation, underhåll, om- och tillbyggnad av bostad (t.ex. badrum, kök, målning, golv, el, VVS, fasad, fönster).
RUT: hushållsnära tjänster (städning, trädgårdsskötsel, flyttjänster, snöskottning).
INGET AVDRAG: nybyggnation, kommersiella lokaler, annans fastighet, trädfällning, stubbfräsning, dränering, enbart material.

Returnera JSON:
{
  "deductionType": "rot" | "rut" | "none",
  "confidence": 0-100,
  "reasoning": "kort motivering på svenska"
}"""


def _text(description: str, work_type: Optional[str]) -> str:
    return f"{work_type or ''} {description or ''}".lower()


def _result_from_rule(rule: ClassificationRule) -> ClassificationResult:
    return ClassificationResult(
        deduction_type=rule.deduction_type,
        confidence=95 if rule.kind == EXCLUDE else 90,
        reasoning=rule.reasoning,
        source="rule",
        rule_id=rule.rule_id,
        rule_version=RULE_TABLE_VERSION,
    )


def matching_exclusion(description: str, work_type: Optional[str] = None) -> Optional[ClassificationRule]:
    """Return the first hard exclusion that applies, if any."""
    text = _text(description, work_type)
    for rule in EXCLUSION_RULES:
        if rule.matches(text):
            return rule
    return None


def classify_by_rules(description: str, work_type: Optional[str] = None) -> Optional[ClassificationResult]:
    """Classify with the rule table only. None when no rule fires."""
    text = _text(description, work_type)
    for rule in sorted(RULE_TABLE, key=lambda r: r.precedence):
        if rule.matches(text):
            return _result_from_rule(rule)
    return None


def classify_work_items(
    work_items: Sequence[WorkItem],
    deduction_type: str
) -> Tuple[List[WorkItem], List[ItemClassification]]:
    """Set rot_eligible on every work item for the job's deduction type.

    Material-only lines are never eligible. Items the job definition has
    already marked keep that marking; unmarked labor in an eligible job is
    eligible.
    """
    items: List[WorkItem] = []
    classifications: List[ItemClassification] = []

    for item in work_items:
        name_text = f"{item.name} {item.description or ''}".lower()
        if deduction_type not in (ROT, RUT):
            eligible, reasoning = False, "Jobbet ger inget skatteavdrag"
        elif re.search(MATERIAL_ONLY_PATTERN, name_text):
            eligible, reasoning = False, "Materialkostnad är inte avdragsgill"
        elif item.rot_eligible is False:
            eligible, reasoning = False, f"{item.name} omfattas inte av {deduction_type.upper()}-avdrag"
        else:
            eligible = True
            reasoning = f"{item.name} klassificeras som {deduction_type.upper()}-arbete"

        items.append(item.model_copy(update={"rot_eligible": eligible}))
        classifications.append(ItemClassification(name=item.name, eligible=eligible, reasoning=reasoning))

    return items, classifications


class RotRutClassifier(BaseQuoteAgent):
    """Classifies jobs as ROT, RUT or no deduction."""

    def __init__(self, llm_service: Optional[LLMService] = None):
        super().__init__(name="classification", llm_service=llm_service)

    async def classify(
        self,
        description: str,
        work_type: Optional[str] = None,
        work_items: Optional[Sequence[WorkItem]] = None,
        usage: Optional[TokenUsage] = None
    ) -> ClassificationResult:
        """Classify a job.

        Args:
            description: Customer's description of the job
            work_type: Resolved job type, if known
            work_items: Priced work items to classify individually
            usage: Per-request token counter to add this call's tokens to

        Returns:
            ClassificationResult; "none" with confidence 0 if classification failed
        """
        run = self._begin(usage)

        result = classify_by_rules(description, work_type)
        if result is None:
            result = await self._classify_with_llm(description, work_type, run)

            exclusion = matching_exclusion(description, work_type)
            if exclusion and result.deduction_type != NO_DEDUCTION:
                logger.info(
                    "classification_overridden_by_exclusion",
                    rule_id=exclusion.rule_id,
                    llm_deduction_type=result.deduction_type
                )
                result = _result_from_rule(exclusion)

        if work_items:
            _, per_item = classify_work_items(work_items, result.deduction_type)
            result = result.model_copy(update={"per_item_classification": per_item})

        self._log_complete(
            run,
            deduction_type=result.deduction_type,
            confidence=result.confidence,
            source=result.source,
            rule_id=result.rule_id
        )
        return result

    async def _classify_with_llm(
        self,
        description: str,
        work_type: Optional[str],
        run: AgentRun
    ) -> ClassificationResult:
        user_message = f"Jobbtyp: {work_type or 'okänd'}\nBeskrivning: {description}"
        try:
            response = await self.llm.generate_json(CLASSIFICATION_SYSTEM_PROMPT, user_message)
        except QuoteError as e:
            logger.warning("classification_llm_failed", code=e.code, error=e.message)
            return ClassificationResult(
                deduction_type=NO_DEDUCTION,
                confidence=0,
                reasoning="Kunde inte avgöra avdragstyp automatiskt, inget avdrag tillämpas",
                source="fallback",
            )

        run.track(response)
        return self._parse_llm_result(response.get("content") or {})

    def _parse_llm_result(self, data: Dict[str, Any]) -> ClassificationResult:
        deduction_type = str(data.get("deductionType", NO_DEDUCTION)).strip().lower()
        if deduction_type not in (ROT, RUT, NO_DEDUCTION):
            deduction_type = NO_DEDUCTION

        try:
            confidence = int(float(data.get("confidence", 0)))
        except (TypeError, ValueError):
            confidence = 0
        confidence = max(0, min(100, confidence))

        return ClassificationResult(
            deduction_type=deduction_type,
            confidence=confidence,
            reasoning=str(data.get("reasoning") or "Bedömd av AI"),
            source="llm",
            rule_version=RULE_TABLE_VERSION,
        )
