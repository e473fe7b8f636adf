"""Interpretation Agent.

Turns a free-text Swedish job description plus conversation history into
a structured Interpretation. The agent never raises on model failure: an
unreachable, rate-limited or unparseable model yields a conservative
fallback interpretation that asks the customer for more detail.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from agents.base_agent import BaseQuoteAgent, TokenUsage
from config.errors import InterpretationFailure, QuoteError
from models.interpretation import (
    ENUM_DEFAULTS,
    NUMERIC_FIELDS,
    Accessibility,
    Complexity,
    ConversationMessage,
    Interpretation,
    QualityLevel,
)
from services.job_registry import detect_job_type, find_job_definition, list_job_types
from services.llm_service import LLMService, extract_json_object
from validators.clarification_gate import GENERIC_QUESTION, missing_required_fields

logger = structlog.get_logger()


INTERPRETATION_SYSTEM_PROMPT = """Du är en erfaren svensk hantverkare som tolkar kunders jobbeskrivningar inför en offert.

Läs kundens beskrivning och tidigare konversation och returnera ENDAST ett JSON-objekt med fälten:
{{
  "jobType": en av {job_types} eller en kort beskrivning om inget passar,
  "area": kvadratmeter som siffra eller null,
  "length": löpmeter som siffra eller null,
  "quantity": antal enheter eller timmar som siffra eller null,
  "rooms": antal rum som siffra eller null,
  "complexity": "simple" | "normal" | "complex",
  "accessibility": "easy" | "normal" | "hard",
  "qualityLevel": "budget" | "standard" | "premium",
  "specialRequirements": [strängar],
  "exclusions": [moment eller material kunden INTE vill ha med],
  "inclusions": [extra moment kunden uttryckligen vill ha med],
  "customerProvidesMaterial": true/false,
  "customerProvidesDetails": [material kunden står för själv],
  "assumptions": [antaganden du gör],
  "clarificationsNeeded": [frågor till kunden, på svenska],
  "missingCriticalInfo": true/false,
  "startMonth": månad 1-12 eller null,
  "location": ort eller null
}}

REGLER:
- Hitta ALDRIG på siffror. Mått som inte uttryckligen står i texten ska vara null.
- Uppskattningar som kunden själv kallar gissningar räknas inte som mått.
- Sätt missingCriticalInfo=true om mått som krävs för att prissätta jobbet saknas.
- Skriv frågor i clarificationsNeeded som kunden kan svara kort på."""


SWEDISH_NUMBER_WORDS = {
    "en": 1, "ett": 1, "två": 2, "tre": 3, "fyra": 4, "fem": 5, "sex": 6,
    "sju": 7, "åtta": 8, "nio": 9, "tio": 10, "elva": 11, "tolv": 12,
}

ENUM_SYNONYMS = {
    "complexity": {
        "enkel": Complexity.SIMPLE, "låg": Complexity.SIMPLE, "easy": Complexity.SIMPLE,
        "medium": Complexity.NORMAL, "medel": Complexity.NORMAL, "standard": Complexity.NORMAL,
        "komplex": Complexity.COMPLEX, "svår": Complexity.COMPLEX, "hög": Complexity.COMPLEX,
        "high": Complexity.COMPLEX,
    },
    "accessibility": {
        "lätt": Accessibility.EASY, "enkel": Accessibility.EASY,
        "medium": Accessibility.NORMAL, "medel": Accessibility.NORMAL,
        "svår": Accessibility.HARD, "difficult": Accessibility.HARD,
    },
    "quality_level": {
        "låg": QualityLevel.BUDGET, "billig": QualityLevel.BUDGET, "low": QualityLevel.BUDGET,
        "mellan": QualityLevel.STANDARD, "medium": QualityLevel.STANDARD, "normal": QualityLevel.STANDARD,
        "hög": QualityLevel.PREMIUM, "high": QualityLevel.PREMIUM, "lyx": QualityLevel.PREMIUM,
    },
}

ENUM_ALIASES = {"complexity": "complexity", "accessibility": "accessibility", "quality_level": "qualityLevel"}

NUMERIC_LABELS = {"area": "Yta", "length": "Längd", "quantity": "Antal", "rooms": "Antal rum"}

CUSTOMER_MATERIAL_PATTERN = re.compile(
    r"(kunden står för material|jag står för material|vi står för material|har redan köpt|"
    r"köper materialet själv|eget material)"
)


@dataclass
class ParseResult:
    """Result of parsing a model response into an Interpretation."""
    interpretation: Optional[Interpretation] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.interpretation is not None


def _coerce_enum(field_name: str, raw: Any):
    enum_cls = type(ENUM_DEFAULTS[field_name])
    if raw is None:
        return None
    value = str(raw).strip().lower()
    try:
        return enum_cls(value)
    except ValueError:
        return ENUM_SYNONYMS.get(field_name, {}).get(value)


def parse_interpretation(raw: Union[str, Dict[str, Any], None]) -> ParseResult:
    """Parse a model response into an Interpretation.

    Tolerates code fences, prose around the JSON object, null lists and
    unknown enum values (defaulted and recorded in defaulted_fields).

    Args:
        raw: Model response text, or an already-decoded dict

    Returns:
        ParseResult with either interpretation or error set
    """
    if raw is None:
        return ParseResult(error="empty response")

    if isinstance(raw, dict):
        data = dict(raw)
    else:
        try:
            data = json.loads(extract_json_object(str(raw)))
        except json.JSONDecodeError as e:
            return ParseResult(error=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return ParseResult(error=f"expected a JSON object, got {type(data).__name__}")

    defaulted = []
    for field_name, default in ENUM_DEFAULTS.items():
        alias = ENUM_ALIASES[field_name]
        raw_value = data.pop(alias, None)
        if raw_value is None:
            raw_value = data.pop(field_name, None)
        else:
            data.pop(field_name, None)
        value = _coerce_enum(field_name, raw_value)
        if value is None:
            value = default
            defaulted.append(field_name)
        data[field_name] = value

    data.pop("defaultedFields", None)
    data.pop("isFallback", None)
    data["defaulted_fields"] = defaulted

    try:
        return ParseResult(interpretation=Interpretation.model_validate(data))
    except PydanticValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        return ParseResult(error=f"schema mismatch: {errors}")


def _numbers_in(text: str) -> List[float]:
    numbers = [float(n.replace(",", ".")) for n in re.findall(r"\d+(?:[.,]\d+)?", text)]
    for word in re.findall(r"[a-zåäö]+", text.lower()):
        if word in SWEDISH_NUMBER_WORDS:
            numbers.append(float(SWEDISH_NUMBER_WORDS[word]))
    return numbers


def enforce_numeric_sources(interpretation: Interpretation, source_text: str) -> Interpretation:
    """Drop numeric fields whose value does not appear in the customer's text.

    Dropped values are kept as assumption text, never as hard fields.
    """
    numbers = _numbers_in(source_text or "")
    updates: Dict[str, Any] = {}
    assumptions = list(interpretation.assumptions)

    for field_name in NUMERIC_FIELDS:
        value = getattr(interpretation, field_name)
        if value is None:
            continue
        if any(abs(n - value) < 1e-6 for n in numbers):
            continue
        updates[field_name] = None
        assumptions.append(
            f"{NUMERIC_LABELS[field_name]}: cirka {value:g} (uppskattat, ej angivet av kunden)"
        )
        logger.info("unsourced_number_removed", field=field_name, value=value)

    if not updates:
        return interpretation
    updates["assumptions"] = assumptions
    return interpretation.model_copy(update=updates)


def fallback_interpretation(description: str, source_text: str = "") -> Interpretation:
    """Conservative interpretation used when the model cannot be used."""
    text = f"{source_text}\n{description}".lower()
    job_type = detect_job_type(text) or ""
    return Interpretation(
        job_type=job_type,
        customer_provides_material=bool(CUSTOMER_MATERIAL_PATTERN.search(text)),
        clarifications_needed=[GENERIC_QUESTION],
        missing_critical_info=True,
        defaulted_fields=list(ENUM_DEFAULTS.keys()),
        is_fallback=True,
    )


def _history_messages(history: Optional[Sequence[Any]]) -> List[ConversationMessage]:
    messages = []
    for entry in history or []:
        if isinstance(entry, ConversationMessage):
            messages.append(entry)
        elif isinstance(entry, dict):
            messages.append(ConversationMessage.model_validate(entry))
        elif entry:
            messages.append(ConversationMessage(content=str(entry)))
    return messages


class InterpretationAgent(BaseQuoteAgent):
    """Interprets free-text job requests into an Interpretation."""

    def __init__(self, llm_service: Optional[LLMService] = None):
        super().__init__(name="interpretation", llm_service=llm_service)

    def build_user_message(self, description: str, history: Sequence[ConversationMessage]) -> str:
        lines = []
        if history:
            lines.append("## Tidigare konversation")
            for message in history:
                speaker = "Kund" if message.role == "user" else "Hantverkare"
                lines.append(f"{speaker}: {message.content}")
            lines.append("")
        lines.append("## Kundens beskrivning")
        lines.append(description)
        return "\n".join(lines)

    async def interpret(
        self,
        description: str,
        history: Optional[Sequence[Any]] = None,
        usage: Optional[TokenUsage] = None
    ) -> Interpretation:
        """Interpret a job request.

        Args:
            description: Latest free-text request
            history: Earlier conversation turns (dicts or ConversationMessage)
            usage: Per-request token counter to add this call's tokens to

        Returns:
            Interpretation; a fallback one when the model fails
        """
        run = self._begin(usage)
        messages = _history_messages(history)
        source_text = "\n".join([m.content for m in messages if m.role == "user"] + [description])

        system_prompt = INTERPRETATION_SYSTEM_PROMPT.format(job_types=", ".join(list_job_types()))
        try:
            result = await self.llm.generate_with_system_prompt(
                system_prompt,
                self.build_user_message(description, messages)
            )
            run.track(result)
        except QuoteError as e:
            failure = InterpretationFailure(
                f"Interpretation model unavailable: {e.message}",
                details={"cause": e.code}
            )
            logger.warning("interpretation_failed", code=failure.code, cause=e.code, error=e.message)
            return fallback_interpretation(description, source_text)

        parsed = parse_interpretation(result["content"])
        if not parsed.ok:
            logger.warning("interpretation_parse_failed", error=parsed.error)
            return fallback_interpretation(description, source_text)

        interpretation = enforce_numeric_sources(parsed.interpretation, source_text)

        job_def = find_job_definition(interpretation.job_type)
        missing = missing_required_fields(interpretation, job_def)
        if missing and not interpretation.missing_critical_info:
            interpretation = interpretation.model_copy(update={"missing_critical_info": True})

        self._log_complete(
            run,
            job_type=interpretation.job_type,
            missing_fields=missing,
            defaulted_fields=interpretation.defaulted_fields
        )
        return interpretation
