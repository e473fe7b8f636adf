"""Assumption & Confidence Scorer.

Makes every unstated input of a quote explicit as an Assumption with a
0-100 confidence, and folds them into an overall 0-1 confidence that
decides whether the quote needs a human review. Confidence grows with
the number of the user's similar accepted quotes backing an assumption.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from config.pricing_policy import DEFAULT_POLICY, PricingPolicy
from models.interpretation import Interpretation, unit_field
from models.job_definition import JobDefinition
from models.quote import Assumption
from models.rates import HistoricalPattern, HistoricalQuote
from services.pricing_engine import RATE_SOURCE_JOB_DEFAULT, PricedLines

logger = structlog.get_logger()


# Confidence used when no history backs an assumption, per kind
FALLBACK_INFERRED_QUANTITY = 30
FALLBACK_DEFAULTED_FIELD = 45
FALLBACK_MARKET_RATE = 40
FALLBACK_HISTORY_RANGE = 40
STATED_BY_MODEL_CONFIDENCE = 45

CLARIFICATION_PENALTY = 0.1
MAX_PENALIZED_CLARIFICATIONS = 5

FIELD_LABELS = {
    "complexity": ("komplexitet", {"simple": "enkel", "normal": "normal", "complex": "komplex"}),
    "accessibility": ("åtkomlighet", {"easy": "lätt", "normal": "normal", "hard": "svår"}),
    "quality_level": ("kvalitetsnivå", {"budget": "budget", "standard": "standard", "premium": "premium"}),
}


def summarise_history(similar_quotes: Sequence[HistoricalQuote]) -> HistoricalPattern:
    """Aggregate similar accepted quotes into a HistoricalPattern."""
    totals = [q.total_before_vat for q in similar_quotes if q.total_before_vat > 0]
    if not totals:
        return HistoricalPattern()

    per_unit = [
        q.total_before_vat / q.area
        for q in similar_quotes
        if q.area and q.total_before_vat > 0
    ]
    return HistoricalPattern(
        sample_size=len(totals),
        min_total=min(totals),
        max_total=max(totals),
        avg_total=round(sum(totals) / len(totals), 2),
        avg_price_per_unit=round(sum(per_unit) / len(per_unit), 2) if per_unit else None,
    )


def assumption_confidence(sample_size: int, fallback: int) -> int:
    """Confidence (0-100) for an assumption backed by sample_size quotes.

    Three or more samples give at least 70 and at most 95. One or two
    samples stay below 50. Without samples the fallback is used, capped
    below 50.
    """
    if sample_size >= 3:
        return min(95, 55 + 5 * sample_size)
    if sample_size > 0:
        return min(49, fallback + 5 * sample_size)
    return min(49, fallback)


def generate_assumptions(
    interpretation: Interpretation,
    job_def: JobDefinition,
    lines: PricedLines,
    history: Optional[HistoricalPattern] = None
) -> List[Assumption]:
    """List every assumption a priced quote rests on.

    Args:
        interpretation: Interpretation the quote was priced from
        job_def: Job definition used for pricing
        lines: Priced lines
        history: Pattern of the user's similar accepted quotes

    Returns:
        Assumptions, confirmable ones naming the field to re-supply
    """
    history = history or HistoricalPattern()
    samples = history.sample_size
    assumptions: List[Assumption] = []

    if lines.unit_qty_inferred:
        assumptions.append(Assumption(
            text=f"Antagen mängd: {lines.unit_qty:g} {job_def.unit_type}",
            confidence=assumption_confidence(samples, FALLBACK_INFERRED_QUANTITY),
            source_of_truth="Standardvärde för jobbtypen",
            can_confirm=True,
            field=unit_field(job_def.unit_type),
        ))

    for field_name in interpretation.defaulted_fields:
        label, values = FIELD_LABELS.get(field_name, (field_name, {}))
        value = getattr(interpretation, field_name)
        value = getattr(value, "value", value)
        assumptions.append(Assumption(
            text=f"Antagen {label}: {values.get(value, value)}",
            confidence=assumption_confidence(samples, FALLBACK_DEFAULTED_FIELD),
            source_of_truth="Standardantagande",
            can_confirm=True,
            field=field_name,
        ))

    market_rates = sorted({
        item.hourly_rate for item in lines.work_items
        if item.rate_source == RATE_SOURCE_JOB_DEFAULT
    })
    if market_rates:
        rates_text = " / ".join(f"{r:.0f}" for r in market_rates)
        assumptions.append(Assumption(
            text=f"Timpris {rates_text} kr/h enligt marknadsnivå, inget eget timpris registrerat",
            confidence=assumption_confidence(samples, FALLBACK_MARKET_RATE),
            source_of_truth=job_def.source or "Marknadsdata",
            can_confirm=False,
            field="hourly_rate",
        ))

    for text in interpretation.assumptions:
        assumptions.append(Assumption(
            text=text,
            confidence=STATED_BY_MODEL_CONFIDENCE,
            source_of_truth="AI-tolkning av beskrivningen",
            can_confirm=False,
        ))

    if samples:
        assumptions.append(Assumption(
            text=(
                f"Liknande accepterade offerter har legat mellan "
                f"{history.min_total:,.0f} och {history.max_total:,.0f} kr exkl. moms ({samples} st)"
            ),
            confidence=assumption_confidence(samples, FALLBACK_HISTORY_RANGE),
            source_of_truth="Egen offerthistorik",
            can_confirm=False,
        ))

    return assumptions


def overall_confidence(assumptions: Sequence[Assumption], clarifications_needed: int = 0) -> float:
    """Overall confidence in [0, 1].

    Mean assumption confidence, reduced by 10 % per open clarification
    (at most five).
    """
    if assumptions:
        base = sum(a.confidence for a in assumptions) / len(assumptions) / 100
    else:
        base = 1.0
    penalty = 1 - CLARIFICATION_PENALTY * min(clarifications_needed, MAX_PENALIZED_CLARIFICATIONS)
    return round(max(0.0, min(1.0, base * penalty)), 2)


@dataclass
class ConfidenceReport:
    """Assumptions and the confidence derived from them."""
    assumptions: List[Assumption] = field(default_factory=list)
    confidence: float = 1.0
    needs_review: bool = False


class ConfidenceScorer:
    """Scores how much a priced quote rests on unconfirmed assumptions."""

    def __init__(self, policy: Optional[PricingPolicy] = None):
        self.policy = policy or DEFAULT_POLICY

    def score(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        lines: PricedLines,
        history: Optional[HistoricalPattern] = None
    ) -> ConfidenceReport:
        assumptions = generate_assumptions(interpretation, job_def, lines, history)
        confidence = overall_confidence(assumptions, len(interpretation.clarifications_needed))
        needs_review = confidence < self.policy.review_threshold

        logger.info(
            "quote_confidence_scored",
            job_type=job_def.job_type,
            assumptions=len(assumptions),
            confidence=confidence,
            needs_review=needs_review
        )
        return ConfidenceReport(assumptions=assumptions, confidence=confidence, needs_review=needs_review)
