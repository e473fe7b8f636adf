"""Clarification gate.

Decides whether an interpretation carries enough to price, or whether the
customer has to be asked first. The job definition's required inputs are
authoritative: a required field that is actually missing always halts,
and an AI "missing info" flag with nothing actually missing never does.
"""

from dataclasses import dataclass, field
from typing import List

import structlog

from models.interpretation import Interpretation
from models.job_definition import JobDefinition

logger = structlog.get_logger(__name__)

GENERIC_QUESTION = (
    "Kan du beskriva jobbet lite mer, till exempel vilken typ av arbete det gäller "
    "och ungefärlig storlek (kvm eller antal timmar)?"
)


@dataclass
class ClarificationDecision:
    """Result of the clarification gate."""
    needs_clarification: bool = False
    missing_fields: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)

    @property
    def first_question(self) -> str:
        return self.questions[0] if self.questions else ""


def missing_required_fields(interpretation: Interpretation, job_def: JobDefinition) -> List[str]:
    """Return the job's required inputs that the interpretation lacks."""
    return [
        name for name in job_def.required_input
        if not interpretation.field_present(name)
    ]


def check_clarification(interpretation: Interpretation, job_def: JobDefinition) -> ClarificationDecision:
    """Decide whether to ask the customer before pricing.

    Monotonic: once every required field is present the gate never halts.

    Args:
        interpretation: Parsed job specification
        job_def: Definition the job type resolved to

    Returns:
        ClarificationDecision with ordered, de-duplicated questions
    """
    missing = missing_required_fields(interpretation, job_def)

    if not missing:
        if interpretation.missing_critical_info:
            logger.info(
                "clarification_overridden_by_registry",
                job_type=job_def.job_type,
                ai_questions=len(interpretation.clarifications_needed)
            )
        return ClarificationDecision(needs_clarification=False)

    questions: List[str] = []
    for name in missing:
        question = job_def.question_for(name)
        if question not in questions:
            questions.append(question)
    for question in interpretation.clarifications_needed:
        if question and question not in questions:
            questions.append(question)
    if not questions:
        questions.append(GENERIC_QUESTION)

    logger.info(
        "clarification_required",
        job_type=job_def.job_type,
        missing_fields=missing,
        questions=len(questions)
    )
    return ClarificationDecision(
        needs_clarification=True,
        missing_fields=missing,
        questions=questions,
    )
