"""Quote Pipeline Orchestrator.

Runs one quote request end to end: interpretation, clarification gate,
pricing, ROT/RUT classification, validation with one corrective pass,
assumptions and confidence, risk margin and, for revisions, the
consistency check against the previous quote.

Every run ends in exactly one of ClarificationResponse, QuoteResponse or
ErrorResponse. Store reads degrade to "absent"; nothing raises to the
caller.
"""

import asyncio
import time
from dataclasses import replace
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple, TypeVar
from uuid import uuid4

import structlog

from agents.critics.consistency_critic import (
    INTENT_REMOVE,
    check_consistency,
    detect_intent,
    extract_mentioned_items,
)
from agents.base_agent import TokenUsage
from agents.primary.classification_agent import RotRutClassifier, classify_work_items
from agents.primary.interpretation_agent import InterpretationAgent
from agents.scorers.confidence_scorer import ConfidenceScorer, summarise_history
from config.errors import (
    ErrorCode,
    InputError,
    PipelineError,
    QuoteError,
    QuoteValidationError,
    StoreError,
)
from config.pricing_policy import PricingPolicy
from config.settings import settings
from models.interpretation import Interpretation, unit_field
from models.job_definition import JobDefinition
from models.quote import Quote
from models.rates import Benchmark, DeductionRecipient, RateContext
from models.responses import ClarificationResponse, ErrorResponse, PipelineResponse, QuoteResponse
from models.validation import Severity, ValidationResult
from services.firestore_service import FirestoreService
from services.job_registry import GENERIC_JOB_TYPE, find_job_definition
from services.llm_service import LLMService
from services.location_service import LocationService
from services.pricing_engine import PricedLines, PricingEngine, quote_job_type
from validators.base_validator import BaseQuoteValidator
from validators.clarification_gate import check_clarification
from validators.quote_validator import get_validator
from utils.pipeline_logger import (
    log_pipeline_complete,
    log_pipeline_failed,
    log_pipeline_halted,
    log_pipeline_start,
    log_stage_result,
)

logger = structlog.get_logger()

T = TypeVar("T")

# Validation errors a rate clamp can fix
CORRECTABLE_ERRORS = {"min_hourly_rate", "min_total_cost"}


class QuotePipeline:
    """Single entry point for generating a quote from a free-text request.

    Variants are driven by input flags, not separate code paths:
    - previous_quote: revision of an earlier quote (delta check runs)
    - draft: validation errors are attached instead of blocking
    """

    def __init__(
        self,
        firestore_service: Optional[FirestoreService] = None,
        llm_service: Optional[LLMService] = None,
        policy: Optional[PricingPolicy] = None,
        interpretation_agent: Optional[InterpretationAgent] = None,
        classifier: Optional[RotRutClassifier] = None
    ):
        """Initialize QuotePipeline.

        Args:
            firestore_service: Optional Firestore service instance.
            llm_service: Optional LLM service shared by the LLM-backed stages.
            policy: Pricing policy; defaults honour configured review threshold.
            interpretation_agent: Optional interpretation stage override.
            classifier: Optional ROT/RUT classifier override.
        """
        self.firestore = firestore_service or FirestoreService()
        self.policy = policy or PricingPolicy(review_threshold=settings.review_confidence_threshold)
        self.interpreter = interpretation_agent or InterpretationAgent(llm_service)
        self.classifier = classifier or RotRutClassifier(llm_service)
        self.engine = PricingEngine(self.policy)
        self.location = LocationService(self.firestore)
        self.scorer = ConfidenceScorer(self.policy)

    async def generate_quote(
        self,
        description: str,
        conversation_history: Optional[Sequence[Any]] = None,
        user_id: str = "",
        previous_quote: Optional[Quote] = None,
        *,
        recipients: Optional[Sequence[DeductionRecipient]] = None,
        draft: bool = False,
        location: Optional[str] = None,
        quote_date: Optional[date] = None
    ) -> PipelineResponse:
        """Generate a quote, or ask for what is missing.

        Args:
            description: Latest free-text request from the customer.
            conversation_history: Earlier turns of the conversation.
            user_id: Craftsman whose rates and history are used.
            previous_quote: Quote being revised, if any (read-only).
            recipients: People sharing the ROT/RUT deduction.
            draft: Return the quote even if hard validation fails.
            location: Job location when not stated in the text.
            quote_date: Date deciding which deduction rules apply.

        Returns:
            ClarificationResponse, QuoteResponse or ErrorResponse.
        """
        start_time = time.time()
        usage = TokenUsage()
        request_id = str(uuid4())
        stage = "input"

        try:
            if not description or not description.strip():
                raise InputError("Beskrivningen av jobbet får inte vara tom", field="description")

            log_pipeline_start(request_id, user_id, is_revision=previous_quote is not None)

            stage = "interpretation"
            interpretation, hourly_rates, equipment_rates = await asyncio.gather(
                self.interpreter.interpret(description, conversation_history, usage=usage),
                self._read_or_default(self.firestore.get_hourly_rates(user_id), [], "get_hourly_rates"),
                self._read_or_default(self.firestore.get_equipment_rates(user_id), [], "get_equipment_rates"),
            )
            if location and not interpretation.location:
                interpretation = interpretation.model_copy(update={"location": location})
            if previous_quote is not None:
                interpretation = self._apply_revision(interpretation, previous_quote, description)

            job_def = find_job_definition(interpretation.job_type)
            log_stage_result(request_id, stage, {
                "job_type": interpretation.job_type,
                "definition": job_def.job_type,
                "is_fallback": interpretation.is_fallback,
            })

            stage = "clarification"
            decision = check_clarification(interpretation, job_def)
            if decision.needs_clarification:
                log_pipeline_halted(request_id, decision.missing_fields, decision.questions)
                return ClarificationResponse(
                    questions=decision.questions,
                    first_question=decision.first_question,
                    missing_fields=decision.missing_fields,
                    interpretation=interpretation,
                )

            stage = "pricing"
            job_type = quote_job_type(interpretation, job_def)
            benchmark, similar_quotes, multipliers = await asyncio.gather(
                self._read_or_default(
                    self.firestore.get_benchmark(job_def.benchmark_category or job_def.job_type),
                    None,
                    "get_benchmark"
                ),
                self._read_or_default(
                    self.firestore.find_similar_accepted_quotes(user_id, job_type, interpretation.area),
                    [],
                    "find_similar_accepted_quotes"
                ),
                self.location.get_multipliers(job_def, interpretation.location, interpretation.start_month),
            )
            rates = RateContext(
                hourly_rates=hourly_rates,
                equipment_rates=equipment_rates,
                multipliers=multipliers,
            )
            lines = self.engine.price_lines(interpretation, job_def, rates)

            stage = "classification"
            classification = await self.classifier.classify(
                self._customer_text(description, conversation_history),
                job_type,
                usage=usage
            )
            work_items, per_item = classify_work_items(lines.work_items, classification.deduction_type)
            lines = replace(lines, work_items=work_items)
            log_stage_result(request_id, stage, {
                "deduction_type": classification.deduction_type,
                "source": classification.source,
                "eligible_items": len([c for c in per_item if c.eligible]),
            })

            stage = "validation"
            quote_date = quote_date or date.today()
            validator = get_validator(job_def.job_type, self.policy)
            lines, validation = self._validate_with_correction(
                interpretation, job_def, lines, classification.deduction_type,
                description, validator, benchmark, quote_date, recipients, draft,
                rate_factor=rates.multipliers.combined
            )

            stage = "confidence"
            history = summarise_history(similar_quotes)
            report = self.scorer.score(interpretation, job_def, lines, history)
            deduction = self.engine.calculate_deduction(
                classification.deduction_type, lines.work_items, quote_date, recipients
            )
            pre_margin = self.engine.build_summary(lines, deduction)
            risk_margin = self.engine.compute_risk_margin(pre_margin.total_with_vat, report.assumptions)

            needs_review = report.needs_review or not validation.passed
            quote = self.engine.assemble_quote(
                interpretation, job_def, lines, classification.deduction_type,
                description=description,
                deduction=deduction,
                assumptions=report.assumptions,
                risk_margin=risk_margin,
                confidence=report.confidence,
                needs_review=needs_review,
                is_draft=draft,
            )

            warnings = list(validation.warnings)
            if not validation.passed:
                warnings = list(validation.errors) + warnings

            consistency_warnings: List[str] = []
            if previous_quote is not None:
                stage = "consistency"
                delta = check_consistency(previous_quote, quote, description)
                consistency_warnings = delta.consistency_warnings

            duration_ms = int((time.time() - start_time) * 1000)
            log_pipeline_complete(
                request_id,
                quote.summary.total_with_vat,
                quote.confidence,
                duration_ms,
                usage.total
            )
            logger.info(
                "quote_generated",
                request_id=request_id,
                job_type=quote.job_type,
                total_with_vat=quote.summary.total_with_vat,
                deduction_type=quote.deduction_type,
                confidence=quote.confidence,
                needs_review=needs_review,
                duration_ms=duration_ms
            )
            return QuoteResponse(
                quote=quote,
                confidence=quote.confidence,
                needs_review=needs_review,
                warnings=warnings,
                consistency_warnings=consistency_warnings,
                validation=validation,
            )

        except QuoteError as e:
            log_pipeline_failed(request_id, stage, e.message)
            logger.warning("quote_pipeline_rejected", request_id=request_id, stage=stage, code=e.code)
            return ErrorResponse(error=e.to_dict())
        except Exception as e:
            log_pipeline_failed(request_id, stage, str(e))
            logger.exception("quote_pipeline_exception", request_id=request_id, stage=stage, error=str(e))
            error = PipelineError(
                code=ErrorCode.PIPELINE_FAILED,
                message="Offerten kunde inte skapas på grund av ett internt fel",
                stage=stage,
                details={"error": str(e)}
            )
            return ErrorResponse(error=error.to_dict())

    async def _read_or_default(self, read: Awaitable[T], default: T, operation: str) -> T:
        """Await a store read; on StoreError treat the data as absent."""
        try:
            return await read
        except StoreError as e:
            logger.warning("store_read_degraded", operation=operation, code=e.code, error=e.message)
            return default

    def _customer_text(self, description: str, history: Optional[Sequence[Any]]) -> str:
        parts = []
        for entry in history or []:
            if isinstance(entry, dict):
                if entry.get("role", "user") == "user":
                    parts.append(str(entry.get("content", "")))
            elif getattr(entry, "role", "user") == "user":
                parts.append(str(getattr(entry, "content", entry)))
        parts.append(description)
        return "\n".join(p for p in parts if p)

    def _apply_revision(
        self,
        interpretation: Interpretation,
        previous: Quote,
        message: str
    ) -> Interpretation:
        """Carry the previous quote's scope into a revision request.

        Earlier exclusions stay excluded, lines the customer asks to remove
        are excluded, and the job type and quantity are inherited when the
        revision message does not restate them.
        """
        updates: Dict[str, Any] = {}

        exclusions = list(interpretation.exclusions)
        for excluded in previous.exclusions:
            if excluded not in exclusions:
                exclusions.append(excluded)
        if detect_intent(message) == INTENT_REMOVE:
            for item in extract_mentioned_items(message, previous):
                if item.item_name not in exclusions:
                    exclusions.append(item.item_name)
        updates["exclusions"] = exclusions

        if not interpretation.job_type or (
            find_job_definition(interpretation.job_type).job_type == GENERIC_JOB_TYPE
            and find_job_definition(previous.job_type).job_type != GENERIC_JOB_TYPE
        ):
            updates["job_type"] = previous.job_type

        job_def = find_job_definition(updates.get("job_type", interpretation.job_type))
        field_name = unit_field(previous.unit_type)
        if (
            previous.unit_qty
            and previous.unit_type == job_def.unit_type
            and getattr(interpretation, field_name) is None
        ):
            updates[field_name] = previous.unit_qty

        if previous.customer_provides_material:
            updates["customer_provides_material"] = True

        logger.info(
            "revision_scope_applied",
            previous_job_type=previous.job_type,
            exclusions=exclusions,
            inherited=[k for k in updates if k != "exclusions"]
        )
        return interpretation.model_copy(update=updates)

    def _validate_with_correction(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        lines: PricedLines,
        deduction_type: str,
        description: str,
        validator: BaseQuoteValidator,
        benchmark: Optional[Benchmark],
        quote_date: date,
        recipients: Optional[Sequence[DeductionRecipient]],
        draft: bool,
        rate_factor: float = 1.0
    ) -> Tuple[PricedLines, ValidationResult]:
        """Validate priced lines, clamping hourly rates once if that can fix them.

        A clamp that raises rates overrides any regional or seasonal
        discount; the quote then says so in its adjustments.

        Raises:
            QuoteValidationError: If errors remain and this is not a draft.
        """
        def run(current: PricedLines) -> ValidationResult:
            deduction = self.engine.calculate_deduction(deduction_type, current.work_items, quote_date, recipients)
            quote = self.engine.assemble_quote(
                interpretation, job_def, current, deduction_type,
                description=description, deduction=deduction
            )
            return validator.validate(quote, description, benchmark)

        validation = run(lines)
        if not validation.passed and CORRECTABLE_ERRORS & set(validation.error_codes()):
            min_rate = validator.limits.min_hourly_rate
            clamped = self.engine.clamp_hourly_rates(lines.work_items, min_rate, validator.limits.max_hourly_rate)
            notes = list(lines.notes)
            if rate_factor < 1.0 and any(
                after.hourly_rate > before.hourly_rate for before, after in zip(lines.work_items, clamped)
            ):
                notes.append(f"Prisnedsättningen begränsas av lägsta timpris {min_rate:.0f} kr/h")
            corrected = replace(lines, work_items=clamped, notes=notes)
            logger.info(
                "quote_rates_clamped",
                job_type=job_def.job_type,
                errors=validation.error_codes(),
                min_rate=min_rate
            )
            lines, validation = corrected, run(corrected)

        if not validation.passed and not draft:
            raise QuoteValidationError(
                "Offerten bryter mot en eller flera gränser och kunde inte korrigeras",
                errors=validation.errors,
                violations=[
                    issue.model_dump(mode="json") for issue in validation.issues
                    if issue.severity == Severity.ERROR
                ],
                validator=validation.validator_used,
            )
        return lines, validation


async def run_generate_quote(
    description: str,
    conversation_history: Optional[Sequence[Any]] = None,
    user_id: str = "",
    previous_quote: Optional[Quote] = None,
    **options
) -> PipelineResponse:
    """Run the quote pipeline with default services."""
    pipeline = QuotePipeline()
    return await pipeline.generate_quote(
        description,
        conversation_history,
        user_id,
        previous_quote,
        **options
    )
