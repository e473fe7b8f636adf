"""Pricing / formula engine.

Deterministic, auditable pricing: quantities become hours through the job
definition's coefficients, hours are priced at the user's own rate (or the
job's market rate), then materials, equipment, VAT, the ROT/RUT deduction
and an optional risk margin are composed into a Quote. The engine never
calls the LLM and holds no state besides the injected policy.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from config.errors import ErrorCode, InputError, QuoteError
from config.pricing_policy import DEFAULT_POLICY, PricingPolicy
from models.interpretation import Interpretation
from models.job_definition import JobDefinition, StandardWorkItem
from models.quote import (
    Assumption,
    EquipmentLine,
    Material,
    Quote,
    RecipientDeduction,
    RiskMargin,
    RotRutDeduction,
    Summary,
    WorkItem,
    round_money,
)
from models.rates import (
    DeductionRecipient,
    EquipmentRate,
    HourlyRate,
    RateContext,
    single_recipient,
)
from services.job_registry import GENERIC_JOB_TYPE

logger = structlog.get_logger()

GENERAL_RATE_KEYS = ("allmänt", "allmän", "timpris", "standard", "hantverkare", "general")
SERVICE_VEHICLE_NAME = "Servicebil"

RATE_SOURCE_USER = "user_rate"
RATE_SOURCE_USER_GENERAL = "user_general_rate"
RATE_SOURCE_JOB_DEFAULT = "job_default"
RATE_SOURCE_CLAMPED = "clamped"


def normalize_item_name(name: str) -> str:
    """Lowercase, strip punctuation (keeping å, ä, ö) and collapse spaces."""
    cleaned = re.sub(r"[^a-zåäöéü0-9]+", " ", (name or "").lower())
    return re.sub(r"\s+", " ", cleaned).strip()


def mentions(terms: Iterable[str], name: str) -> bool:
    """Whether any free-text term refers to a line item name."""
    normalized_name = normalize_item_name(name)
    compact_name = normalized_name.replace(" ", "")
    for term in terms:
        normalized_term = normalize_item_name(term)
        if len(normalized_term) < 3:
            continue
        if normalized_term in normalized_name or normalized_term.replace(" ", "") in compact_name:
            return True
        if normalized_name and normalized_name in normalized_term:
            return True
    return False


def _rate_matches(key: str, work_type: str) -> bool:
    """Word-prefix match, so "el" matches "elektriker" but not "kakel"."""
    key = normalize_item_name(key)
    if not key:
        return False
    for word in normalize_item_name(work_type).split():
        if len(word) >= 2 and (word.startswith(key) or key.startswith(word)):
            return True
    return False


_LINE_SYNONYMS = (
    (re.compile(r"\bvåtrum\b"), "badrum"),
    (re.compile(r"\bel ?installation\b"), "el installation"),
)


def line_key(name: str) -> str:
    """Grouping key under which two line names count as the same line."""
    key = normalize_item_name(name)
    for pattern, replacement in _LINE_SYNONYMS:
        key = pattern.sub(replacement, key)
    return key


def merge_duplicate_lines(
    work_items: Sequence[WorkItem],
    materials: Sequence[Material]
) -> Tuple[List[WorkItem], List[Material]]:
    """Merge lines that describe the same work or material.

    Work items merge on name and hourly rate, summing hours; materials merge
    on name, unit and unit price, summing quantity. Order of first
    appearance is kept and totals are unchanged.
    """
    merged_items: Dict[Tuple[str, float], WorkItem] = {}
    for item in work_items:
        key = (line_key(item.name), item.hourly_rate)
        if key in merged_items:
            first = merged_items[key]
            merged_items[key] = first.model_copy(update={"hours": round(first.hours + item.hours, 2)})
        else:
            merged_items[key] = item

    merged_materials: Dict[Tuple[str, str, float], Material] = {}
    for material in materials:
        key = (line_key(material.name), material.unit, material.price_per_unit)
        if key in merged_materials:
            first = merged_materials[key]
            merged_materials[key] = first.model_copy(
                update={"quantity": round(first.quantity + material.quantity, 2)}
            )
        else:
            merged_materials[key] = material

    dropped = len(work_items) - len(merged_items) + len(materials) - len(merged_materials)
    if dropped:
        logger.info("duplicate_lines_merged", merged=dropped)
    return list(merged_items.values()), list(merged_materials.values())


def _floor_money(value: float) -> float:
    return math.floor(round(value * 100, 6)) / 100


@dataclass
class PricedLines:
    """Line items priced for one interpretation, before summary."""

    work_items: List[WorkItem]
    materials: List[Material]
    equipment_lines: List[EquipmentLine]
    unit_qty: float
    unit_qty_inferred: bool = False
    notes: List[str] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return round(sum(item.hours for item in self.work_items), 2)


class PricingEngine:
    """Turns an interpretation and a job definition into priced lines and a summary."""

    def __init__(self, policy: Optional[PricingPolicy] = None):
        self.policy = policy or DEFAULT_POLICY

    # ------------------------------------------------------------------
    # Quantities and rates
    # ------------------------------------------------------------------

    def resolve_unit_qty(self, interpretation: Interpretation, job_def: JobDefinition) -> Tuple[float, bool]:
        """Return (unit quantity, inferred) for a job."""
        qty = interpretation.unit_quantity(job_def.unit_type)
        if qty:
            return qty, False
        if job_def.default_unit_qty:
            return job_def.default_unit_qty, True
        raise QuoteError(
            code=ErrorCode.MISSING_FIELD,
            message=f"Ingen mängd ({job_def.unit_type}) angiven för {job_def.job_type}",
            details={"job_type": job_def.job_type, "unit_type": job_def.unit_type}
        )

    def select_hourly_rate(
        self,
        worker_type: Optional[str],
        user_rates: Sequence[HourlyRate],
        job_def: JobDefinition
    ) -> Tuple[float, str]:
        """Pick the hourly rate for a work item.

        The user's rate for the matching work type wins, then the user's
        general rate, then the job definition's typical market rate.
        Non-positive user rates are ignored, so the result is never 0.
        """
        usable = [r for r in user_rates if r.rate and r.rate > 0]

        keys = ([worker_type] if worker_type else []) + list(job_def.rate_keys)
        for key in keys:
            for rate in usable:
                if _rate_matches(key, rate.work_type):
                    return rate.rate, RATE_SOURCE_USER

        for rate in usable:
            if normalize_item_name(rate.work_type) in GENERAL_RATE_KEYS:
                return rate.rate, RATE_SOURCE_USER_GENERAL

        return job_def.hourly_rate_range.typical, RATE_SOURCE_JOB_DEFAULT

    def hours_multiplier(self, interpretation: Interpretation, job_def: JobDefinition) -> float:
        """Complexity, accessibility and quality multipliers, composed."""
        return (
            job_def.complexity_multipliers.get(interpretation.complexity.value, 1.0)
            * job_def.accessibility_multipliers.get(interpretation.accessibility.value, 1.0)
            * job_def.quality_multipliers.get(interpretation.quality_level.value, 1.0)
        )

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _selected_work_items(self, interpretation: Interpretation, job_def: JobDefinition) -> List[StandardWorkItem]:
        wanted = interpretation.inclusions + interpretation.special_requirements
        selected = []
        for item in job_def.work_items:
            if mentions(interpretation.exclusions, item.name):
                continue
            if item.mandatory or mentions(wanted, item.name):
                selected.append(item)
        return selected

    def build_work_items(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        rates: RateContext,
        unit_qty: float
    ) -> List[WorkItem]:
        multiplier = self.hours_multiplier(interpretation, job_def)
        rate_factor = rates.multipliers.combined

        if job_def.is_generic:
            name = job_def.job_type
            if job_def.job_type == GENERIC_JOB_TYPE:
                name = interpretation.job_type or "Arbete"
            templates = [StandardWorkItem(name=name.capitalize(), hours_per_unit=1.0)]
        else:
            templates = self._selected_work_items(interpretation, job_def)

        work_items = []
        for template in templates:
            hours = round(template.base_hours(unit_qty) * multiplier, 2)
            if hours <= 0:
                continue
            rate, source = self.select_hourly_rate(template.worker_type, rates.hourly_rates, job_def)
            if rate_factor != 1.0:
                rate = round_money(rate * rate_factor)
            work_items.append(WorkItem(
                name=template.name,
                description=template.description,
                hours=hours,
                hourly_rate=rate,
                worker_type=template.worker_type,
                rot_eligible=template.rot_eligible if job_def.category != "none" else None,
                rate_source=source,
            ))
        return work_items

    def build_materials(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        unit_qty: float
    ) -> List[Material]:
        if interpretation.customer_provides_material:
            return []

        quality = interpretation.quality_level.value
        skip_terms = interpretation.exclusions + interpretation.customer_provides_details
        materials = []
        for calc in job_def.material_calculations:
            if mentions(skip_terms, calc.name):
                continue
            quantity = calc.quantity_for(unit_qty)
            if quantity <= 0:
                continue
            price = calc.price_per_unit.get(quality, calc.price_per_unit.get("standard", 0))
            materials.append(Material(
                name=calc.name,
                quantity=quantity,
                unit=calc.unit,
                price_per_unit=price,
            ))
        return materials

    def _user_equipment_rate(self, name: str, equipment_rates: Sequence[EquipmentRate]) -> Optional[EquipmentRate]:
        for rate in equipment_rates:
            if mentions([rate.name], name) or mentions([name], rate.name):
                return rate
        return None

    def build_equipment(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        total_hours: float,
        equipment_rates: Sequence[EquipmentRate]
    ) -> List[EquipmentLine]:
        lines = []
        for need in job_def.equipment:
            if mentions(interpretation.exclusions, need.name):
                continue
            user_rate = self._user_equipment_rate(need.name, equipment_rates)
            if user_rate:
                lines.append(EquipmentLine(
                    name=need.name,
                    price_per_day=user_rate.price_per_day,
                    price_per_hour=user_rate.price_per_hour if user_rate.price_per_day is None else None,
                    quantity=need.quantity,
                    is_rented=user_rate.is_rented,
                ))
            else:
                lines.append(EquipmentLine(
                    name=need.name,
                    price_per_day=need.default_price,
                    quantity=need.quantity,
                    is_rented=need.is_rented,
                ))

        vehicle = job_def.service_vehicle
        if vehicle and vehicle.auto_include and total_hours >= vehicle.threshold_hours:
            user_rate = self._user_equipment_rate(SERVICE_VEHICLE_NAME, equipment_rates)
            price = self.policy.default_service_vehicle_per_day
            if user_rate and user_rate.price_per_day:
                price = user_rate.price_per_day
            lines.append(EquipmentLine(
                name=SERVICE_VEHICLE_NAME,
                price_per_day=price,
                quantity=vehicle.days,
                is_rented=False,
            ))
        return lines

    def price_lines(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        rates: Optional[RateContext] = None
    ) -> PricedLines:
        """Price every line of a job. Pure given its inputs."""
        rates = rates or RateContext()
        unit_qty, inferred = self.resolve_unit_qty(interpretation, job_def)

        work_items, materials = merge_duplicate_lines(
            self.build_work_items(interpretation, job_def, rates, unit_qty),
            self.build_materials(interpretation, job_def, unit_qty)
        )
        total_hours = round(sum(item.hours for item in work_items), 2)
        equipment = self.build_equipment(interpretation, job_def, total_hours, rates.equipment_rates)

        notes = []
        for multiplier in (rates.multipliers.regional, rates.multipliers.seasonal):
            if multiplier.value != 1.0:
                notes.append(f"{multiplier.reason} ({multiplier.value:g} x timpris, material oförändrat)")

        logger.info(
            "quote_lines_priced",
            job_type=job_def.job_type,
            unit_qty=unit_qty,
            work_items=len(work_items),
            materials=len(materials),
            equipment=len(equipment),
            total_hours=total_hours
        )
        return PricedLines(
            work_items=work_items,
            materials=materials,
            equipment_lines=equipment,
            unit_qty=unit_qty,
            unit_qty_inferred=inferred,
            notes=notes,
        )

    def clamp_hourly_rates(
        self,
        work_items: Sequence[WorkItem],
        min_rate: float,
        max_rate: float
    ) -> List[WorkItem]:
        """Return work items with every rate pulled inside [min_rate, max_rate]."""
        clamped = []
        for item in work_items:
            rate = min(max(item.hourly_rate, min_rate), max_rate)
            if rate != item.hourly_rate:
                item = item.model_copy(update={"hourly_rate": rate, "rate_source": RATE_SOURCE_CLAMPED})
            clamped.append(item)
        return clamped

    # ------------------------------------------------------------------
    # Deduction, risk margin, summary
    # ------------------------------------------------------------------

    def calculate_deduction(
        self,
        deduction_type: str,
        work_items: Sequence[WorkItem],
        on_date: Optional[date] = None,
        recipients: Optional[Sequence[DeductionRecipient]] = None
    ) -> Optional[RotRutDeduction]:
        """Compute the ROT/RUT deduction on eligible labor.

        Each recipient gets their share of the deduction, capped by what
        remains of their share of the yearly cap, so the total never
        exceeds one person's cap whatever the split.

        Raises:
            InputError: If recipient shares do not sum to 1.0.
        """
        rule = self.policy.deduction_rule(deduction_type, on_date)
        if rule is None:
            return None

        labor = round_money(sum(item.subtotal for item in work_items if item.rot_eligible))
        if labor <= 0:
            return None

        recipients = list(recipients) if recipients else single_recipient()
        total_share = sum(r.share for r in recipients)
        if abs(total_share - 1.0) > 0.001:
            raise InputError(
                f"Andelarna för skattereduktion summerar till {total_share:.2f}, förväntat 1.0",
                field="recipients"
            )

        labor_incl_vat = round_money(labor * (1 + self.policy.vat_rate))
        potential = labor_incl_vat * rule.rate

        parts = []
        for recipient in recipients:
            cap_remaining = max(0.0, rule.cap_per_person * recipient.share - recipient.used_this_year)
            amount = _floor_money(min(potential * recipient.share, cap_remaining))
            parts.append(RecipientDeduction(
                name=recipient.name,
                share=recipient.share,
                cap_remaining=cap_remaining,
                amount=amount,
            ))
        deduction_amount = round_money(sum(p.amount for p in parts))

        return RotRutDeduction(
            type=deduction_type,
            labor_cost_excl_vat=labor,
            labor_cost_incl_vat=labor_incl_vat,
            deduction_rate=rule.rate,
            deduction_cap=rule.cap_per_person,
            deduction_amount=deduction_amount,
            price_after_deduction=round_money(labor_incl_vat - deduction_amount),
            rule_version=rule.version,
            recipients=parts,
        )

    def compute_risk_margin(
        self,
        total_with_vat: float,
        assumptions: Sequence[Assumption]
    ) -> Optional[RiskMargin]:
        """Contingency for high-value quotes resting on many low-confidence assumptions.

        The margin is a percentage of the total including VAT and is shown
        as its own line; it never changes the VAT base.
        """
        policy = self.policy
        low = [a for a in assumptions if a.confidence < policy.risk_margin_low_confidence]
        if total_with_vat <= policy.risk_margin_value_threshold:
            return None
        if len(low) <= policy.risk_margin_min_low_confidence_count:
            return None

        amount = round_money(total_with_vat * policy.risk_margin_rate)
        logger.info("risk_margin_applied", amount=amount, low_confidence_count=len(low))
        return RiskMargin(
            amount=amount,
            rate=policy.risk_margin_rate,
            reason=(
                f"Osäkerhetsmarginal {policy.risk_margin_rate:.0%} eftersom "
                f"{len(low)} antaganden har låg säkerhet"
            ),
            low_confidence_count=len(low),
        )

    def build_summary(
        self,
        lines: PricedLines,
        deduction: Optional[RotRutDeduction] = None,
        risk_margin: Optional[RiskMargin] = None
    ) -> Summary:
        return Summary.calculate(
            lines.work_items,
            lines.materials,
            lines.equipment_lines,
            vat_rate=self.policy.vat_rate,
            deduction=deduction,
            risk_margin=risk_margin.amount if risk_margin else 0.0,
        )

    def assemble_quote(
        self,
        interpretation: Interpretation,
        job_def: JobDefinition,
        lines: PricedLines,
        deduction_type: str,
        description: str = "",
        deduction: Optional[RotRutDeduction] = None,
        assumptions: Sequence[Assumption] = (),
        risk_margin: Optional[RiskMargin] = None,
        confidence: float = 1.0,
        needs_review: bool = False,
        is_draft: bool = False
    ) -> Quote:
        """Compose a Quote from priced lines."""
        summary = self.build_summary(lines, deduction, risk_margin)
        return Quote(
            title=quote_title(interpretation, job_def, lines.unit_qty),
            job_type=quote_job_type(interpretation, job_def),
            description=description,
            unit_qty=lines.unit_qty,
            unit_type=job_def.unit_type,
            quality_level=interpretation.quality_level.value,
            work_items=lines.work_items,
            materials=lines.materials,
            equipment_lines=lines.equipment_lines,
            summary=summary,
            assumptions=list(assumptions),
            deduction_type=deduction_type,
            confidence=confidence,
            needs_review=needs_review,
            risk_margin=risk_margin,
            adjustments=list(lines.notes),
            exclusions=list(interpretation.exclusions),
            customer_provides_material=interpretation.customer_provides_material,
            is_draft=is_draft,
        )


def quote_job_type(interpretation: Interpretation, job_def: JobDefinition) -> str:
    if job_def.job_type == GENERIC_JOB_TYPE and interpretation.job_type:
        return interpretation.job_type
    return job_def.job_type


def quote_title(interpretation: Interpretation, job_def: JobDefinition, unit_qty: float) -> str:
    name = quote_job_type(interpretation, job_def)
    if name == GENERIC_JOB_TYPE:
        name = "Arbete"
    return f"{name.capitalize()} {unit_qty:g} {job_def.unit_type}"
