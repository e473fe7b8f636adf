"""Quote models.

Line items carry their own computed subtotals; the Summary is only ever
built through Summary.calculate so its totals always agree with the lines.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def round_money(value: float) -> float:
    """Round a kronor amount to whole öre."""
    return round(value, 2)


class WorkItem(BaseModel):
    """A labor line: hours at an hourly rate."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: Optional[str] = None
    hours: float = Field(ge=0)
    hourly_rate: float = Field(gt=0, alias="hourlyRate")
    worker_type: Optional[str] = Field(default=None, alias="workerType")
    rot_eligible: Optional[bool] = Field(default=None, alias="rotEligible")
    rate_source: str = Field(default="job_default", alias="rateSource")

    @computed_field
    @property
    def subtotal(self) -> float:
        return round_money(self.hours * self.hourly_rate)


class Material(BaseModel):
    """A material line: quantity at a unit price."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    quantity: float = Field(ge=0)
    unit: str = "st"
    price_per_unit: float = Field(ge=0, alias="pricePerUnit")

    @computed_field
    @property
    def subtotal(self) -> float:
        return round_money(self.quantity * self.price_per_unit)


class EquipmentLine(BaseModel):
    """An equipment line billed per day or per hour."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    price_per_day: Optional[float] = Field(default=None, ge=0, alias="pricePerDay")
    price_per_hour: Optional[float] = Field(default=None, ge=0, alias="pricePerHour")
    quantity: float = Field(default=1.0, ge=0)
    is_rented: bool = Field(default=False, alias="isRented")

    @model_validator(mode="after")
    def _has_one_price(self) -> "EquipmentLine":
        if self.price_per_day is None and self.price_per_hour is None:
            raise ValueError("equipment line needs price_per_day or price_per_hour")
        return self

    @computed_field
    @property
    def subtotal(self) -> float:
        price = self.price_per_day if self.price_per_day is not None else self.price_per_hour
        return round_money(self.quantity * price)


class RecipientDeduction(BaseModel):
    """One recipient's part of a ROT/RUT deduction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: Optional[str] = None
    share: float
    cap_remaining: float = Field(alias="capRemaining")
    amount: float


class RotRutDeduction(BaseModel):
    """Tax deduction on the labor part of a quote."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str
    labor_cost_excl_vat: float = Field(alias="laborCostExclVat")
    labor_cost_incl_vat: float = Field(alias="laborCostInclVat")
    deduction_rate: float = Field(alias="deductionRate")
    deduction_cap: float = Field(alias="deductionCap")
    deduction_amount: float = Field(alias="deductionAmount")
    price_after_deduction: float = Field(alias="priceAfterDeduction")
    rule_version: str = Field(alias="ruleVersion")
    recipients: List[RecipientDeduction] = Field(default_factory=list)


class RiskMargin(BaseModel):
    """Labelled contingency line for uncertain high-value quotes."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    amount: float
    rate: float
    reason: str
    low_confidence_count: int = Field(alias="lowConfidenceCount")


class Summary(BaseModel):
    """Quote totals.

    The risk margin is a labelled term on top of the pre-deduction total;
    it never enters total_before_vat, so the VAT identities hold exactly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    work_cost: float = Field(alias="workCost")
    material_cost: float = Field(alias="materialCost")
    equipment_cost: float = Field(alias="equipmentCost")
    total_before_vat: float = Field(alias="totalBeforeVAT")
    vat_amount: float = Field(alias="vatAmount")
    total_with_vat: float = Field(alias="totalWithVAT")
    risk_margin: float = Field(default=0.0, alias="riskMargin")
    total_with_risk_margin: float = Field(alias="totalWithRiskMargin")
    rot_rut_deduction: Optional[RotRutDeduction] = Field(default=None, alias="rotRutDeduction")
    customer_pays: float = Field(alias="customerPays")

    @classmethod
    def calculate(
        cls,
        work_items: List[WorkItem],
        materials: List[Material],
        equipment_lines: List[EquipmentLine],
        vat_rate: float,
        deduction: Optional[RotRutDeduction] = None,
        risk_margin: float = 0.0
    ) -> "Summary":
        """Build a summary whose totals follow from the lines."""
        work_cost = round_money(sum(item.subtotal for item in work_items))
        material_cost = round_money(sum(m.subtotal for m in materials))
        equipment_cost = round_money(sum(e.subtotal for e in equipment_lines))
        risk_margin = round_money(risk_margin)

        total_before_vat = round_money(work_cost + material_cost + equipment_cost)
        vat_amount = round_money(total_before_vat * vat_rate)
        total_with_vat = round_money(total_before_vat + vat_amount)
        total_with_risk_margin = round_money(total_with_vat + risk_margin)
        deduction_amount = deduction.deduction_amount if deduction else 0.0

        return cls(
            work_cost=work_cost,
            material_cost=material_cost,
            equipment_cost=equipment_cost,
            total_before_vat=total_before_vat,
            vat_amount=vat_amount,
            total_with_vat=total_with_vat,
            risk_margin=risk_margin,
            total_with_risk_margin=total_with_risk_margin,
            rot_rut_deduction=deduction,
            customer_pays=round_money(total_with_risk_margin - deduction_amount),
        )


class Assumption(BaseModel):
    """Something the quote rests on that the customer did not state."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str
    confidence: int = Field(ge=0, le=100)
    source_of_truth: str = Field(alias="sourceOfTruth")
    can_confirm: bool = Field(default=False, alias="canConfirm")
    field: Optional[str] = None

    @model_validator(mode="after")
    def _confirmable_needs_field(self) -> "Assumption":
        if self.can_confirm and not self.field:
            raise ValueError("a confirmable assumption must name the field to re-supply")
        return self


class Quote(BaseModel):
    """A priced, explainable quote."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    job_type: str = Field(alias="jobType")
    description: str = ""
    unit_qty: Optional[float] = Field(default=None, alias="unitQty")
    unit_type: str = Field(default="tim", alias="unitType")
    quality_level: str = Field(default="standard", alias="qualityLevel")
    work_items: List[WorkItem] = Field(default_factory=list, alias="workItems")
    materials: List[Material] = Field(default_factory=list)
    equipment_lines: List[EquipmentLine] = Field(default_factory=list, alias="equipmentLines")
    summary: Summary
    assumptions: List[Assumption] = Field(default_factory=list)
    deduction_type: str = Field(default="none", alias="deductionType")
    confidence: float = Field(default=1.0, ge=0, le=1)
    needs_review: bool = Field(default=False, alias="needsReview")
    risk_margin: Optional[RiskMargin] = Field(default=None, alias="riskMargin")
    # Price adjustments shown to the customer, e.g. regional rate multipliers
    adjustments: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    customer_provides_material: bool = Field(default=False, alias="customerProvidesMaterial")
    is_draft: bool = Field(default=False, alias="isDraft")

    @property
    def total_hours(self) -> float:
        return round(sum(item.hours for item in self.work_items), 2)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
