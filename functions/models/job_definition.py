"""Job definition models.

A JobDefinition is the static, versioned description of one job type:
which inputs it needs, how quantities turn into hours and materials, its
rate range and which validator checks it.
"""

import math
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RateRange(BaseModel):
    """Market hourly rate range for a job type (kr/h excl. VAT)."""

    model_config = ConfigDict(frozen=True)

    min: float
    typical: float
    max: float


class StandardWorkItem(BaseModel):
    """A work step priced for every quote of the job type."""

    model_config = ConfigDict(frozen=True)

    name: str
    fixed_hours: float = 0.0
    hours_per_unit: float = 0.0
    mandatory: bool = True
    worker_type: Optional[str] = None
    rot_eligible: bool = True
    description: Optional[str] = None

    def base_hours(self, unit_qty: float) -> float:
        return self.fixed_hours + self.hours_per_unit * unit_qty


class MaterialCalculation(BaseModel):
    """How much of a material a job consumes and its price per quality tier."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit: str
    quantity_per_unit: float = 0.0
    fixed_quantity: float = 0.0
    round_up: bool = False
    price_per_unit: Dict[str, float]

    def quantity_for(self, unit_qty: float) -> float:
        qty = self.fixed_quantity + self.quantity_per_unit * unit_qty
        if self.round_up:
            return float(math.ceil(qty - 1e-9))
        return round(qty, 2)


class EquipmentNeed(BaseModel):
    """Equipment a job type always needs."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit: str = "dag"
    quantity: float = 1.0
    default_price: float
    is_rented: bool = True


class ServiceVehicleRule(BaseModel):
    """Service vehicle billing: half or full day once total hours reach a threshold."""

    model_config = ConfigDict(frozen=True)

    threshold_hours: float
    unit: str = "dag"
    auto_include: bool = True

    @property
    def days(self) -> float:
        return 0.5 if self.unit == "halv" else 1.0


class JobDefinition(BaseModel):
    """Static definition of a job type."""

    model_config = ConfigDict(frozen=True)

    job_type: str
    aliases: Tuple[str, ...] = ()
    category: str = "none"
    unit_type: str = "tim"
    required_input: Tuple[str, ...] = ()
    complexity_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {"simple": 0.85, "normal": 1.0, "complex": 1.3}
    )
    accessibility_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {"easy": 0.95, "normal": 1.0, "hard": 1.15}
    )
    quality_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {"budget": 0.95, "standard": 1.0, "premium": 1.15}
    )
    hourly_rate_range: RateRange
    rate_keys: Tuple[str, ...] = ()
    work_items: Tuple[StandardWorkItem, ...] = ()
    material_calculations: Tuple[MaterialCalculation, ...] = ()
    equipment: Tuple[EquipmentNeed, ...] = ()
    service_vehicle: Optional[ServiceVehicleRule] = None
    question_templates: Dict[str, str] = Field(default_factory=dict)
    default_unit_qty: Optional[float] = None
    validator: str = "generic"
    benchmark_category: Optional[str] = None
    region_sensitive: bool = True
    season_sensitive: bool = False
    source: str = "branschschablon"
    last_updated: str = "2025-01-01"

    @property
    def is_generic(self) -> bool:
        return not self.work_items

    @property
    def hours_per_unit(self) -> float:
        """Sum of per-unit hours over mandatory work items at neutral multipliers."""
        return sum(item.hours_per_unit for item in self.work_items if item.mandatory)

    def question_for(self, field_name: str) -> str:
        return self.question_templates.get(
            field_name,
            f"Kan du ange {field_name.replace('_', ' ')} för jobbet?"
        )

    def mandatory_item_names(self) -> List[str]:
        return [item.name for item in self.work_items if item.mandatory]
