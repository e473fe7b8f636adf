"""Interpretation models.

Structured reading of a free-text job description, produced by the
interpretation stage and consumed by the clarification gate and pricing.
Instances are frozen: derived variants are built with model_copy(update=...).
"""

import re
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Complexity(str, Enum):
    """How demanding the job is."""

    SIMPLE = "simple"
    NORMAL = "normal"
    COMPLEX = "complex"


class Accessibility(str, Enum):
    """How easy the work site is to reach and work in."""

    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


class QualityLevel(str, Enum):
    """Material and finish quality tier."""

    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"


# Interpretation fields that hold a measured quantity
NUMERIC_FIELDS = ("area", "length", "quantity", "rooms")

# Interpretation field holding the quantity for each unit type
UNIT_FIELDS = {"kvm": "area", "lm": "length", "rum": "rooms"}

# Enum fields the parser may have to default
ENUM_DEFAULTS = {
    "complexity": Complexity.NORMAL,
    "accessibility": Accessibility.NORMAL,
    "quality_level": QualityLevel.STANDARD,
}


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:[.,]\d+)?", value)
        if match:
            return float(match.group(0).replace(",", "."))
    return None


def unit_field(unit_type: str) -> str:
    """Interpretation field holding the quantity for a unit type."""
    return UNIT_FIELDS.get(unit_type, "quantity")


class ConversationMessage(BaseModel):
    """One turn of the conversation preceding the current request."""

    role: str = "user"
    content: str = ""


class Interpretation(BaseModel):
    """Structured job specification derived from free text."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=False)

    job_type: str = Field(default="", alias="jobType")
    area: Optional[float] = Field(default=None, ge=0)
    length: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[float] = Field(default=None, ge=0)
    rooms: Optional[float] = Field(default=None, ge=0)
    complexity: Complexity = Complexity.NORMAL
    accessibility: Accessibility = Accessibility.NORMAL
    quality_level: QualityLevel = Field(default=QualityLevel.STANDARD, alias="qualityLevel")
    special_requirements: List[str] = Field(default_factory=list, alias="specialRequirements")
    exclusions: List[str] = Field(default_factory=list)
    inclusions: List[str] = Field(default_factory=list)
    customer_provides_material: bool = Field(default=False, alias="customerProvidesMaterial")
    customer_provides_details: List[str] = Field(default_factory=list, alias="customerProvidesDetails")
    assumptions: List[str] = Field(default_factory=list)
    clarifications_needed: List[str] = Field(default_factory=list, alias="clarificationsNeeded")
    missing_critical_info: bool = Field(default=False, alias="missingCriticalInfo")
    start_month: Optional[int] = Field(default=None, ge=1, le=12, alias="startMonth")
    location: Optional[str] = None

    # Enum fields that were absent or invalid in the model output
    defaulted_fields: List[str] = Field(default_factory=list, alias="defaultedFields")
    is_fallback: bool = Field(default=False, alias="isFallback")

    @field_validator("job_type", mode="before")
    @classmethod
    def _normalize_job_type(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip().lower()

    @field_validator("area", "length", "quantity", "rooms", mode="before")
    @classmethod
    def _coerce_number(cls, v: Any) -> Optional[float]:
        number = _to_number(v)
        if number is not None and number <= 0:
            return None
        return number

    @field_validator(
        "special_requirements", "exclusions", "inclusions",
        "customer_provides_details", "assumptions", "clarifications_needed",
        "defaulted_fields",
        mode="before"
    )
    @classmethod
    def _coerce_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if not isinstance(v, (list, tuple, set)):
            return [str(v)]
        return [str(item) for item in v if item is not None and str(item).strip()]

    @field_validator("start_month", mode="before")
    @classmethod
    def _coerce_month(cls, v: Any) -> Optional[int]:
        number = _to_number(v)
        if number is None or not 1 <= number <= 12:
            return None
        return int(number)

    @field_validator("customer_provides_material", "missing_critical_info", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "ja", "yes", "1")
        return bool(v)

    def unit_quantity(self, unit_type: str) -> Optional[float]:
        """Return the measured quantity matching a job's unit type."""
        return getattr(self, unit_field(unit_type))

    def field_present(self, name: str) -> bool:
        """Whether a required input field carries a usable value."""
        value = getattr(self, name, None)
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        if isinstance(value, list):
            return len(value) > 0
        return True
