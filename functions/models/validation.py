"""Validation result models for priced quotes and revisions."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Issue severity. Errors block a final quote; warnings are advisory."""

    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """One violated bound or domain rule."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    message: str
    severity: Severity
    bound: Optional[float] = None
    actual: Optional[float] = None


class ValidationResult(BaseModel):
    """Outcome of running a domain validator over a quote."""

    model_config = ConfigDict(populate_by_name=True)

    passed: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    issues: List[ValidationIssue] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    validator_used: str = Field(default="generic", alias="validatorUsed")

    def error_codes(self) -> List[str]:
        return [i.code for i in self.issues if i.severity == Severity.ERROR]


class DeltaChange(BaseModel):
    """A line that was added, removed or modified between two quote revisions."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    category: str
    item_name: str = Field(alias="itemName")
    old_value: Optional[float] = Field(default=None, alias="oldValue")
    new_value: Optional[float] = Field(default=None, alias="newValue")


class DeltaValidation(BaseModel):
    """Consistency check between a previous quote and its revision."""

    model_config = ConfigDict(populate_by_name=True)

    valid: bool = True
    intent: str = "none"
    consistency_warnings: List[str] = Field(default_factory=list, alias="consistencyWarnings")
    price_change: float = Field(default=0.0, alias="priceChange")
    price_change_percent: float = Field(default=0.0, alias="priceChangePercent")
    changes: List[DeltaChange] = Field(default_factory=list)
