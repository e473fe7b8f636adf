"""ROT/RUT classification models."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemClassification(BaseModel):
    """Deduction eligibility of one work item."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    eligible: bool
    reasoning: str


class ClassificationResult(BaseModel):
    """Which tax deduction a job qualifies for, and why."""

    model_config = ConfigDict(populate_by_name=True)

    deduction_type: str = Field(alias="deductionType")
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    source: str = "rule"
    rule_id: Optional[str] = Field(default=None, alias="ruleId")
    rule_version: Optional[str] = Field(default=None, alias="ruleVersion")
    per_item_classification: List[ItemClassification] = Field(
        default_factory=list, alias="perItemClassification"
    )
