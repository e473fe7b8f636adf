"""Pipeline response models.

A quote request always ends in exactly one of these three shapes.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models.interpretation import Interpretation
from models.quote import Quote
from models.validation import ValidationResult


class ClarificationResponse(BaseModel):
    """The job cannot be priced yet; ask the customer first."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["clarification"] = "clarification"
    questions: List[str]
    first_question: str = Field(alias="firstQuestion")
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")
    interpretation: Optional[Interpretation] = None


class QuoteResponse(BaseModel):
    """A priced quote with its review signals."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["quote"] = "quote"
    quote: Quote
    confidence: float
    needs_review: bool = Field(alias="needsReview")
    warnings: List[str] = Field(default_factory=list)
    consistency_warnings: List[str] = Field(default_factory=list, alias="consistencyWarnings")
    validation: Optional[ValidationResult] = None


class ErrorResponse(BaseModel):
    """The request failed; error follows QuoteError.to_dict()."""

    type: Literal["error"] = "error"
    error: Dict[str, Any]


PipelineResponse = Union[ClarificationResponse, QuoteResponse, ErrorResponse]
