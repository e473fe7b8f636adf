"""Quote engine error handling.

Custom exceptions and error codes for the quote pipeline.
Clarification requests and validation/consistency warnings are response
data, not exceptions.
"""

from typing import Optional, Dict, Any, List


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Input Errors (1xxx)
    INPUT_ERROR = "INPUT_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"

    # Interpretation Errors (2xxx)
    INTERPRETATION_FAILED = "INTERPRETATION_FAILED"
    INTERPRETATION_PARSE_ERROR = "INTERPRETATION_PARSE_ERROR"

    # Validation Errors (3xxx)
    VALIDATION_FAILED = "VALIDATION_FAILED"

    # Pipeline Errors (4xxx)
    PIPELINE_FAILED = "PIPELINE_FAILED"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"

    # Store Errors (5xxx)
    STORE_ERROR = "STORE_ERROR"
    STORE_TIMEOUT = "STORE_TIMEOUT"

    # LLM Errors (6xxx)
    LLM_ERROR = "LLM_ERROR"
    LLM_RATE_LIMIT = "LLM_RATE_LIMIT"
    LLM_CONTEXT_TOO_LONG = "LLM_CONTEXT_TOO_LONG"
    LLM_TIMEOUT = "LLM_TIMEOUT"


class QuoteError(Exception):
    """Base exception for quote engine errors.

    Provides structured error information for API responses.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class InputError(QuoteError):
    """The request itself is unusable (e.g. empty description)."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.INPUT_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )
        self.field = field


class LLMError(QuoteError):
    """LLM call failed (rate limit, timeout, bad output)."""


class InterpretationFailure(QuoteError):
    """Interpretation could not be produced from the LLM.

    Recovered locally by the interpretation stage; never surfaced to callers.
    """

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.INTERPRETATION_FAILED,
            message=message,
            details=details
        )


class StoreError(QuoteError):
    """Rate & benchmark store read failed or timed out."""

    def __init__(
        self,
        message: str,
        operation: str,
        code: str = ErrorCode.STORE_ERROR,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "operation": operation}
        )
        self.operation = operation


class QuoteValidationError(QuoteError):
    """A priced quote failed hard validation and could not be corrected."""

    def __init__(
        self,
        message: str,
        errors: List[str],
        violations: Optional[List[Dict[str, Any]]] = None,
        validator: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            details={
                "errors": errors,
                "violations": violations or [],
                "validator": validator
            }
        )
        self.errors = errors
        self.violations = violations or []


class PipelineError(QuoteError):
    """Pipeline-specific error."""

    def __init__(
        self,
        code: str,
        message: str,
        stage: Optional[str] = None,
        details: Optional[Dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details={**(details or {}), "stage": stage}
        )
        self.stage = stage
