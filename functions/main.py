"""Cloud Function entry points for the quote engine.

Provides HTTP endpoints for:
- Generating a quote (or a clarification request) from a job description
"""

import asyncio
import json
from datetime import date, datetime
from typing import Any, Dict, Optional

import structlog
from firebase_admin import initialize_app
from firebase_functions import https_fn, options
from pydantic import ValidationError as PydanticValidationError

from config.errors import ErrorCode, InputError, QuoteError
from config.settings import configure_logging
from models.quote import Quote
from models.rates import DeductionRecipient
from models.responses import ErrorResponse

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

configure_logging()
logger = structlog.get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}

ERROR_STATUS = {
    ErrorCode.INPUT_ERROR: 400,
    ErrorCode.MISSING_FIELD: 400,
    ErrorCode.INVALID_FIELD: 400,
    ErrorCode.VALIDATION_FAILED: 422,
}

# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Args:
        req: HTTP request object.

    Returns:
        Parsed JSON data.

    Raises:
        InputError: If JSON is invalid.
    """
    try:
        data = req.get_json(force=True) or {}
    except Exception as e:
        raise InputError(f"Invalid JSON in request body: {str(e)}")
    if not isinstance(data, dict):
        raise InputError("Request body must be a JSON object")
    return data


def parse_quote_request(data: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a request body into pipeline arguments.

    Raises:
        InputError: If a field is missing or malformed.
    """
    user_id = data.get("userId")
    if not user_id:
        raise InputError("Missing userId in request", field="userId")

    history = data.get("conversationHistory") or []
    if not isinstance(history, list):
        raise InputError("conversationHistory must be a list", field="conversationHistory")

    previous_quote = None
    if data.get("previousQuote"):
        try:
            previous_quote = Quote.model_validate(data["previousQuote"])
        except PydanticValidationError as e:
            raise InputError("Invalid previousQuote", field="previousQuote", details={"errors": e.errors()})

    recipients = None
    if data.get("recipients"):
        try:
            recipients = [DeductionRecipient.model_validate(r) for r in data["recipients"]]
        except (PydanticValidationError, TypeError) as e:
            raise InputError("Invalid recipients", field="recipients", details={"error": str(e)})

    quote_date = None
    if data.get("quoteDate"):
        try:
            quote_date = date.fromisoformat(str(data["quoteDate"]))
        except ValueError:
            raise InputError("quoteDate must be an ISO date (YYYY-MM-DD)", field="quoteDate")

    return {
        "description": data.get("description") or "",
        "conversation_history": history,
        "user_id": user_id,
        "previous_quote": previous_quote,
        "recipients": recipients,
        "draft": bool(data.get("draft", False)),
        "location": data.get("location"),
        "quote_date": quote_date,
    }


# ============================================================================
# Quote Entry Point
# ============================================================================


@https_fn.on_request(
    timeout_sec=120,
    memory=options.MemoryOption.MB_512,
    region="europe-north1"
)
def generate_quote(req: https_fn.Request) -> https_fn.Response:
    """Generate a quote from a free-text job description.

    Request body:
    {
        "userId": "user-123",
        "description": "Måla 3 rum, totalt 45 kvm",
        "conversationHistory": [{"role": "user", "content": "..."}],  // Optional
        "previousQuote": {...},    // Optional: quote being revised
        "recipients": [{"share": 0.5}, {"share": 0.5}],  // Optional
        "draft": false,            // Optional
        "location": "Uppsala",     // Optional
        "quoteDate": "2026-03-01"  // Optional
    }

    Response:
    {
        "success": true,
        "data": {"type": "quote" | "clarification", ...}
    }
    """
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        arguments = parse_quote_request(data)

        logger.info(
            "quote_request_received",
            user_id=arguments["user_id"],
            is_revision=arguments["previous_quote"] is not None,
            draft=arguments["draft"]
        )

        result = asyncio.run(_generate_quote_async(arguments))

        if isinstance(result, ErrorResponse):
            error = result.error
            return _json_response(
                error_response(error["code"], error["message"], error.get("details")),
                status=ERROR_STATUS.get(error["code"], 500)
            )
        return _json_response(success_response(result.model_dump(by_alias=True, mode="json")))

    except QuoteError as e:
        return _json_response(
            error_response(e.code, e.message, e.details),
            status=ERROR_STATUS.get(e.code, 500)
        )
    except Exception as e:
        logger.exception("quote_request_exception", error=str(e))
        return _json_response(
            error_response(
                ErrorCode.PIPELINE_FAILED,
                f"Failed to generate quote: {str(e)}"
            ),
            status=500
        )


async def _generate_quote_async(arguments: Dict[str, Any]):
    """Run the quote pipeline for one request."""
    from agents.orchestrator import QuotePipeline

    pipeline = QuotePipeline()
    return await pipeline.generate_quote(**arguments)


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""

    def _json_default(o: Any):
        """JSON serializer for objects not serializable by default."""
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return str(o)

    return https_fn.Response(
        json.dumps(data, default=_json_default, ensure_ascii=False),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )
