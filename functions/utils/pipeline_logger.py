"""Pipeline Output Logger for the quote pipeline.

Provides highly visible, formatted logging of each pipeline run with
distinctive visual markers that stand out in log streams.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog

logger = structlog.get_logger()

# Visual markers for different log types
BANNER_WIDTH = 80
STAGE_BANNER_CHAR = "─"
PIPELINE_BANNER_CHAR = "█"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _format_json(data: Dict[str, Any], indent: int = 2) -> str:
    """Format dictionary as pretty JSON string."""
    try:
        return json.dumps(data, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(data)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_pipeline_start(request_id: str, user_id: str, is_revision: bool) -> None:
    """Log pipeline start with prominent banner."""
    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "QUOTE PIPELINE STARTED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Request ID  : {request_id}")
    print(f"║ User ID     : {user_id}")
    print(f"║ Timestamp   : {_timestamp()}")
    print(f"║ Revision    : {'yes' if is_revision else 'no'}")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "pipeline_start_logged",
        request_id=request_id,
        user_id=user_id,
        is_revision=is_revision
    )


def log_stage_result(request_id: str, stage: str, summary: Dict[str, Any]) -> None:
    """Log the outcome of one pipeline stage."""
    print(_create_banner(STAGE_BANNER_CHAR, f"STAGE: {stage.upper()}"))
    print(_format_json(summary))
    print(STAGE_BANNER_CHAR * BANNER_WIDTH)

    logger.info(
        "stage_result_logged",
        request_id=request_id,
        stage=stage,
        **summary
    )


def log_pipeline_halted(request_id: str, missing_fields: List[str], questions: List[str]) -> None:
    """Log a run that stopped to ask the customer for more information."""
    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "? CLARIFICATION NEEDED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Request ID      : {request_id}")
    print(f"║ Missing Fields  : {', '.join(missing_fields) or '-'}")
    for question in questions:
        print(f"║   • {question}")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "pipeline_halted_logged",
        request_id=request_id,
        missing_fields=missing_fields,
        questions=len(questions)
    )


def log_pipeline_complete(
    request_id: str,
    total_with_vat: float,
    confidence: float,
    duration_ms: int,
    total_tokens: int
) -> None:
    """Log pipeline completion with summary."""
    print("\n")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(_create_banner(PIPELINE_BANNER_CHAR, "✓ QUOTE GENERATED"))
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print(f"║ Request ID       : {request_id}")
    print(f"║ Timestamp        : {_timestamp()}")
    print(f"║ Total incl. VAT  : {total_with_vat:,.2f} kr")
    print(f"║ Confidence       : {confidence:.2f}")
    print(f"║ Duration         : {duration_ms:,} ms ({duration_ms / 1000:.2f}s)")
    print(f"║ Total Tokens     : {total_tokens:,}")
    print(PIPELINE_BANNER_CHAR * BANNER_WIDTH)
    print("\n")

    logger.info(
        "pipeline_complete_logged",
        request_id=request_id,
        duration_ms=duration_ms,
        total_tokens=total_tokens
    )


def log_pipeline_failed(request_id: str, stage: str, error: str) -> None:
    """Log pipeline failure with details."""
    print("\n")
    print("!" * BANNER_WIDTH)
    print(_create_banner("!", "✗ QUOTE PIPELINE FAILED"))
    print("!" * BANNER_WIDTH)
    print(f"║ Request ID       : {request_id}")
    print(f"║ Timestamp        : {_timestamp()}")
    print(f"║ Failed Stage     : {stage}")
    print(f"║ Error            : {error}")
    print("!" * BANNER_WIDTH)
    print("\n")

    logger.error(
        "pipeline_failed_logged",
        request_id=request_id,
        stage=stage,
        error=error
    )
