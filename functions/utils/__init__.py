"""Utility modules for the quote engine functions."""

from utils.pipeline_logger import (
    log_pipeline_start,
    log_pipeline_complete,
    log_pipeline_failed,
    log_pipeline_halted,
    log_stage_result,
)

__all__ = [
    "log_pipeline_start",
    "log_pipeline_complete",
    "log_pipeline_failed",
    "log_pipeline_halted",
    "log_stage_result",
]
