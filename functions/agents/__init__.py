"""Quote pipeline agents.

This package contains the pipeline stages:
- Base class for LLM-backed stages
- Primary agents (Interpretation, ROT/RUT classification)
- Scorers (assumption confidence)
- Critics (revision consistency)
- Orchestrator (pipeline coordination)
"""

from agents.base_agent import BaseQuoteAgent

__all__ = ["BaseQuoteAgent"]
