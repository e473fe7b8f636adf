"""Base agent for the quote pipeline.

Shared plumbing for the LLM-backed stages: LLM service access plus token
and duration tracking. Agents are shared across concurrent requests, so
tracking lives in a per-call AgentRun and an optional per-request
TokenUsage, never on the agent.
"""

from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time

import structlog

from services.llm_service import LLMService

logger = structlog.get_logger()


@dataclass
class TokenUsage:
    """Tokens spent by the LLM-backed stages of one request."""

    by_agent: Dict[str, int] = field(default_factory=dict)

    def add(self, agent: str, tokens: int) -> None:
        self.by_agent[agent] = self.by_agent.get(agent, 0) + tokens

    @property
    def total(self) -> int:
        return sum(self.by_agent.values())


@dataclass
class AgentRun:
    """Duration and tokens of a single agent invocation."""

    agent: str
    usage: Optional[TokenUsage] = None
    started_at: float = field(default_factory=time.time)
    tokens_used: int = 0

    @property
    def duration_ms(self) -> int:
        return int((time.time() - self.started_at) * 1000)

    def track(self, result: Dict[str, Any]) -> None:
        tokens = result.get("tokens_used", 0) or 0
        self.tokens_used += tokens
        if self.usage is not None:
            self.usage.add(self.agent, tokens)


class BaseQuoteAgent(ABC):
    """Abstract base class for LLM-backed pipeline stages.

    Provides:
    - LLM service integration
    - Per-call token and duration tracking
    """

    def __init__(self, name: str, llm_service: Optional[LLMService] = None):
        """Initialize BaseQuoteAgent.

        Args:
            name: Stage name (e.g., "interpretation", "classification").
            llm_service: Optional LLM service instance.
        """
        self.name = name
        self._llm = llm_service

    @property
    def llm(self) -> LLMService:
        """Get LLM service (lazy initialization)."""
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    def _begin(self, usage: Optional[TokenUsage] = None) -> AgentRun:
        return AgentRun(agent=self.name, usage=usage)

    def _log_complete(self, run: AgentRun, **fields) -> None:
        logger.info(
            "agent_completed",
            agent=self.name,
            duration_ms=run.duration_ms,
            tokens_used=run.tokens_used,
            **fields
        )
