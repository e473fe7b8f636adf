"""LLM service for the quote engine.

Provides LangChain/OpenAI integration for the interpretation and
classification stages.
"""

import asyncio
import json
from typing import Dict, Any, Optional, List

import structlog
from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from config.errors import LLMError, ErrorCode

logger = structlog.get_logger()


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences around a model response."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


def extract_json_object(content: str) -> str:
    """Return the outermost {...} block of a response that may carry prose."""
    content = strip_code_fences(content)
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        return content
    return content[start:end + 1]


def _is_rate_limit(error: BaseException) -> bool:
    return isinstance(error, LLMError) and error.code == ErrorCode.LLM_RATE_LIMIT


class LLMService:
    """Service for LLM operations using LangChain.

    Provides a wrapper around ChatOpenAI with token tracking, a bounded
    timeout and error classification.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        """Initialize LLMService.

        Args:
            model: Model name (default from settings).
            temperature: Temperature (default from settings).
            api_key: OpenAI API key (default from settings).
            timeout_seconds: Upper bound for one call (default from settings).
        """
        self.model = model or settings.llm_model
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.api_key = api_key or settings.openai_api_key
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

        self._client: Optional[ChatOpenAI] = None
        self._total_tokens_used = 0

    @property
    def client(self) -> ChatOpenAI:
        """Get LangChain ChatOpenAI client (lazy initialization)."""
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=self.api_key,
                timeout=self.timeout_seconds,
                max_retries=0
            )
        return self._client

    @property
    def total_tokens_used(self) -> int:
        """Get total tokens used across all calls."""
        return self._total_tokens_used

    @retry(
        stop=stop_after_attempt(max(1, settings.llm_max_retries + 1)),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception(_is_rate_limit),
        reraise=True,
    )
    async def generate(
        self,
        messages: List[BaseMessage],
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Generate a response from the LLM.

        Args:
            messages: List of LangChain messages.
            max_tokens: Optional max tokens for response.

        Returns:
            Dict with content and token usage.

        Raises:
            LLMError: If the call fails, times out or is rate limited.
        """
        kwargs = {}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await asyncio.wait_for(
                self.client.ainvoke(messages, **kwargs),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("llm_timeout", model=self.model, timeout_seconds=self.timeout_seconds)
            raise LLMError(
                code=ErrorCode.LLM_TIMEOUT,
                message=f"LLM call exceeded {self.timeout_seconds}s",
                details={"timeout_seconds": self.timeout_seconds}
            )
        except Exception as e:
            error_msg = str(e)
            lowered = error_msg.lower()

            if "rate_limit" in lowered or "rate limit" in lowered or "429" in lowered:
                logger.warning("llm_rate_limited", model=self.model)
                raise LLMError(
                    code=ErrorCode.LLM_RATE_LIMIT,
                    message="OpenAI rate limit exceeded",
                    details={"original_error": error_msg}
                )
            elif "context_length" in lowered or "maximum context" in lowered:
                raise LLMError(
                    code=ErrorCode.LLM_CONTEXT_TOO_LONG,
                    message="Input too long for model context",
                    details={"original_error": error_msg}
                )
            raise LLMError(
                code=ErrorCode.LLM_ERROR,
                message=f"LLM generation failed: {error_msg}",
                details={"original_error": error_msg}
            )

        tokens_used = 0
        if hasattr(response, "response_metadata"):
            usage = response.response_metadata.get("token_usage", {}) or {}
            tokens_used = usage.get("total_tokens", 0)
            self._total_tokens_used += tokens_used

        logger.info(
            "llm_generated",
            model=self.model,
            tokens_used=tokens_used,
            content_length=len(response.content)
        )

        return {
            "content": response.content,
            "tokens_used": tokens_used
        }

    async def generate_with_system_prompt(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Generate a response with system prompt.

        Args:
            system_prompt: System prompt for context.
            user_message: User message/query.
            max_tokens: Optional max tokens for response.

        Returns:
            Dict with content and token usage.
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message)
        ]
        return await self.generate(messages, max_tokens)

    async def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None
    ) -> Dict[str, Any]:
        """Generate a JSON response.

        Adds JSON formatting instructions to the system prompt.

        Returns:
            Dict with parsed JSON content and token usage.

        Raises:
            LLMError: If response is not valid JSON.
        """
        json_prompt = f"""{system_prompt}

VIKTIGT: Svara ENDAST med giltig JSON. Ingen markdown, ingen förklaring."""

        result = await self.generate_with_system_prompt(
            json_prompt,
            user_message,
            max_tokens
        )

        try:
            parsed = json.loads(extract_json_object(result["content"]))
        except json.JSONDecodeError as e:
            raise LLMError(
                code=ErrorCode.LLM_ERROR,
                message="LLM did not return valid JSON",
                details={
                    "parse_error": str(e),
                    "raw_content": result["content"][:500]
                }
            )

        return {
            "content": parsed,
            "tokens_used": result["tokens_used"]
        }
