"""Quote engine configuration settings.

Non-secret configuration comes from environment variables (and a local
.env file). The OpenAI key is resolved through config.secrets. Pricing
rules such as VAT, deduction rates and validation bounds are not settings;
they live in config.pricing_policy.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import structlog
from dotenv import load_dotenv

# Emulator hosts, model name and timeouts for local runs
load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """Quote engine settings read from the environment."""

    # Interpretation and ROT/RUT fallback model
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    llm_temperature: float = field(default_factory=lambda: _env_float("LLM_TEMPERATURE", "0.1"))
    llm_timeout_seconds: float = field(default_factory=lambda: _env_float("LLM_TIMEOUT_SECONDS", "30"))
    llm_max_retries: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_RETRIES", "2")))

    # Firestore rate & benchmark store
    use_firebase_emulators: bool = field(default_factory=lambda: _env_bool("USE_FIREBASE_EMULATORS"))
    store_timeout_seconds: float = field(default_factory=lambda: _env_float("STORE_TIMEOUT_SECONDS", "5"))
    history_sample_limit: int = field(default_factory=lambda: int(os.getenv("HISTORY_SAMPLE_LIMIT", "20")))

    # Quotes below this overall confidence are flagged for review
    review_confidence_threshold: float = field(
        default_factory=lambda: _env_float("REVIEW_CONFIDENCE_THRESHOLD", "0.7")
    )

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    _openai_api_key: Optional[str] = field(default=None, repr=False)

    @property
    def openai_api_key(self) -> Optional[str]:
        """OpenAI API key, loaded once from Secret Manager or the environment."""
        if self._openai_api_key is None:
            from config.secrets import get_openai_api_key
            self._openai_api_key = get_openai_api_key()
        return self._openai_api_key

    @property
    def is_emulator_mode(self) -> bool:
        return self.use_firebase_emulators or bool(os.getenv("FIRESTORE_EMULATOR_HOST"))


def configure_logging(current: Optional[Settings] = None) -> None:
    """Configure structlog: readable console output locally, JSON in Cloud Functions."""
    current = current or settings
    level = logging.getLevelName(current.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    renderer = (
        structlog.dev.ConsoleRenderer()
        if current.is_emulator_mode
        else structlog.processors.JSONRenderer(ensure_ascii=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


# Singleton settings instance
settings = Settings()
