"""Pytest configuration and shared fixtures for quote engine tests."""

import os
import sys
import pytest
from unittest.mock import AsyncMock, MagicMock, patch


# ============================================================================
# Ensure local imports work (agents/, models/, services/, config/)
# ============================================================================
#
# Our codebase uses absolute imports like `from models...` / `from agents...`.
# This guarantees that `functions/` is importable as the top-level module root.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


# ============================================================================
# Firebase Mocks
# ============================================================================

@pytest.fixture
def mock_firestore_client():
    """Mock Firestore client."""
    client = MagicMock()

    # Set up chain: client.collection().document() / .where().where().stream()
    collection_mock = MagicMock()
    document_mock = MagicMock()
    query_mock = MagicMock()

    client.collection.return_value = collection_mock
    collection_mock.document.return_value = document_mock
    collection_mock.where.return_value = query_mock
    query_mock.where.return_value = query_mock
    query_mock.stream.return_value = []

    document_mock.get.return_value = MagicMock(exists=False, to_dict=lambda: None)

    return client


@pytest.fixture
def mock_firestore_service(mock_firestore_client):
    """FirestoreService with mocked client."""
    from services.firestore_service import FirestoreService

    service = FirestoreService(db=mock_firestore_client, timeout_seconds=1)
    return service


@pytest.fixture
def mock_store():
    """Fully mocked store: no user rates, no benchmark, no history, neutral multipliers."""
    mock = MagicMock()
    mock.get_hourly_rates = AsyncMock(return_value=[])
    mock.get_equipment_rates = AsyncMock(return_value=[])
    mock.get_benchmark = AsyncMock(return_value=None)
    mock.find_similar_accepted_quotes = AsyncMock(return_value=[])
    mock.get_regional_multiplier = AsyncMock(return_value=None)
    mock.get_seasonal_multiplier = AsyncMock(return_value=None)
    return mock


# ============================================================================
# LLM Mocks
# ============================================================================

@pytest.fixture
def mock_llm_response():
    """Standard mock LLM response."""
    return {
        "content": "Mock LLM response",
        "tokens_used": 100
    }


@pytest.fixture
def mock_chat_openai():
    """Mock ChatOpenAI client."""
    mock = AsyncMock()
    mock.ainvoke.return_value = MagicMock(
        content="Mock response content",
        response_metadata={"token_usage": {"total_tokens": 100}}
    )
    return mock


@pytest.fixture
def mock_llm_service(mock_chat_openai):
    """Mock LLMService."""
    from services.llm_service import LLMService

    with patch('services.llm_service.ChatOpenAI', return_value=mock_chat_openai):
        service = LLMService(api_key="test-api-key")
        service._client = mock_chat_openai
        return service


@pytest.fixture
def mock_llm():
    """LLM service double whose generate_* methods are AsyncMocks."""
    mock = MagicMock()
    mock.generate_with_system_prompt = AsyncMock(return_value={"content": "{}", "tokens_used": 50})
    mock.generate_json = AsyncMock(return_value={"content": {}, "tokens_used": 50})
    return mock


# ============================================================================
# Environment Setup
# ============================================================================

@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Deterministic settings for all tests; never touches Secret Manager."""
    from config.settings import settings

    monkeypatch.setenv("FUNCTIONS_EMULATOR", "true")
    monkeypatch.setattr(settings, "_openai_api_key", "test-api-key")
    monkeypatch.setattr(settings, "llm_model", "gpt-4o")
    monkeypatch.setattr(settings, "llm_temperature", 0.1)
    monkeypatch.setattr(settings, "llm_timeout_seconds", 5.0)
    monkeypatch.setattr(settings, "use_firebase_emulators", True)
    monkeypatch.setattr(settings, "store_timeout_seconds", 1.0)
    monkeypatch.setattr(settings, "review_confidence_threshold", 0.7)
    monkeypatch.setattr(settings, "log_level", "INFO")
    yield settings
