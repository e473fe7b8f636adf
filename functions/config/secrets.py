"""Secret access for the quote engine.

Cloud Functions read secrets from Google Cloud Secret Manager; the
emulator and local runs read them from the environment. A Secret Manager
failure falls back to the environment so a rotated or missing secret
surfaces as a missing key, not a crash at import time.
"""

import os
from functools import lru_cache
from typing import Optional

import structlog
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

logger = structlog.get_logger()

OPENAI_API_KEY = "OPENAI_API_KEY"

PROJECT_ENV_VARS = ("GCLOUD_PROJECT", "GOOGLE_CLOUD_PROJECT", "FIREBASE_PROJECT_ID")


def is_emulator_mode() -> bool:
    """Whether the function runs in the Firebase emulator."""
    return (
        os.environ.get("FUNCTIONS_EMULATOR") == "true"
        or os.environ.get("FIRESTORE_EMULATOR_HOST") is not None
    )


def project_id() -> Optional[str]:
    for name in PROJECT_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def secret_version_name(project: str, secret_id: str, version: str = "latest") -> str:
    return f"projects/{project}/secrets/{secret_id}/versions/{version}"


def get_secret(secret_id: str) -> Optional[str]:
    """Read a secret from Secret Manager, or from the environment locally.

    Args:
        secret_id: Secret name, e.g. OPENAI_API_KEY

    Returns:
        The secret value, or None when it is not configured anywhere
    """
    if is_emulator_mode():
        value = os.environ.get(secret_id)
        if not value:
            logger.warning("secret_missing_in_environment", secret_id=secret_id)
        return value

    project = project_id()
    if not project:
        logger.warning("secret_project_unknown", secret_id=secret_id)
        return os.environ.get(secret_id)

    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": secret_version_name(project, secret_id)})
    except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
        logger.warning("secret_manager_failed", secret_id=secret_id, error=str(e))
        return os.environ.get(secret_id)

    logger.debug("secret_loaded", secret_id=secret_id, source="secret_manager")
    return response.payload.data.decode("UTF-8")


@lru_cache(maxsize=1)
def get_openai_api_key() -> Optional[str]:
    """OpenAI API key for the interpretation and classification stages."""
    return get_secret(OPENAI_API_KEY)


def clear_secret_cache() -> None:
    """Forget cached secrets after rotation."""
    get_openai_api_key.cache_clear()
