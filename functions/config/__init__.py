"""Quote engine configuration.

This package contains:
- settings: Environment variables and configuration
- secrets: Secret Manager with environment fallback
- errors: Custom exceptions and error codes
- pricing_policy: VAT, deduction rules and validation bounds
"""

from config.settings import settings
from config.errors import QuoteError
from config.secrets import get_secret, get_openai_api_key
from config.pricing_policy import PricingPolicy, DEFAULT_POLICY

__all__ = [
    "settings",
    "QuoteError",
    "get_secret",
    "get_openai_api_key",
    "PricingPolicy",
    "DEFAULT_POLICY",
]
