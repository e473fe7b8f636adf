"""Generic quote validator.

Fallback for job types without a specific validator: only the generic
bounds apply.
"""

from validators.base_validator import BaseQuoteValidator


class GenericQuoteValidator(BaseQuoteValidator):
    """Generic sanity bounds only."""

    name = "generic"
