"""Validator selection.

A job-specific validator takes precedence when the job type has one;
every other job type falls back to the generic validator.
"""

from typing import Dict, Optional, Type

from config.pricing_policy import PricingPolicy
from models.quote import Quote
from models.rates import Benchmark
from models.validation import ValidationResult
from services.job_registry import find_job_definition
from validators.base_validator import BaseQuoteValidator
from validators.bathroom_validator import BathroomQuoteValidator
from validators.cleaning_validator import CleaningQuoteValidator
from validators.electrical_validator import ElectricalQuoteValidator
from validators.garden_validator import GardenQuoteValidator
from validators.generic_validator import GenericQuoteValidator
from validators.kitchen_validator import KitchenQuoteValidator
from validators.painting_validator import PaintingQuoteValidator


VALIDATORS: Dict[str, Type[BaseQuoteValidator]] = {
    "generic": GenericQuoteValidator,
    "painting": PaintingQuoteValidator,
    "bathroom": BathroomQuoteValidator,
    "kitchen": KitchenQuoteValidator,
    "cleaning": CleaningQuoteValidator,
    "garden": GardenQuoteValidator,
    "electrical": ElectricalQuoteValidator,
}


def get_validator(job_type: str, policy: Optional[PricingPolicy] = None) -> BaseQuoteValidator:
    """Return the validator for a job type."""
    job_def = find_job_definition(job_type)
    validator_cls = VALIDATORS.get(job_def.validator, GenericQuoteValidator)
    return validator_cls(policy)


def validate_quote(
    quote: Quote,
    job_type: Optional[str] = None,
    description: str = "",
    benchmark: Optional[Benchmark] = None,
    policy: Optional[PricingPolicy] = None
) -> ValidationResult:
    """Validate a quote with the validator matching its job type."""
    validator = get_validator(job_type or quote.job_type, policy)
    return validator.validate(quote, description or quote.description, benchmark)
