"""Offertmotor - Cloud Functions.

This package contains the Python Cloud Functions for the AI quote
pipeline used by Swedish craftsmen.

Architecture:
- Interpretation Agent: free text to a structured job specification
- Clarification Gate: asks before pricing when required input is missing
- Pricing Engine: deterministic hours, rates, materials, VAT and ROT/RUT
- ROT/RUT Classifier: ordered rule table with an LLM fallback
- Validators: generic bounds plus painting, bathroom and kitchen rules
- Confidence Scorer: explicit assumptions and review signal
- Consistency Critic: checks revisions against the previous quote
- 1 Orchestrator: runs the stages and always returns one response shape
"""

__version__ = "0.1.0"


# Offertmotor Python Cloud Functions
