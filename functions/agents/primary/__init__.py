"""Primary agents for the quote pipeline."""

from agents.primary.interpretation_agent import InterpretationAgent
from agents.primary.classification_agent import RotRutClassifier

__all__ = [
    "InterpretationAgent",
    "RotRutClassifier",
]
