"""
LLM Answer Positions: where, how early and how often brands appear in AI answers.

Extracts word positions of a brand, its products and tracked competitors
from AI assistant answers and derives visibility index and share of answer.
"""

__version__ = "0.1.0"
