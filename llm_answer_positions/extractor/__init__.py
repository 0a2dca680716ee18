"""
Extractor module: the deterministic position and metrics engine.

Turns one raw answer plus resolved brand/competitor names into word
positions, mention counts, visibility index and share of answer. Pure and
synchronous; no I/O.

Public API:
    - tokenize, normalize_word, normalize_term: Tokenizer and term normalizer
    - find_term_positions, match_entity, calculate_word_positions: Position matcher
    - calculate_visibility_index, calculate_share_of_answer,
      calculate_answer_metrics: Metrics calculator
    - TrackedEntity, EntityPositions, WordPositions: Matcher data types
"""

from llm_answer_positions.extractor.metrics import (
    AnswerMetrics,
    EntityMetrics,
    calculate_answer_metrics,
    calculate_share_of_answer,
    calculate_visibility_index,
)
from llm_answer_positions.extractor.position_matcher import (
    EntityPositions,
    TrackedEntity,
    WordPositions,
    calculate_word_positions,
    find_term_positions,
    match_entity,
)
from llm_answer_positions.extractor.tokenizer import (
    Token,
    normalize_term,
    normalize_word,
    tokenize,
    word_count,
)

__all__ = [
    "AnswerMetrics",
    "EntityMetrics",
    "EntityPositions",
    "Token",
    "TrackedEntity",
    "WordPositions",
    "calculate_answer_metrics",
    "calculate_share_of_answer",
    "calculate_visibility_index",
    "calculate_word_positions",
    "find_term_positions",
    "match_entity",
    "normalize_term",
    "normalize_word",
    "tokenize",
    "word_count",
]
