"""
Visibility index and share-of-answer calculations.

Visibility index (0-1) combines how early an entity is first mentioned
(prominence) with how often it is mentioned relative to answer length
(density):

    prominence = 1 / log10(first_position + 9)
    density    = mentions / total_words
    visibility = round(prominence * 0.6 + density * 0.4, 2)

A first mention at word 1 gives prominence 1.0. The constants are fixed;
changing them changes every historical score.

Share of answer (0-100) is an entity's share of all tracked mentions in
one answer:

    share = round(primary / (primary + secondary) * 100, 2)

and is undefined (None) when nobody is mentioned.

Rounding is half-up at two decimals, like the stored historical values.
"""

import math
from dataclasses import dataclass

from llm_answer_positions.extractor.position_matcher import WordPositions

VISIBILITY_LOG_OFFSET = 9
PROMINENCE_WEIGHT = 0.6
DENSITY_WEIGHT = 0.4


def round_half_up(value: float, digits: int = 2) -> float:
    """
    Round to a fixed number of decimals, halves rounding up.

    Python's round() uses banker's rounding; stored metrics were produced
    with floor(x * 100 + 0.5) / 100.

    Example:
        >>> round_half_up(0.125)
        0.13
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def calculate_visibility_index(
    mention_count: int, first_position: int | None, total_words: int
) -> float:
    """
    Compute the visibility index for one entity in one answer.

    Args:
        mention_count: Size of the entity's full (name + product) position set
        first_position: 1-indexed first mention, None when not mentioned
        total_words: Word count of the answer

    Returns:
        Visibility index in [0, 1], two decimals. 0 when not mentioned.

    Examples:
        >>> calculate_visibility_index(0, None, 250)
        0.0
        >>> calculate_visibility_index(1, 1, 10)
        0.64
    """
    if mention_count <= 0 or first_position is None or first_position < 1:
        return 0.0

    density = mention_count / total_words if total_words > 0 else 0.0
    prominence = 1 / math.log10(first_position + VISIBILITY_LOG_OFFSET)

    return round_half_up(prominence * PROMINENCE_WEIGHT + density * DENSITY_WEIGHT)


def calculate_share_of_answer(
    primary_mentions: int, secondary_mentions: int
) -> float | None:
    """
    Compute an entity's share of all tracked mentions.

    Args:
        primary_mentions: Mentions of the entity being scored
        secondary_mentions: Mentions of everyone else tracked in the answer

    Returns:
        Percentage in [0, 100] with two decimals, or None when both counts are 0

    Raises:
        ValueError: If either count is negative

    Examples:
        >>> calculate_share_of_answer(5, 3)
        62.5
        >>> calculate_share_of_answer(0, 0) is None
        True
    """
    if primary_mentions < 0 or secondary_mentions < 0:
        raise ValueError(
            f"Mention counts must be non-negative, got "
            f"primary={primary_mentions}, secondary={secondary_mentions}"
        )

    total = primary_mentions + secondary_mentions
    if total == 0:
        return None

    return round_half_up(primary_mentions / total * 100)


@dataclass(frozen=True)
class EntityMetrics:
    """Derived metrics for one entity in one answer."""

    name: str
    visibility_index: float
    share_of_answer: float | None


@dataclass(frozen=True)
class AnswerMetrics:
    """Metrics for the brand and every competitor of one answer."""

    brand: EntityMetrics
    competitors: tuple[EntityMetrics, ...]


def calculate_answer_metrics(positions: WordPositions) -> AnswerMetrics:
    """
    Compute visibility and share of answer for every entity of an answer.

    Share is always relative to everyone else mentioned in the answer:
    the brand is compared against the sum of all competitor mentions, each
    competitor against the brand plus all *other* competitors.
    """
    brand = positions.brand
    competitor_total = sum(c.mention_count for c in positions.competitors)

    brand_metrics = EntityMetrics(
        name=brand.name,
        visibility_index=calculate_visibility_index(
            brand.mention_count, brand.first_position, positions.word_count
        ),
        share_of_answer=calculate_share_of_answer(
            brand.mention_count, competitor_total
        ),
    )

    competitor_metrics = tuple(
        EntityMetrics(
            name=competitor.name,
            visibility_index=calculate_visibility_index(
                competitor.mention_count,
                competitor.first_position,
                positions.word_count,
            ),
            share_of_answer=calculate_share_of_answer(
                competitor.mention_count,
                brand.mention_count + competitor_total - competitor.mention_count,
            ),
        )
        for competitor in positions.competitors
    )

    return AnswerMetrics(brand=brand_metrics, competitors=competitor_metrics)
