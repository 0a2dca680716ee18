"""
Sliding-window position matching over normalized token streams.

For every tracked entity (the brand or one competitor) the matcher finds
the 1-indexed word positions where the entity's name or one of its product
names starts in an answer.

Matching is exact and word-aligned: a term matches at position i+1 iff
tokens[i + j] == term[j] for every word j of the term. There is no partial
or fuzzy matching. Both sides come from the same normalizer, so matching is
case-insensitive and possessive-insensitive by construction.

Overlapping terms are counted independently: if "Nike" and "Nike Air" are
both tracked terms of one entity, position 3 of "I like Nike Air" is found
by both, and the per-entity set keeps it once. Terms of *different*
entities never interact.

Example:
    >>> tokens = [t.normalized for t in tokenize("I love Nike shoes and Nike Air Max")]
    >>> find_term_positions(tokens, ["nike"])
    [3, 6]
    >>> find_term_positions(tokens, ["air", "max"])
    [7]
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from llm_answer_positions.exceptions import EmptyTermError
from llm_answer_positions.extractor.tokenizer import Token, normalize_term, tokenize


@dataclass(frozen=True)
class TrackedEntity:
    """
    Canonical {name, products} record for a brand or competitor.

    Every input shape (plain competitor strings, competitor dicts, brand
    rows) is converted into this record before it reaches the matcher.
    """

    name: str
    products: tuple[str, ...] = ()


@dataclass(frozen=True)
class EntityPositions:
    """
    Match result for one entity in one answer.

    Attributes:
        name: Entity display name
        mention_positions: Sorted, deduplicated positions of the name and
            every product name
        product_positions: Sorted, deduplicated positions of product names only
    """

    name: str
    mention_positions: tuple[int, ...] = ()
    product_positions: tuple[int, ...] = ()

    @property
    def first_position(self) -> int | None:
        return self.mention_positions[0] if self.mention_positions else None

    @property
    def mention_count(self) -> int:
        return len(self.mention_positions)

    @property
    def product_mention_count(self) -> int:
        return len(self.product_positions)


@dataclass(frozen=True)
class WordPositions:
    """Positions of the brand and every competitor within one answer."""

    word_count: int
    brand: EntityPositions
    competitors: tuple[EntityPositions, ...] = field(default_factory=tuple)
    tokens: tuple[Token, ...] = field(default_factory=tuple, repr=False)


def find_term_positions(
    tokens: Sequence[str], term_tokens: Sequence[str]
) -> list[int]:
    """
    Find every 1-indexed start position of a multi-word term.

    Args:
        tokens: Normalized token stream of one answer
        term_tokens: Normalized, non-empty term (1..k words)

    Returns:
        Ascending list of match positions (MatchSet); empty if no match

    Raises:
        EmptyTermError: If term_tokens is empty. Callers filter out names
            that normalize to nothing, so this is a programming error.

    Example:
        >>> find_term_positions(["a", "b", "a", "b"], ["a", "b"])
        [1, 3]
    """
    if not term_tokens:
        raise EmptyTermError("Empty normalized term passed to the position matcher")

    term_length = len(term_tokens)
    positions: list[int] = []

    for i in range(len(tokens) - term_length + 1):
        if all(tokens[i + j] == term_tokens[j] for j in range(term_length)):
            positions.append(i + 1)

    return positions


def _collect_positions(tokens: Sequence[str], terms: Sequence[str]) -> tuple[int, ...]:
    found: set[int] = set()
    for term in terms:
        term_tokens = normalize_term(term)
        if not term_tokens:
            continue
        found.update(find_term_positions(tokens, term_tokens))
    return tuple(sorted(found))


def match_entity(tokens: Sequence[str], entity: TrackedEntity) -> EntityPositions:
    """
    Match an entity's name and all of its products against the full token stream.

    Args:
        tokens: Normalized token stream of one answer
        entity: Brand or competitor with its product names

    Returns:
        EntityPositions with the name+product union and the product-only union

    Example:
        >>> tokens = ["i", "love", "nike", "air", "max"]
        >>> result = match_entity(tokens, TrackedEntity("Nike", ("Air Max",)))
        >>> result.mention_positions, result.product_positions
        ((3, 4), (4,))
    """
    return EntityPositions(
        name=entity.name,
        mention_positions=_collect_positions(tokens, [entity.name, *entity.products]),
        product_positions=_collect_positions(tokens, entity.products),
    )


def calculate_word_positions(
    text: str,
    brand: TrackedEntity,
    competitors: Sequence[TrackedEntity] = (),
) -> WordPositions:
    """
    Tokenize an answer once and match the brand and each competitor.

    Each competitor is matched against the full token stream, independently
    of the brand and of the other competitors.

    Args:
        text: Raw answer text
        brand: Brand with its product names
        competitors: Competitors with their product names (may be empty)

    Returns:
        WordPositions for the answer, competitors in input order
    """
    tokens = tokenize(text)
    normalized = [token.normalized for token in tokens]

    return WordPositions(
        word_count=len(tokens),
        brand=match_entity(normalized, brand),
        competitors=tuple(match_entity(normalized, c) for c in competitors),
        tokens=tuple(tokens),
    )
