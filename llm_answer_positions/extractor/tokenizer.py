"""
Word tokenization and term normalization for position extraction.

Answers are split into word tokens and every token is normalized so that
brand, product and competitor names can be compared word-by-word. Positions
are 1-indexed word offsets, so the same text must always produce the same
token stream: tokenization is a pure function of the input string.

Token rule:
    A token is a maximal run of Unicode letters, Unicode digits and
    apostrophes (' and ’) containing at least one letter or digit. Every
    other character is a separator and is discarded.

Normalization rule (normalize_word), applied in order:
    1. lowercase
    2. strip a plural possessive "s'" down to its stem ("brands'" -> "brand")
    3. strip apostrophes at the very start and end
    4. strip a possessive "'s" ("Nike's" -> "nike")
    5. drop remaining inner apostrophes ("I've" -> "ive")

Example:
    >>> [t.normalized for t in tokenize("I love Nike's new shoes!")]
    ['i', 'love', 'nike', 'new', 'shoes']
    >>> normalize_term("Air Max 90")
    ['air', 'max', '90']
"""

import re
from dataclasses import dataclass

# Letters and digits (word characters minus underscore) plus both apostrophes
_TOKEN_RE = re.compile(r"(?:[^\W_]|['’])+")
_ALNUM_RE = re.compile(r"[^\W_]")

_PLURAL_POSSESSIVE_RE = re.compile(r"s['’]\Z")
_EDGE_APOSTROPHES_RE = re.compile(r"\A['’]+|['’]+\Z")
_POSSESSIVE_RE = re.compile(r"['’]s\Z")
_APOSTROPHE_RE = re.compile(r"['’]")


@dataclass(frozen=True)
class Token:
    """
    One word of an answer.

    Attributes:
        original: Substring exactly as it appears in the text
        normalized: Output of normalize_word(original); may be "" for
            tokens such as "s'" that normalize away
        position: 1-indexed position in the token stream
    """

    original: str
    normalized: str
    position: int


def _split_words(text: str) -> list[str]:
    if not text:
        return []
    return [
        match.group(0)
        for match in _TOKEN_RE.finditer(text)
        if _ALNUM_RE.search(match.group(0))
    ]


def normalize_word(word: str) -> str:
    """
    Normalize a single word for comparison.

    Idempotent: normalize_word(normalize_word(w)) == normalize_word(w),
    because the result never contains an apostrophe.

    Args:
        word: Raw word (typically Token.original or one word of a name)

    Returns:
        Lowercased word without possessive suffix or apostrophes

    Examples:
        >>> normalize_word("Nike's")
        'nike'
        >>> normalize_word("brands'")
        'brand'
        >>> normalize_word("I've")
        'ive'
    """
    normalized = word.lower()
    normalized = _PLURAL_POSSESSIVE_RE.sub("", normalized)
    normalized = _EDGE_APOSTROPHES_RE.sub("", normalized)
    normalized = _POSSESSIVE_RE.sub("", normalized)
    return _APOSTROPHE_RE.sub("", normalized)


def tokenize(text: str) -> list[Token]:
    """
    Split text into an ordered list of tokens.

    Empty or all-separator input returns an empty list (word count 0).
    This is a defined edge case, not an error.

    Args:
        text: Raw answer text

    Returns:
        Tokens in emission order with 1-indexed positions

    Example:
        >>> [(t.original, t.position) for t in tokenize("Hello, world")]
        [('Hello', 1), ('world', 2)]
    """
    return [
        Token(original=word, normalized=normalize_word(word), position=index)
        for index, word in enumerate(_split_words(text), start=1)
    ]


def word_count(text: str) -> int:
    """Number of tokens in text (same rule as tokenize)."""
    return len(_split_words(text))


def normalize_term(term: str) -> list[str]:
    """
    Turn a brand, product or competitor name into a normalized search pattern.

    The name is tokenized with the same rule as answers, then each word is
    normalized. Words that normalize to "" stay in the pattern so that it
    lines up with the answer's token stream. A name that yields no words,
    or only words that normalize to "", returns [] and must be skipped by
    the caller; the matcher rejects empty patterns.

    Examples:
        >>> normalize_term("Nike Air Max")
        ['nike', 'air', 'max']
        >>> normalize_term("Guns s' Roses")
        ['guns', '', 'roses']
        >>> normalize_term("!!!")
        []
    """
    words = [normalize_word(w) for w in _split_words(term)]
    if not any(words):
        return []
    return words
