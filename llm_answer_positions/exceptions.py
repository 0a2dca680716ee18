"""
Custom exceptions for LLM Answer Positions.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the application. All exceptions inherit from the base
LLMAnswerPositionsError for consistent catching.

Exception Hierarchy:
    LLMAnswerPositionsError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   ├── ConfigValidationError
    │   └── APIKeyMissingError
    ├── DatabaseError
    │   ├── DatabaseInitError
    │   ├── DatabaseMigrationError
    │   └── DatabaseQueryError
    ├── EnrichmentError
    │   ├── EnrichmentProviderError
    │   └── EnrichmentTimeoutError
    ├── ExtractionError
    │   ├── InvalidAnswerRecordError
    │   └── BrandNotFoundError
    ├── EmptyTermError
    └── BatchAbortedError

Usage:
    from llm_answer_positions.exceptions import BrandNotFoundError

    try:
        extraction = await extractor.extract(record)
    except BrandNotFoundError as e:
        logger.error(f"Skipping answer {record.id}: {e}")
"""


class LLMAnswerPositionsError(Exception):
    """
    Base exception for all LLM Answer Positions errors.

    All custom exceptions in this application inherit from this class.
    This enables catching all application-specific errors with a single except clause.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(LLMAnswerPositionsError):
    """
    Base class for configuration-related errors.

    Raised when configuration loading, parsing, or validation fails.
    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Configuration file does not exist at the specified path."""

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (schema validation failed).

    Should include details about which field(s) failed validation.

    Example:
        raise ConfigValidationError("Field 'batch.limit' must be >= 1")
    """

    pass


class APIKeyMissingError(ConfigurationError):
    """
    Required API key environment variable is not set.

    Example:
        raise APIKeyMissingError("CEREBRAS_API_KEY environment variable not set")
    """

    pass


# ============================================================================
# Database Errors
# ============================================================================


class DatabaseError(LLMAnswerPositionsError):
    """
    Base class for database-related errors.

    Should be caught and result in exit code 2 (database error).
    Inside a batch, a DatabaseError fails the current answer only; repeated
    consecutive failures abort the batch.
    """

    pass


class DatabaseInitError(DatabaseError):
    """Database initialization failed (file cannot be created or opened)."""

    pass


class DatabaseMigrationError(DatabaseError):
    """
    Database schema migration failed.

    Example:
        raise DatabaseMigrationError("Failed to migrate from v1 to v2")
    """

    pass


class DatabaseQueryError(DatabaseError):
    """
    Database query execution failed.

    Raised when deleting or inserting position records fails. The
    replacement runs in one transaction, so no partial write is left behind.
    """

    pass


# ============================================================================
# Enrichment Errors
# ============================================================================


class EnrichmentError(LLMAnswerPositionsError):
    """
    Base class for product-name enrichment errors.

    Never fatal for an answer: the resolver degrades to an empty product
    list and extraction continues with name-only matching.
    """

    pass


class EnrichmentProviderError(EnrichmentError):
    """
    A product-name provider failed or returned an unusable response.

    Example:
        raise EnrichmentProviderError("cerebras: response content is not a JSON array")
    """

    pass


class EnrichmentTimeoutError(EnrichmentError):
    """Product-name lookup did not finish within the configured timeout."""

    pass


# ============================================================================
# Extraction Errors
# ============================================================================


class ExtractionError(LLMAnswerPositionsError):
    """
    Base class for per-answer extraction failures.

    The batch runner logs these with the answer id, skips the answer and
    moves on to the next one.
    """

    pass


class InvalidAnswerRecordError(ExtractionError):
    """
    Answer record is malformed (missing brand id, missing answer text, ...).

    Example:
        raise InvalidAnswerRecordError("Answer 42 has no associated brand")
    """

    pass


class BrandNotFoundError(ExtractionError):
    """
    The brand referenced by an answer record does not exist.

    Example:
        raise BrandNotFoundError("Brand not found: 6f1c...")
    """

    pass


# ============================================================================
# Programming invariants
# ============================================================================


class EmptyTermError(LLMAnswerPositionsError):
    """
    An empty normalized term reached the position matcher.

    Terms that normalize to zero words are filtered before matching, so this
    signals a logic defect rather than bad data. It is never swallowed by the
    batch runner.
    """

    pass


# ============================================================================
# Batch Errors
# ============================================================================


class BatchAbortedError(LLMAnswerPositionsError):
    """
    Batch stopped after too many consecutive persistence failures.

    Attributes:
        summary: BatchSummary describing the work done before the abort

    Example:
        raise BatchAbortedError(
            "Aborting batch after 5 consecutive database failures",
            summary=summary,
        )
    """

    def __init__(self, message: str, summary=None):
        super().__init__(message)
        self.summary = summary
