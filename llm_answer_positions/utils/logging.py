"""
Structured JSON logging for LLM Answer Positions.

Provides standardized logging with:
- JSON formatted output to stderr
- UTC timestamps with timezone info
- Structured context fields (answer_id, batch_id, arbitrary context dict)
- Secret redaction (enrichment provider keys are never logged in full)

All logs use Python's standard logging module with custom formatting.
Log level defaults to INFO, use setup_logging(verbose=True) for DEBUG.

Examples:
    >>> setup_logging(verbose=True)
    >>> logger = get_logger("pipeline.batch")
    >>> log_with_context(
    ...     logger, logging.WARNING, "Answer failed",
    ...     context={"error": "Brand not found"}, answer_id=42,
    ... )

Security:
    - NEVER log full API keys
    - Only stderr is used (stdout reserved for user output)
"""

import json
import logging
import re
import sys
from typing import Any

from llm_answer_positions.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs logs as JSON with structured fields.

    Each log record is formatted as a JSON object with:
    - timestamp: ISO 8601 UTC timestamp
    - level: Log level
    - component: Logger name
    - message: Human-readable log message
    - context: Additional structured data (from 'context' in extra)
    - answer_id / batch_id: Identifiers (from extra, if available)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "answer_id"):
            log_entry["answer_id"] = record.answer_id

        if hasattr(record, "batch_id"):
            log_entry["batch_id"] = record.batch_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class SecretRedactingFilter(logging.Filter):
    """
    Logging filter that redacts potential secrets from log messages.

    Replaces API keys and bearer tokens with versions showing only the
    last 4 characters:
    "csk-abcdef1234567890abcdef" -> "csk-...cdef"
    "Bearer abc123xyz789..." -> "Bearer ***z789"
    """

    SECRET_PATTERNS = [
        # OpenAI style (sk-...) and Cerebras style (csk-...) keys
        (re.compile(r"\b(?:sk|csk)-[a-zA-Z0-9_-]{20,}\b"), "sk-...{last4}"),
        # Google API keys
        (re.compile(r"\bAIza[a-zA-Z0-9_-]{20,}\b"), "AIza...{last4}"),
        (re.compile(r"\bBearer\s+[a-zA-Z0-9_-]{20,}\b"), "Bearer ***{last4}"),
        (re.compile(r"\b[a-zA-Z0-9_-]{40,}\b"), "***{last4}"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact_secrets(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_secrets(str(v)) for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_secrets(str(arg)) for arg in record.args
                )

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact_secrets(self, text: str) -> str:
        for pattern, template in self.SECRET_PATTERNS:

            def redact_match(match: re.Match) -> str:
                return template.format(last4=match.group(0)[-4:])

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self._redact_secrets(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [
                    self._redact_secrets(v) if isinstance(v, str) else v for v in value
                ]
            else:
                result[key] = value
        return result


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Configure structured JSON logging for the application.

    Sets up a single stderr handler with the JSON formatter and the
    secret-redacting filter on the root logger.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
        quiet_logs: If True (and not verbose), only WARNING and above are
            logged, so JSON lines don't interleave with Rich output.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove any existing handlers (prevents duplicate logs)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(SecretRedactingFilter())

    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    """Get a logger instance for a specific component (e.g. "pipeline.batch")."""
    return logging.getLogger(component)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    answer_id: int | None = None,
    batch_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional identifiers.

    Equivalent to logger.log(level, message, extra={...}) with only the
    provided keys set.

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Positions saved",
        ...     context={"rows": 3},
        ...     answer_id=42,
        ...     batch_id="2025-11-02T08-30-00Z",
        ... )
    """
    extra: dict[str, Any] = {}

    if context is not None:
        extra["context"] = context

    if answer_id is not None:
        extra["answer_id"] = answer_id

    if batch_id is not None:
        extra["batch_id"] = batch_id

    logger.log(level, message, extra=extra if extra else None)
