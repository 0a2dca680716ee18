"""
Configuration constants for LLM Answer Positions.

Global constants shared across modules to avoid tight coupling.
"""

# Upper bounds on product lists fed to the matcher
MAX_BRAND_PRODUCTS = 12
MAX_COMPETITOR_PRODUCTS = 8

# Default number of answers selected per batch
DEFAULT_BATCH_LIMIT = 500

# Default bound on answers processed concurrently
DEFAULT_MAX_CONCURRENCY = 4

# Consecutive database failures tolerated before a batch aborts
DEFAULT_MAX_CONSECUTIVE_FAILURES = 5

# Seconds allowed for one brand product lookup across all providers
DEFAULT_ENRICHMENT_TIMEOUT_SECONDS = 20.0

# Answer text beyond this many characters is truncated in enrichment prompts
MAX_ENRICHMENT_ANSWER_CHARS = 12_000

# Brand metadata is serialized into enrichment prompts up to this length
MAX_ENRICHMENT_METADATA_CHARS = 600
