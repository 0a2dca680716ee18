"""
Enrichment module: resolves official product names for a brand.

Providers (Cerebras/OpenAI chat completions, Gemini, brand metadata) are
tried in priority order behind a per-brand single-flight cache and a lookup
timeout. Failures degrade to name-only matching.
"""
