"""Configuration loading and validation (YAML + Pydantic)."""
