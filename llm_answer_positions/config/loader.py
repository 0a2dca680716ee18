"""
Configuration loader for LLM Answer Positions.

Loads the YAML configuration file, validates it with Pydantic models, and
resolves provider API keys from environment variables into a RuntimeConfig.

Functions:
    load_config: Main entrypoint to load and validate positions.config.yaml
    resolve_providers: Resolve environment variables to provider API keys
"""

import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from llm_answer_positions.exceptions import (
    APIKeyMissingError,
    ConfigFileNotFoundError,
    ConfigValidationError,
)

from .schema import PositionsConfig, RuntimeConfig, RuntimeProvider


def load_config(config_path: str | Path) -> RuntimeConfig:
    """
    Load positions.config.yaml and resolve API keys from environment variables.

    Args:
        config_path: Path to the configuration file

    Returns:
        RuntimeConfig with resolved API keys

    Raises:
        ConfigFileNotFoundError: If the file doesn't exist
        ConfigValidationError: If YAML is invalid or validation fails
        APIKeyMissingError: If a provider's API key variable is not set

    Security:
        - API keys are loaded from environment variables only
        - Uses yaml.safe_load() to prevent code injection
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    if raw_config is None:
        raise ConfigValidationError(f"Configuration file is empty: {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration root must be a mapping in {config_path}"
        )

    try:
        positions_config = PositionsConfig.model_validate(raw_config)
    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            error_messages.append(f"  - {loc}: {error['msg']}")

        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + "\n".join(error_messages)
        ) from e

    return RuntimeConfig(
        storage=positions_config.storage,
        batch=positions_config.batch,
        enrichment_timeout_seconds=positions_config.enrichment.timeout_seconds,
        providers=resolve_providers(positions_config),
        competitor_products=positions_config.competitor_products,
    )


def resolve_providers(config: PositionsConfig) -> list[RuntimeProvider]:
    """
    Resolve each enrichment provider's API key from the environment.

    Provider order is preserved: it is the fallback priority.

    Raises:
        APIKeyMissingError: If a referenced environment variable is unset or empty

    Example:
        >>> os.environ["CEREBRAS_API_KEY"] = "csk-..."
        >>> providers = resolve_providers(config)
        >>> providers[0].api_key
        'csk-...'
    """
    resolved = []

    for provider_config in config.enrichment.providers:
        api_key = None
        if provider_config.env_api_key:
            api_key = os.environ.get(provider_config.env_api_key)
            if not api_key:
                raise APIKeyMissingError(
                    f"Environment variable ${provider_config.env_api_key} not set "
                    f"(required for enrichment provider '{provider_config.provider}')"
                )

        resolved.append(
            RuntimeProvider(
                provider=provider_config.provider,
                model_name=provider_config.model_name,
                api_key=api_key,
                base_url=provider_config.base_url,
                temperature=provider_config.temperature,
                max_tokens=provider_config.max_tokens,
            )
        )

    return resolved
