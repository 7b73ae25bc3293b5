# src/flowstage/core/config.py
"""
Configuration schema and loading for flowstage.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Example YAML:
    stage:
      identifier: Base
      options:
        attribute_name: isThisAGoodExample
        attribute_value: sure
        case: upper
    content_store:
      backend: filesystem
      base_path: .flowstage/content
    concurrency:
      max_workers: 4
    logging:
      level: INFO
      json_output: false
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from flowstage.contracts.enums import CaseMapping


class SampleStageOptions(BaseModel):
    """Options for the sample annotate-and-transform stage."""

    model_config = {"frozen": True, "extra": "forbid"}

    attribute_name: str = Field(
        default="isThisAGoodExample",
        min_length=1,
        description="Attribute set on every successfully transformed record",
    )
    attribute_value: str = Field(
        default="sure",
        description="Value of the success attribute",
    )
    encoding: str = Field(
        default="utf-8",
        description="Text encoding used to decode and re-encode content",
    )
    case: CaseMapping = Field(
        default=CaseMapping.NONE,
        description="Case mapping applied to decoded content",
    )
    include_stacktrace: bool = Field(
        default=False,
        description="Add error.stacktrace to failure-routed records",
    )

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Encoding must be known to the codecs registry."""
        import codecs

        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {v!r}") from e
        return v


class StageSettings(BaseModel):
    """Stage identity and options."""

    model_config = {"frozen": True}

    identifier: str = Field(
        default="Base",
        min_length=1,
        description="Stable identifier reported to the host",
    )
    options: SampleStageOptions = Field(
        default_factory=SampleStageOptions,
        description="Stage-specific options",
    )


class ContentStoreSettings(BaseModel):
    """Content store configuration."""

    model_config = {"frozen": True}

    backend: Literal["filesystem", "memory"] = Field(
        default="filesystem",
        description="Storage backend type",
    )
    base_path: Path = Field(
        default=Path(".flowstage/content"),
        description="Base path for filesystem backend",
    )


class ConcurrencySettings(BaseModel):
    """Parallel invocation configuration."""

    model_config = {"frozen": True}

    max_workers: int = Field(
        default=1,
        gt=0,
        description="Maximum concurrent stage invocations (1 = sequential)",
    )
    max_invocations: int | None = Field(
        default=None,
        gt=0,
        description="Stop after this many invocations (default: until the input queue drains)",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON log lines instead of console output",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class FlowStageSettings(BaseModel):
    """Top-level flowstage configuration.

    All settings are validated and frozen after construction. Every section
    has defaults, so an empty settings file is valid.
    """

    model_config = {"frozen": True}

    stage: StageSettings = Field(default_factory=StageSettings)
    content_store: ContentStoreSettings = Field(default_factory=ContentStoreSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # No env var and no default - keep original (validation will likely reject it)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Dynaconf upper-cases keys; Pydantic fields are lower-case."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> FlowStageSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (FLOWSTAGE_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: FLOWSTAGE_STAGE__IDENTIFIER for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="FLOWSTAGE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    raw_config = _expand_env_vars(raw_config)

    return FlowStageSettings(**raw_config)


def resolve_config(settings: FlowStageSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-safe dict (explicit + defaults)."""
    return settings.model_dump(mode="json")
