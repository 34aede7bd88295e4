"""
SDK configuration.

Loads settings from a YAML file validated against the bundled JSON schema,
with environment variables filling in anything the file leaves out:

    COMPLYANCE_API_KEY     API key (required if not in the file)
    COMPLYANCE_ENV         environment name, default "sandbox"
    COMPLYANCE_QUEUE_PATH  queue base directory, default "./queue"
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from jsonschema import ValidationError as SchemaValidationError
from jsonschema import validate

from .errors import ConfigurationError
from .models import Environment, Source, SourceType
from .resilience.circuit_breaker import CircuitBreakerConfig
from .resilience.retry import RetryConfig

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "sdk_config.schema.json"

API_KEY_ENV = "COMPLYANCE_API_KEY"
ENVIRONMENT_ENV = "COMPLYANCE_ENV"
QUEUE_PATH_ENV = "COMPLYANCE_QUEUE_PATH"

DEFAULT_QUEUE_PATH = "./queue"

_RETRY_PRESETS = {
    "default": RetryConfig.default,
    "conservative": RetryConfig.conservative,
    "aggressive": RetryConfig.aggressive,
    "no_retry": RetryConfig.no_retry,
}

# YAML key -> RetryConfig field
_RETRY_FIELDS = {
    "max_attempts": "max_attempts",
    "base_delay_ms": "base_delay",
    "max_delay_ms": "max_delay",
    "backoff_multiplier": "backoff_multiplier",
    "jitter_factor": "jitter_factor",
    "circuit_breaker_enabled": "circuit_breaker_enabled",
}


@dataclass
class SDKConfig:
    """Settings for one ComplyanceSDK instance."""
    api_key: str
    environment: Environment = Environment.SANDBOX
    sources: list[Source] = field(default_factory=list)
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    queue_path: Path = Path(DEFAULT_QUEUE_PATH)
    auto_generate_tax_destination: bool = True
    correlation_id: Optional[str] = None

    def __post_init__(self):
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("API key is required", f"Set api_key or the {API_KEY_ENV} environment variable.")
        if isinstance(self.environment, str):
            self.environment = _parse_environment(self.environment)
        self.queue_path = Path(self.queue_path)

    def find_source(self, source_id: str) -> Optional[Source]:
        """Look up a configured source by its "name:version" id."""
        for source in self.sources:
            if source.id == source_id:
                return source
        return None


def _parse_environment(value: str) -> Environment:
    try:
        return Environment(value.strip().lower())
    except ValueError:
        valid = ", ".join(e.value for e in Environment)
        raise ConfigurationError(f"Unknown environment '{value}'", f"Use one of: {valid}.")


def _build_retry_config(data: dict[str, Any]) -> RetryConfig:
    config = _RETRY_PRESETS[data.get("preset", "default")]()
    overrides = {attr: data[key] for key, attr in _RETRY_FIELDS.items() if key in data}
    return replace(config, **overrides) if overrides else config


def _validate_schema(data: dict[str, Any]) -> None:
    if not SCHEMA_PATH.exists():
        return
    schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    try:
        validate(instance=data, schema=schema)
    except SchemaValidationError as exc:
        logger.error("SDK config failed schema validation: %s", exc.message)
        raise ConfigurationError(f"Invalid SDK configuration: {exc.message}") from exc


def config_from_dict(data: dict[str, Any]) -> SDKConfig:
    """Build an SDKConfig from a parsed mapping, with environment fallbacks."""
    _validate_schema(data)

    api_key = data.get("api_key") or os.environ.get(API_KEY_ENV, "")
    environment = data.get("environment") or os.environ.get(ENVIRONMENT_ENV, Environment.SANDBOX.value)
    queue_path = data.get("queue_path") or os.environ.get(QUEUE_PATH_ENV, DEFAULT_QUEUE_PATH)

    sources = [
        Source(
            name=s["name"],
            version=str(s["version"]),
            type=SourceType(s.get("type", SourceType.FIRST_PARTY.value)),
        )
        for s in data.get("sources", [])
    ]

    cb_data = data.get("circuit_breaker", {})
    circuit_breaker = CircuitBreakerConfig(
        failure_threshold=int(cb_data.get("failure_threshold", 3)),
        reset_timeout_seconds=float(cb_data.get("reset_timeout_seconds", 60.0)),
    )

    return SDKConfig(
        api_key=api_key,
        environment=_parse_environment(environment),
        sources=sources,
        retry_config=_build_retry_config(data.get("retry", {})),
        circuit_breaker=circuit_breaker,
        queue_path=Path(queue_path),
        auto_generate_tax_destination=bool(data.get("auto_generate_tax_destination", True)),
        correlation_id=data.get("correlation_id"),
    )


def load_config(config_path: Union[str, Path, None] = None) -> SDKConfig:
    """
    Load SDK configuration from YAML, or from the environment alone.

    Raises:
        ConfigurationError: Invalid file contents or no API key available
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")
    return config_from_dict(data)
