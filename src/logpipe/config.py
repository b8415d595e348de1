"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
A ``logpipe.yaml`` file can provide defaults; environment variables
override it.
"""

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get("LOGPIPE_CONFIG_FILE")

    if config_path is None:
        for path in ("logpipe.yaml", "config/logpipe.yaml"):
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class SamplingSettings(BaseSettings):
    """Default sampling stage configuration."""

    enabled: bool = Field(default=False, description="Install a sampling stage by default")
    max_per_window: int = Field(default=100, description="Records admitted per key per window")
    window_ms: int = Field(default=60_000, description="Sampling window in milliseconds")

    model_config = SettingsConfigDict(env_prefix="LOGPIPE_SAMPLING_")


class BatchSettings(BaseSettings):
    """Defaults for batching sinks."""

    batch_size: int = Field(default=50, description="Records per batch")
    flush_interval_ms: Optional[int] = Field(default=None, description="Timed flush interval")

    model_config = SettingsConfigDict(env_prefix="LOGPIPE_BATCH_")


class RedactionSettings(BaseSettings):
    """Redaction configuration."""

    paths: List[str] = Field(default_factory=list, description="Keys or dotted paths to mask")
    partial_rules: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Partial masking rules for specific keys",
    )
    heuristics: bool = Field(default=False, description="Mask sensitive-looking keys too")

    model_config = SettingsConfigDict(env_prefix="LOGPIPE_REDACTION_")


class WebhookSettings(BaseSettings):
    """Webhook sink configuration."""

    url: str = Field(default="", description="Endpoint receiving JSON arrays of records")
    batch_size: int = Field(default=50, description="Records per POST")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    timeout_seconds: float = Field(default=30, description="Request timeout")
    max_retries: int = Field(default=3, description="Maximum retry attempts")
    backoff_seconds: List[float] = Field(default=[1, 2, 4], description="Backoff intervals")

    model_config = SettingsConfigDict(env_prefix="LOGPIPE_WEBHOOK_")


class Settings(BaseSettings):
    """Main logger settings."""

    level: str = Field(default="INFO", description="Minimum record level")
    include_stack: Union[bool, str] = Field(
        default="ERROR",
        description="Stack trace policy: true, false, or a minimum level name",
    )
    context: Dict[str, Any] = Field(default_factory=dict, description="Default bound context")
    configure_logging: bool = Field(default=False, description="Configure structlog diagnostics output")
    diagnostics_log_level: str = Field(default="WARNING", description="Level for logpipe's own logs")

    sampling: SamplingSettings = Field(default_factory=SamplingSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    redaction: RedactionSettings = Field(default_factory=RedactionSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    model_config = SettingsConfigDict(env_prefix="LOGPIPE_", case_sensitive=False)

    @field_validator("include_stack", mode="before")
    def parse_include_stack(cls, v: Any) -> Any:
        """Accept "true"/"false" strings from the environment."""
        if isinstance(v, str) and v.strip().lower() in ("true", "false"):
            return v.strip().lower() == "true"
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


_SCALAR_MAPPINGS = {
    ("level",): "LOGPIPE_LEVEL",
    ("include_stack",): "LOGPIPE_INCLUDE_STACK",
    ("configure_logging",): "LOGPIPE_CONFIGURE_LOGGING",
    ("diagnostics_log_level",): "LOGPIPE_DIAGNOSTICS_LOG_LEVEL",
    ("sampling", "enabled"): "LOGPIPE_SAMPLING_ENABLED",
    ("sampling", "max_per_window"): "LOGPIPE_SAMPLING_MAX_PER_WINDOW",
    ("sampling", "window_ms"): "LOGPIPE_SAMPLING_WINDOW_MS",
    ("batch", "batch_size"): "LOGPIPE_BATCH_BATCH_SIZE",
    ("batch", "flush_interval_ms"): "LOGPIPE_BATCH_FLUSH_INTERVAL_MS",
    ("redaction", "heuristics"): "LOGPIPE_REDACTION_HEURISTICS",
    ("webhook", "url"): "LOGPIPE_WEBHOOK_URL",
    ("webhook", "batch_size"): "LOGPIPE_WEBHOOK_BATCH_SIZE",
    ("webhook", "timeout_seconds"): "LOGPIPE_WEBHOOK_TIMEOUT_SECONDS",
    ("webhook", "max_retries"): "LOGPIPE_WEBHOOK_MAX_RETRIES",
}

# Complex values are passed to pydantic-settings as JSON strings.
_JSON_MAPPINGS = {
    ("context",): "LOGPIPE_CONTEXT",
    ("redaction", "paths"): "LOGPIPE_REDACTION_PATHS",
    ("redaction", "partial_rules"): "LOGPIPE_REDACTION_PARTIAL_RULES",
    ("webhook", "headers"): "LOGPIPE_WEBHOOK_HEADERS",
    ("webhook", "backoff_seconds"): "LOGPIPE_WEBHOOK_BACKOFF_SECONDS",
}


def _lookup(config_data: Dict[str, Any], keys: tuple) -> Any:
    value: Any = config_data
    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    for keys, env_var in _SCALAR_MAPPINGS.items():
        if env_var not in os.environ:
            value = _lookup(config_data, keys)
            if value is not None:
                os.environ[env_var] = str(value)

    for keys, env_var in _JSON_MAPPINGS.items():
        if env_var not in os.environ:
            value = _lookup(config_data, keys)
            if value:
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
