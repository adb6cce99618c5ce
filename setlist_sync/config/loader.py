"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
#   1. config/config.yaml  -- static defaults checked into the repo
#                             (rate-limit intervals, trending weights)
#   2. .env file           -- local developer overrides (not committed)
#   3. Environment vars    -- set at deploy time
#
# load_config() reads the YAML file, then deep-merges the values derived
# from Settings on top.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from setlist_sync.config.settings import Settings
from setlist_sync.utils.errors import ConfigurationError

DEFAULT_RATE_LIMITS = {
    "musicbrainz": 1.0,
    "ticketmaster": 0.2,
    "spotify": 0.1,
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings to merge; read from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML is unreadable or a rate limit is invalid.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(message=f"Invalid YAML in {config_path}: {exc}") from exc
    else:
        yaml_config = {}
    if not isinstance(yaml_config, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping")

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "providers": {
            "available": settings.get_available_providers(),
        },
        "fetch": {
            "max_attempts": settings.fetch_max_attempts,
            "max_pages": settings.fetch_max_pages,
            "timeout_seconds": settings.fetch_timeout_seconds,
            "backoff_base_seconds": settings.fetch_backoff_base_seconds,
            "backoff_max_seconds": settings.fetch_backoff_max_seconds,
        },
        "identity": {
            "match_threshold": settings.identity_match_threshold,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    yaml_config["rate_limits"] = _rate_limits(yaml_config.get("rate_limits") or {})
    return yaml_config


def _rate_limits(configured: dict) -> dict[str, float]:
    limits = dict(DEFAULT_RATE_LIMITS)
    for provider, interval in configured.items():
        try:
            value = float(interval)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                message=f"Rate limit for {provider} must be a number, got {interval!r}"
            ) from exc
        if value < 0:
            raise ConfigurationError(message=f"Rate limit for {provider} must be >= 0")
        limits[provider] = value
    return limits


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
