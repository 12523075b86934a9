import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from spotify_agent.retry import RetryPolicy

# Credentials must come from the environment (or a .env file).
REQUIRED_ENV_VARS = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    "SPOTIFY_REDIRECT_URI": "spotify_redirect_uri",
}

# Optional overrides for the tunables below.
OPTIONAL_ENV_VARS = {
    "SPOTIFY_TIMEOUT": "spotify_timeout",
    "SPOTIFY_MAX_RETRIES": "spotify_max_retries",
    "SPOTIFY_BASE_DELAY": "spotify_base_delay",
    "SPOTIFY_MAX_DELAY": "spotify_max_delay",
    "SPOTIFY_BACKOFF_FACTOR": "spotify_backoff_factor",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}

# Default configuration values
DEFAULT_CONFIG = {
    "spotify_timeout": 10.0,
    "spotify_max_retries": 3,
    "spotify_base_delay": 1.0,
    "spotify_max_delay": 10.0,
    "spotify_backoff_factor": 2.0,
    "log_level": "INFO",
    "log_file": "",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True},
    "spotify_client_secret": {"type": str, "required": True},
    "spotify_redirect_uri": {"type": str, "required": True},

    "spotify_timeout": {"type": (int, float), "required": False, "min": 1, "max": 120},
    "spotify_max_retries": {"type": int, "required": False, "min": 0, "max": 10},
    "spotify_base_delay": {"type": (int, float), "required": False, "min": 0, "max": 60},
    "spotify_max_delay": {"type": (int, float), "required": False, "min": 0, "max": 300},
    "spotify_backoff_factor": {"type": (int, float), "required": False, "min": 1, "max": 10},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""


def _coerce(key: str, raw: str) -> Any:
    expected = CONFIG_SCHEMA.get(key, {}).get("type")
    try:
        if expected is int:
            return int(raw)
        if expected == (int, float):
            return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from e
    if key == "log_level":
        return raw.upper()
    return raw


def load_config(env: Optional[Mapping[str, str]] = None, *, dotenv_path: Optional[str] = None) -> Dict[str, Any]:
    """Build the config dict from environment variables, applying defaults.

    When env is None the process environment is used, after loading a .env
    file if one exists.
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    missing = [name for name in REQUIRED_ENV_VARS if not str(env.get(name, "")).strip()]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")

    config: Dict[str, Any] = dict(DEFAULT_CONFIG)
    for name, key in REQUIRED_ENV_VARS.items():
        config[key] = str(env[name]).strip()
    for name, key in OPTIONAL_ENV_VARS.items():
        raw = str(env.get(name, "")).strip()
        if raw:
            config[key] = _coerce(key, raw)

    is_valid, errors = validate_config(config)
    if not is_valid:
        raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # Type check (bool is an int subclass, reject it for numeric fields)
        expected_type = rules.get("type")
        if expected_type and (not isinstance(value, expected_type) or (isinstance(value, bool) and expected_type is not bool)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        if rules.get("required", False) and isinstance(value, str) and not value.strip():
            errors.append(f"Field '{key}' must not be empty")
            continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def retry_policy_from_config(config: Dict[str, Any]) -> RetryPolicy:
    return RetryPolicy.from_config(config)


def redacted(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of config that is safe to print or log."""
    out = dict(config)
    if out.get("spotify_client_secret"):
        out["spotify_client_secret"] = "********"
    return out
