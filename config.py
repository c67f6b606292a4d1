import json
import os
from typing import Any, Dict, List, Optional, Tuple

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # Spotify Web API (OAuth PKCE, no client secret)
    "spotify_client_id": "",
    "spotify_redirect_uri": "http://127.0.0.1:5173/callback",
    "spotify_scopes": [
        "user-read-private",
        "user-read-email",
        "user-library-read",
        "user-read-playback-state",
        "user-modify-playback-state",
        "user-read-currently-playing",
        "streaming",
        "playlist-read-private",
        "playlist-read-collaborative",
    ],
    "spotify_show_dialog": False,
    "spotify_cache_tokens": True,
    "token_cache_path": "data/spotify_tokens.json",
    "token_refresh_window": 300,

    # Transport
    "http_timeout": 30.0,

    # Library scan
    "page_size": 50,
    "album_cache_enabled": True,
    "album_cache_path": "data/albums_cache.json",
    "album_cache_ttl": 3600,

    # Album selection
    "target_album_count": 72,
    "album_threshold": "auto",
    "sort_by": "release_date",
    "sort_desc": True,

    "log_level": "INFO",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": False},
    "spotify_redirect_uri": {"type": str, "required": True},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_show_dialog": {"type": bool, "required": False},
    "spotify_cache_tokens": {"type": bool, "required": False},
    "token_cache_path": {"type": str, "required": False},
    "token_refresh_window": {"type": (int, float), "required": False, "min": 0, "max": 3600},

    "http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},

    "page_size": {"type": int, "required": False, "min": 1, "max": 50},
    "album_cache_enabled": {"type": bool, "required": False},
    "album_cache_path": {"type": str, "required": False},
    "album_cache_ttl": {"type": (int, float), "required": False, "min": 0, "max": 86400},

    "target_album_count": {"type": int, "required": False, "min": 1, "max": 1000},
    "album_threshold": {"type": str, "required": False, "choices": ["auto", "all"]},
    "sort_by": {
        "type": str,
        "required": False,
        "choices": ["release_date", "artist", "album", "track_count"],
    },
    "sort_desc": {"type": bool, "required": False},

    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Read config.json; keys it leaves out take their DEFAULT_CONFIG value."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        loaded = json.load(f)

    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    return {**DEFAULT_CONFIG, **loaded}


def save_config(config: Dict[str, Any], path: str = CONFIG_PATH) -> bool:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
    except OSError as e:
        raise OSError(f"Failed to save config {path}: {e}") from e
    return True


def _type_names(expected_type: Any) -> str:
    if isinstance(expected_type, tuple):
        return "/".join(t.__name__ for t in expected_type)
    return expected_type.__name__


def _field_error(key: str, value: Any, rules: Dict[str, Any]) -> Optional[str]:
    """First problem with one config value, or None when it passes its rules."""

    expected_type = rules.get("type")
    if expected_type is not None:
        # bool is an int subclass; True is not a valid timeout.
        wrong_bool = isinstance(value, bool) and expected_type is not bool
        if wrong_bool or not isinstance(value, expected_type):
            return f"Field '{key}' must be {_type_names(expected_type)}, got {type(value).__name__}"

    element_type = rules.get("element_type")
    if element_type is not None and isinstance(value, list):
        invalid = [v for v in value if not isinstance(v, element_type)]
        if invalid:
            return f"Field '{key}' must be a list of {element_type.__name__}, got invalid elements: {invalid}"

    choices = rules.get("choices")
    if choices is not None and value not in choices:
        return f"Field '{key}' must be one of {choices}, got '{value}'"

    if isinstance(value, (int, float)):
        low, high = rules.get("min"), rules.get("max")
        if low is not None and value < low:
            return f"Field '{key}' must be >= {low}, got {value}"
        if high is not None and value > high:
            return f"Field '{key}' must be <= {high}, got {value}"

    return None


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Check config against CONFIG_SCHEMA.

    Returns (is_valid, errors) with at most one error per field. Keys missing
    from the schema are ignored.
    """
    errors: List[str] = []

    for key, rules in CONFIG_SCHEMA.items():
        if key not in config:
            if rules.get("required", False):
                errors.append(f"Missing required field: {key}")
            continue

        problem = _field_error(key, config[key], rules)
        if problem:
            errors.append(problem)

    return not errors, errors


def update_config(key: str, value: Any, path: str = CONFIG_PATH) -> Tuple[bool, str]:
    """Set one key in the config file if the result still validates.

    Returns (success, message); the file is untouched on failure.
    """
    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    candidate = {**load_config(path), key: value}
    ok, errors = validate_config(candidate)
    if not ok:
        return False, f"Validation failed: {', '.join(errors)}"

    save_config(candidate, path)
    return True, f"Updated '{key}' to '{value}'"


def get_config_value(key: str, default: Any = None, path: str = CONFIG_PATH) -> Any:
    try:
        return load_config(path).get(key, default)
    except (OSError, ValueError):
        return default
