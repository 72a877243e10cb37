"""Load and validate .plainness/config.yaml."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from plainness.categories import CATEGORY_IDS


# Default config values
DEFAULTS: dict[str, Any] = {
    "model": "claude-sonnet-4-5-20250929",
    "service": {
        "backend": "http",
        "base_url": "https://api.anthropic.com",
        "api_key_env": "ANTHROPIC_API_KEY",
        "anthropic_version": "2023-06-01",
        "timeout": 120,
        "agent_command": None,
    },
    "author": {
        "name": None,
        "description": None,
    },
    "analysis": {
        "max_tokens": 4000,
        "suggestion_limit": 10,
        "exhaustive_range": "25-40",
        "anchor_strategy": "first",
        "preview_chars": 300,
    },
    "prepare": {
        "max_words_per_segment": 1500,
        "single_max_tokens": 8000,
        "segment_max_tokens": 6000,
    },
    "chat": {
        "max_tokens": 4000,
        "context_messages": 10,
        "document_preview_chars": 3000,
    },
    "persistence": {
        "db": ".plainness/plainness.db",
        "content_delay_ms": 2000,
        "chat_delay_ms": 1000,
        "preferences_delay_ms": 500,
        "chat_history_limit": 50,
    },
    "versions": {
        "max_versions": 5,
    },
    "preferences": {
        "active_categories": ["clarity"],
    },
}

SERVICE_BACKENDS = ("http", "cli")
ANCHOR_STRATEGIES = ("first", "sequential", "unique")

# Integer settings that must be >= 1
_POSITIVE_INTS: tuple[tuple[str, str], ...] = (
    ("analysis", "max_tokens"),
    ("analysis", "preview_chars"),
    ("prepare", "max_words_per_segment"),
    ("prepare", "single_max_tokens"),
    ("prepare", "segment_max_tokens"),
    ("chat", "max_tokens"),
    ("chat", "document_preview_chars"),
    ("persistence", "chat_history_limit"),
    ("versions", "max_versions"),
)


class ConfigError(Exception):
    """Raised when config is invalid or missing."""


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate(config: dict) -> None:
    """Validate required fields in config."""
    for section in ("service", "analysis", "prepare", "chat", "persistence", "versions"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")

    backend = config["service"].get("backend")
    if backend not in SERVICE_BACKENDS:
        raise ConfigError(
            f"Unsupported service backend '{backend}'. Built-in: {', '.join(SERVICE_BACKENDS)}."
        )

    strategy = config["analysis"].get("anchor_strategy")
    if strategy not in ANCHOR_STRATEGIES:
        raise ConfigError(
            f"Unknown anchor strategy '{strategy}'. Choose from: {', '.join(ANCHOR_STRATEGIES)}."
        )

    for section, key in _POSITIVE_INTS:
        val = config[section].get(key)
        if not isinstance(val, int) or isinstance(val, bool) or val < 1:
            raise ConfigError(f"'{section}.{key}' must be a positive integer, got {val!r}")

    limit = config["analysis"].get("suggestion_limit")
    if limit != "exhaustive" and (not isinstance(limit, int) or limit < 1):
        raise ConfigError(
            f"'analysis.suggestion_limit' must be a positive integer or 'exhaustive', got {limit!r}"
        )

    active = config.get("preferences", {}).get("active_categories", [])
    if not isinstance(active, list):
        raise ConfigError("'preferences.active_categories' must be a list")
    unknown = [c for c in active if c not in CATEGORY_IDS]
    if unknown:
        raise ConfigError(f"Unknown categories in preferences: {sorted(unknown)}")


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .plainness/config.yaml under project_root.

    Falls back to cwd if project_root is None. Merges with DEFAULTS
    so callers always get a full config dict.
    """
    root = Path(project_root) if project_root else Path.cwd()
    config_path = root / ".plainness" / "config.yaml"

    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(copy.deepcopy(DEFAULTS), raw)
    _validate(config)
    return config


def default_config() -> dict:
    """Return a validated copy of DEFAULTS (no config file involved)."""
    config = _deep_merge(copy.deepcopy(DEFAULTS), {})
    _validate(config)
    return config


def resolve_db_path(config: dict, project_root: Path) -> Path:
    """Resolve the persistence database path relative to project_root."""
    db = Path(config["persistence"]["db"]).expanduser()
    if db.is_absolute():
        return db
    return project_root / db
