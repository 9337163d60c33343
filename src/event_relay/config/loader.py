"""Relay config loading: built-in defaults, user YAML, environment references."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from event_relay.config.models import RelayConfig

DEFAULTS_FILE = Path(__file__).parent / "defaults" / "relay.yaml"

# ${NAME} or ${NAME:-fallback}; "\}" escapes a brace inside the fallback
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<fallback>(?:[^}\\]|\\.)*))?}")


def _env_lookup(match: re.Match[str]) -> str:
    name, fallback = match.group("name", "fallback")
    if name in os.environ:
        return os.environ[name]
    if fallback is None:
        msg = f"Environment variable '{name}' is referenced in config but not set"
        raise ValueError(msg)
    return fallback.replace("\\}", "}")


def expand_env(node: Any) -> Any:
    """Expand environment references in every string of a parsed YAML tree."""
    if isinstance(node, dict):
        return {key: expand_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_env(item) for item in node]
    if isinstance(node, str):
        return _ENV_REF.sub(_env_lookup, node)
    return node


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *overlay* applied; nested mappings merge key by key."""
    result = dict(base)
    for key, value in overlay.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def _read_mapping(path: Path) -> dict[str, Any]:
    if not path.is_file():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}" if mark is not None else ""
        msg = f"Failed to parse YAML in {path}{where}: {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"{path} must hold a YAML mapping at top level, not {type(data).__name__}"
        raise TypeError(msg)
    return data


def load_relay_config(path: str | Path) -> RelayConfig:
    """Load *path* over the built-in defaults and validate the result.

    Environment references are expanded in the user file only.
    """
    path = Path(path)
    merged = deep_merge(_read_mapping(DEFAULTS_FILE), expand_env(_read_mapping(path)))
    try:
        return RelayConfig.model_validate(merged)
    except ValidationError as exc:
        msg = f"Invalid relay config ({path}):\n{exc}"
        raise ValueError(msg) from exc
