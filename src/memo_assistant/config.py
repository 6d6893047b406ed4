"""Configuration loading utilities for the assistant.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable MEMO_ASSISTANT_CONFIG
3. Fallback to "config/default.yaml"

Whatever the file leaves out is filled from :data:`DEFAULTS`. Values can then be
overridden from environment variables with prefix ``MEMO_ASSISTANT__`` (e.g.,
MEMO_ASSISTANT__LLM__MODEL=gpt-4o).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .prompts import ASSIST_TEMPLATE, DISTILL_INSTRUCTION

logger = logging.getLogger(__name__)

ENV_PREFIX = "MEMO_ASSISTANT__"
ENV_CONFIG_PATH = "MEMO_ASSISTANT_CONFIG"
DEFAULT_CONFIG_PATH = "config/default.yaml"

DEFAULTS: Dict[str, Any] = {
    "llm": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o-mini",
        "api_key_env": "OPENAI_API_KEY",
        "timeout_seconds": 60,
        "temperature": None,
    },
    "memory": {
        "path": "memory.json",
        "default": "{}",
    },
    "prompts": {
        "assist_template": ASSIST_TEMPLATE,
        "distill_instruction": DISTILL_INSTRUCTION,
        "strip_code_fences": True,
    },
    "orchestrator": {
        "render_mode": "joined",
    },
    "server": {
        "cors_origins": ["*"],
    },
    "logging": {
        "level": "WARNING",
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        elif value is None and isinstance(out.get(key), dict):
            # An empty section (`memory:` with nothing under it) keeps its defaults.
            continue
        else:
            out[key] = value
    return out


def _coerce(value: str) -> Any:
    # Attempt to parse simple types (bool, int, float)
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix MEMO_ASSISTANT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., MEMO_ASSISTANT__MEMORY__PATH -> cfg["memory"]["path"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the assistant.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``MEMO_ASSISTANT_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Defaults merged with the file, with environment overrides applied.

    Raises
    ------
    RuntimeError
        The file exists but is not valid YAML or not a mapping.
    """
    if path is None:
        path = os.environ.get(ENV_CONFIG_PATH, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}") from e

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, loaded))


def configure_logging(cfg: Dict[str, Any], *, verbose: bool = False) -> None:
    """Set up root logging from the ``logging`` section (stderr only)."""
    level_name = "DEBUG" if verbose else str((cfg.get("logging") or {}).get("level") or "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
