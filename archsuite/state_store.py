"""Run record for the install orchestrator (JSON or YAML by file extension)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

RECORD_VERSION = 1


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) == "yaml":
        import yaml

        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ConfigError(f"State file must be an object/dict, got {type(data).__name__}")
    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) == "yaml":
        import yaml

        p.write_text(yaml.safe_dump(state, sort_keys=False), encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys without overriding recorded values."""

    state.setdefault("version", RECORD_VERSION)
    state.setdefault("config", {})

    exe = state.setdefault("execution", {})
    exe.setdefault("status", "not_started")
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("failed_step", None)
    exe.setdefault("errors", [])
    return state


def mark_step_completed(state: Dict[str, Any], step_name: str) -> None:
    completed = state.setdefault("execution", {}).setdefault("completed_steps", [])
    if step_name not in completed:
        completed.append(step_name)


def record_failure(state: Dict[str, Any], step_name: Optional[str], error: str) -> None:
    exe = state.setdefault("execution", {})
    exe["failed_step"] = step_name
    exe.setdefault("errors", []).append({"step": step_name, "error": error})


def reset_execution(state: Dict[str, Any], *, keep_completed: bool = False) -> None:
    """Forget the failures of an earlier run, and its progress unless resuming."""

    exe = state.setdefault("execution", {})
    exe["current_step"] = None
    if not keep_completed:
        exe["completed_steps"] = []
    exe["failed_step"] = None
    exe["errors"] = []
