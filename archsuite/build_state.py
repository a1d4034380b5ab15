from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

HISTORY_LIMIT = 20


def load_build_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("build_state.json must contain an object")
    return data


def save_build_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def ensure_build_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    state.setdefault("last_build", None)
    state.setdefault("history", [])
    return state


def record_build(state: Dict[str, Any], report: Mapping[str, Any]) -> Dict[str, Any]:
    """Store ``report`` as the last build and append it to the bounded history."""

    ensure_build_defaults(state)
    entry = dict(report)
    state["last_build"] = entry
    history = state["history"]
    history.append(entry)
    del history[:-HISTORY_LIMIT]
    return state
