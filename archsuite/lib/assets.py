from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List

from .host import make_executable

logger = logging.getLogger(__name__)


def copy_tree(src: str, dst: str, *, dry_run: bool = False) -> List[Path]:
    """Copy ``src`` into ``dst`` (merging), returning the files written."""

    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    if dry_run:
        logger.info("Would copy tree %s -> %s", str(s), str(d))
        return []

    written: List[Path] = []
    d.mkdir(parents=True, exist_ok=True)
    for item in sorted(s.rglob("*")):
        rel = item.relative_to(s)
        out = d / rel
        if item.is_dir():
            out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, out)
            written.append(out)
    return written


def mark_scripts_executable(root: Path, pattern: str = "*.sh") -> List[Path]:
    scripts = sorted(p for p in root.rglob(pattern) if p.is_file())
    for p in scripts:
        make_executable(p)
    return scripts
