"""Locating, measuring and finalizing the built ISO.

mkarchiso names its image after the profile, version and date
(``archlinux-2025.01.01-x86_64.iso``), so unless the image builder reports
the path it wrote, the file is discovered by pattern in the output dir.
"""

from __future__ import annotations

import hashlib
import logging
import os
import time
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Returned for a missing artifact. Callers treat it as "ancient".
ARTIFACT_AGE_UNKNOWN = 999_999

_CHUNK = 1024 * 1024


def artifact_age_minutes(path: Path, now: Optional[float] = None) -> int:
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return ARTIFACT_AGE_UNKNOWN
    now = time.time() if now is None else now
    return max(int(now - mtime) // 60, 0)


def artifact_size_text(path: Path) -> str:
    try:
        size = path.stat().st_size
    except OSError:
        return "N/A"
    return f"{size // 1024 // 1024}MB"


def format_age(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} minutes ago"
    if minutes < 1440:
        return f"{minutes // 60} hours ago"
    return f"{minutes // 1440} days ago"


def format_duration(seconds: float) -> str:
    s = int(seconds)
    return f"{s // 60}m {s % 60}s"


def _matches(output_dir: Path, pattern: str, exclude: Optional[Path]) -> List[Path]:
    if not output_dir.is_dir():
        return []
    found = [p for p in output_dir.glob(pattern) if p.is_file()]
    if exclude is not None:
        found = [p for p in found if p.resolve() != exclude.resolve()]
    return found


def discover_artifact(
    output_dir: Path,
    pattern: str,
    *,
    reported: Optional[Path] = None,
    exclude: Optional[Path] = None,
) -> Optional[Path]:
    """Return the image a build just produced, or None.

    A path reported by the image builder wins when it exists. Otherwise the
    newest file matching ``pattern`` is used; ``exclude`` (the fixed output
    name) is never returned as a fresh build.
    """

    if reported is not None:
        if reported.is_file():
            return reported
        logger.warning("Reported artifact does not exist: %s", reported)

    found = _matches(output_dir, pattern, exclude)
    if not found:
        return None
    found.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    if len(found) > 1:
        logger.debug("Several images match %s, using newest: %s", pattern, found[0].name)
    return found[0]


def remove_stale_artifacts(output_dir: Path, pattern: str, *, exclude: Optional[Path] = None) -> List[Path]:
    """Delete leftovers of earlier builds so they cannot be promoted later."""

    removed = _matches(output_dir, pattern, exclude)
    for p in removed:
        logger.debug("Removing stale image %s", p)
        p.unlink()
    return removed


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def write_checksum(path: Path) -> Path:
    """Write ``<path>.sha256`` in sha256sum format and return its path."""

    digest = sha256_file(path)
    out = path.with_name(path.name + ".sha256")
    out.write_text(f"{digest}  {path.name}\n", encoding="utf-8")
    return out


def promote_artifact(built: Path, fixed: Path) -> Path:
    """Move the discovered image to the fixed output name."""

    if built.resolve() != fixed.resolve():
        fixed.parent.mkdir(parents=True, exist_ok=True)
        os.replace(built, fixed)
    return fixed
