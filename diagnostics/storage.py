from __future__ import annotations

import shutil
from pathlib import Path


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def list_artifacts(base_dir: Path) -> list[Path]:
    """Snapshot directories under every severity directory, oldest first."""
    if not base_dir.exists():
        return []
    return sorted(
        (p for severity_dir in base_dir.iterdir() if severity_dir.is_dir() for p in severity_dir.iterdir() if p.is_dir()),
        key=lambda p: p.name,
    )


def enforce_limit(base_dir: Path, max_items: int) -> int:
    """Delete the oldest snapshot directories beyond ``max_items``. Return how many were removed."""
    items = list_artifacts(base_dir)
    overflow = max(0, len(items) - max_items)
    for old in items[:overflow]:
        shutil.rmtree(old, ignore_errors=True)
    return overflow
