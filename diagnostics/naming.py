from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from .types import Severity

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_name(text: str, max_length: int = 60) -> str:
    cleaned = _UNSAFE.sub("_", text).strip("_")
    return cleaned[:max_length] or "snapshot"


def build_artifact_dir(base: Path, severity: Severity, label: str, error_key: str) -> Path:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    return base / severity.value / f"{ts}_{safe_name(label)}_{safe_name(error_key)}"
