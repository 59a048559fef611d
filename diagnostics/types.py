from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from config import DiagnosticsConfig


class Severity(str, Enum):
    """How serious the situation that triggered a snapshot is."""

    INFO = "info"
    WARNING = "warning"
    FAILURE = "failure"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Severity.INFO: 0, Severity.WARNING: 1, Severity.FAILURE: 2}


@dataclass
class DiagnosticOptions:
    enabled: bool = True
    capture_screenshot: bool = True
    capture_html: bool = True
    output_dir: Path = Path("./logs/snapshots")
    max_artifacts_per_run: int = 50
    pii_mask_patterns: list[str] = field(default_factory=list)
    min_severity: Severity = Severity.INFO

    @classmethod
    def from_config(cls, cfg: "DiagnosticsConfig") -> "DiagnosticOptions":
        return cls(
            enabled=cfg.enabled,
            capture_screenshot=cfg.capture_screenshot,
            capture_html=cfg.capture_html,
            output_dir=Path(cfg.output_dir),
            max_artifacts_per_run=cfg.max_artifacts_per_run,
            pii_mask_patterns=list(cfg.pii_mask_patterns),
            min_severity=Severity(cfg.min_severity),
        )


@dataclass
class DiagnosticContext:
    severity: Severity
    label: str
    error: Optional[BaseException] = None
    url: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    extra: Dict[str, Any] = field(default_factory=dict)
