from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol

import structlog

from .capture import capture_snapshot
from .types import DiagnosticContext, DiagnosticOptions, Severity

if TYPE_CHECKING:
    from core.remote import RemoteDriver

logger = structlog.get_logger(__name__)


class DiagnosticSink(Protocol):
    """Receives snapshot requests. Implementations must never raise."""

    def capture(self, severity: Severity, label: str, error: Optional[BaseException] = None) -> None: ...


class NullSink:
    """Sink that drops every snapshot."""

    def capture(self, severity: Severity, label: str, error: Optional[BaseException] = None) -> None:
        return None


class SnapshotSink:
    """Writes snapshots of the page displayed by ``driver`` to disk."""

    def __init__(self, driver: "RemoteDriver", options: DiagnosticOptions):
        self.driver = driver
        self.options = options
        self.captured: List[Path] = []

    def capture(self, severity: Severity, label: str, error: Optional[BaseException] = None) -> None:
        try:
            url = self.driver.current_url()
        except Exception as exc:
            logger.debug("snapshot_url_unavailable", error=str(exc))
            url = None
        path = capture_snapshot(self.driver, self.options, DiagnosticContext(severity, label, error=error, url=url))
        if path is not None:
            self.captured.append(path)
