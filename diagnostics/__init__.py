from .capture import capture_snapshot
from .sink import DiagnosticSink, NullSink, SnapshotSink
from .types import DiagnosticContext, DiagnosticOptions, Severity

__all__ = [
    "DiagnosticContext",
    "DiagnosticOptions",
    "DiagnosticSink",
    "NullSink",
    "Severity",
    "SnapshotSink",
    "capture_snapshot",
]
