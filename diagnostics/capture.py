from __future__ import annotations

import traceback
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog

from .masking import mask_pii
from .naming import build_artifact_dir
from .storage import enforce_limit, ensure_dir
from .types import DiagnosticContext, DiagnosticOptions

if TYPE_CHECKING:
    from core.remote import RemoteDriver

logger = structlog.get_logger(__name__)


def capture_snapshot(
    driver: "RemoteDriver",
    options: DiagnosticOptions,
    dctx: DiagnosticContext,
) -> Optional[Path]:
    """
    Write a screenshot, the masked page source and the error description of
    the current page under ``options.output_dir``.

    Every artifact is best-effort: a failure to capture one of them is logged
    and the others are still written. Nothing is raised to the caller.
    """
    if not options.enabled:
        return None
    if dctx.severity.rank < options.min_severity.rank:
        return None

    error_key = type(dctx.error).__name__ if dctx.error else "NoError"
    base = Path(options.output_dir)
    try:
        out_dir = build_artifact_dir(base, dctx.severity, dctx.label, error_key)
        ensure_dir(out_dir)
        # Total artifacts limit per run, over every severity
        enforce_limit(base, options.max_artifacts_per_run)
    except OSError as exc:
        logger.warning("snapshot_dir_unavailable", base=str(base), error=str(exc))
        return None

    if options.capture_screenshot:
        try:
            (out_dir / "screenshot.png").write_bytes(driver.take_screenshot())
        except Exception as exc:
            logger.warning("snapshot_screenshot_failed", label=dctx.label, error=str(exc))
    if options.capture_html:
        try:
            html = mask_pii(driver.page_source(), options.pii_mask_patterns)
            (out_dir / "page.html").write_text(html, encoding="utf-8")
        except Exception as exc:
            logger.warning("snapshot_html_failed", label=dctx.label, error=str(exc))
    try:
        (out_dir / "context.txt").write_text(_describe(dctx, options), encoding="utf-8")
    except OSError as exc:
        logger.warning("snapshot_context_failed", label=dctx.label, error=str(exc))

    logger.info("snapshot_captured", severity=dctx.severity.value, label=dctx.label, path=str(out_dir))
    return out_dir


def _describe(dctx: DiagnosticContext, options: DiagnosticOptions) -> str:
    lines = [
        f"timestamp: {dctx.timestamp}",
        f"severity: {dctx.severity.value}",
        f"label: {dctx.label}",
    ]
    if dctx.url:
        lines.append(f"url: {dctx.url}")
    for key, value in dctx.extra.items():
        lines.append(f"{key}: {value}")
    if dctx.error is not None:
        lines.append("")
        lines.append(
            "".join(traceback.format_exception(type(dctx.error), dctx.error, dctx.error.__traceback__))
        )
    return mask_pii("\n".join(lines), options.pii_mask_patterns)
