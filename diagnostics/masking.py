from __future__ import annotations

import re
from typing import Iterable, List, Pattern

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_PATTERNS = [
    # Email addresses
    r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}",
    # Values of password inputs
    r'(?<=type="password" value=")[^"]*',
]

MASK = "***"


def compile_patterns(patterns: Iterable[str]) -> List[Pattern[str]]:
    compiled = []
    for pat in DEFAULT_PATTERNS + list(patterns or []):
        try:
            compiled.append(re.compile(pat, flags=re.IGNORECASE))
        except re.error as exc:
            logger.warning("invalid_pii_pattern", pattern=pat, error=str(exc))
    return compiled


def mask_pii(text: str, patterns: Iterable[str]) -> str:
    masked = text
    for regex in compile_patterns(patterns):
        masked = regex.sub(MASK, masked)
    return masked
