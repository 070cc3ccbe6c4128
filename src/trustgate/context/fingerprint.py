"""Client fingerprint comparison.

Fingerprints are opaque, already-hashed strings. Similarity is
position-wise, not cryptographic equality.
"""

import math
from typing import List, Optional
from pydantic import BaseModel, Field

from trustgate.common.constants import ContextConstants


class FingerprintSignals(BaseModel):
    """Client-reported signals a fingerprint hash was built from."""
    canvas: str = ""
    audio: str = ""
    webgl: str = ""
    screen_width: int = Field(default=0, ge=0)
    screen_height: int = Field(default=0, ge=0)
    cores: int = Field(default=0, ge=0)
    memory: float = Field(default=0, ge=0)
    plugins: List[str] = Field(default_factory=list)
    fonts: List[str] = Field(default_factory=list)


class FingerprintMatch(BaseModel):
    match: bool
    similarity: int = Field(..., ge=0, le=100)


def compare_fingerprints(first: str, second: str) -> int:
    """Similarity 0-100 over the common prefix length.

    Identical strings score 100. Mismatched characters at the same
    position count against the score; extra trailing characters of the
    longer string are ignored.
    """
    if first == second:
        return ContextConstants.FINGERPRINT_IDENTICAL
    length = min(len(first), len(second))
    if length == 0:
        return 0
    matches = sum(1 for a, b in zip(first, second) if a == b)
    return int(math.floor(matches * 100 / length + 0.5))


def verify_fingerprint(current: Optional[str], stored: Optional[str]) -> FingerprintMatch:
    """Match when similarity reaches the configured threshold."""
    if not current or not stored:
        return FingerprintMatch(match=False, similarity=0)
    similarity = compare_fingerprints(current, stored)
    return FingerprintMatch(
        match=similarity >= ContextConstants.FINGERPRINT_MATCH_THRESHOLD,
        similarity=similarity,
    )


def fingerprint_confidence(signals: FingerprintSignals) -> int:
    """How reliable a fingerprint is, from which signals were present."""
    score = 0
    if len(signals.canvas) > 100:
        score += 30
    if signals.audio and signals.audio != "timeout":
        score += 20
    if "|" in signals.webgl:
        score += 20
    if signals.screen_width > 0 and signals.screen_height > 0:
        score += 10
    if signals.cores > 0:
        score += 5
    if signals.memory > 0:
        score += 5
    if signals.plugins:
        score += 5
    if signals.fonts:
        score += 5
    return score
