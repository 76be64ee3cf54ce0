"""Scrobble eligibility by elapsed time.

Last.fm's guideline is that a track counts once it has played for a share of
its duration. When the duration is unknown a flat 30 seconds is used.
"""

from __future__ import annotations

from typing import Optional


MINIMUM_SCROBBLE_DURATION_MS = 30_000


def scrobble_threshold_ms(duration_ms: Optional[int], threshold_percent: float) -> float:
    if duration_ms:
        return duration_ms * threshold_percent / 100
    return MINIMUM_SCROBBLE_DURATION_MS


def is_eligible_to_scrobble(
    elapsed_ms: int, duration_ms: Optional[int], threshold_percent: float
) -> bool:
    if elapsed_ms < 0:
        return False
    return elapsed_ms >= scrobble_threshold_ms(duration_ms, threshold_percent)
