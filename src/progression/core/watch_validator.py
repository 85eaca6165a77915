"""Video watch validator.

Reconstructs real watch coverage from reported play segments so that a
client cannot complete a video by seeking to the end.

Algorithm:
1. Drop invalid segments (start < 0 or end <= start)
2. Clip segments to the video duration
3. Sort by start and merge segments whose gap is within the tolerance
4. Sum merged lengths -> total watched time -> actual percentage

Acceptance (thresholds from WatchPolicy):
- actual >= required_percentage, or
- frontend reported >= frontend_reported_percentage and
  actual >= fallback_floor_percentage
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import structlog

from progression.config.app_config import WatchPolicy, get_watch_policy
from progression.core.errors import (
    InsufficientWatchCoverageError,
    ValidationError,
    WatchLimitExceededError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Segment:
    """A played interval in seconds."""

    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start


@dataclass
class WatchValidation:
    """Outcome of a coverage check."""

    accepted: bool
    total_watched_time: float
    actual_percentage: float
    frontend_percentage: float
    video_duration: float
    merged_segments: list[Segment]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "accepted": self.accepted,
            "total_watched_time": self.total_watched_time,
            "actual_percentage": round(self.actual_percentage, 2),
            "frontend_percentage": self.frontend_percentage,
            "video_duration": self.video_duration,
            "merged_segments": [[s.start, s.end] for s in self.merged_segments],
        }


def parse_segments(raw: Iterable[Any]) -> list[Segment]:
    """Parse ``[start, end]`` pairs or ``{"start", "end"}`` dicts.

    Malformed entries are skipped.
    """
    segments = []
    for entry in raw or []:
        try:
            if isinstance(entry, dict):
                start, end = float(entry["start"]), float(entry["end"])
            else:
                start, end = float(entry[0]), float(entry[1])
        except (KeyError, IndexError, TypeError, ValueError):
            logger.debug("watch_segment_skipped", segment=repr(entry))
            continue
        segments.append(Segment(start, end))
    return segments


def merge_segments(
    segments: Sequence[Segment],
    tolerance: float = 2.0,
    duration: float | None = None,
) -> list[Segment]:
    """Filter, clip, sort and merge segments.

    Args:
        segments: Reported segments
        tolerance: Maximum gap in seconds bridged when merging
        duration: Clip segments to [0, duration] when given
    """
    valid = []
    for seg in segments:
        if seg.start < 0 or seg.end <= seg.start:
            continue
        if duration is not None:
            seg = Segment(seg.start, min(seg.end, duration))
            if seg.end <= seg.start:
                continue
        valid.append(seg)

    merged: list[Segment] = []
    for seg in sorted(valid, key=lambda s: (s.start, s.end)):
        if merged and seg.start - merged[-1].end <= tolerance:
            last = merged[-1]
            merged[-1] = Segment(last.start, max(last.end, seg.end))
        else:
            merged.append(seg)
    return merged


def compute_coverage(
    segments: Sequence[Segment],
    duration: float,
    tolerance: float = 2.0,
) -> tuple[float, float, list[Segment]]:
    """Return (total_watched_time, actual_percentage, merged_segments)."""
    merged = merge_segments(segments, tolerance=tolerance, duration=duration)
    total = sum(s.length for s in merged)
    percentage = min(total / duration * 100, 100.0) if duration > 0 else 0.0
    return total, percentage, merged


def is_accepted(actual: float, frontend: float, policy: WatchPolicy) -> bool:
    """Dual-threshold acceptance rule."""
    if actual >= policy.required_percentage:
        return True
    return (
        frontend >= policy.frontend_reported_percentage
        and actual >= policy.fallback_floor_percentage
    )


def check_watch_limit(watch_count: int, max_watch_count: int | None) -> None:
    """Raise WatchLimitExceededError when the cap is reached."""
    if max_watch_count is not None and watch_count >= max_watch_count:
        raise WatchLimitExceededError(
            f"You have reached the maximum watch limit ({max_watch_count} times) for this video.",
            watch_count=watch_count,
            max_watch_count=max_watch_count,
            limit_reached=True,
        )


def validate_watch(
    segments: Sequence[Segment] | None,
    video_duration: float | None,
    frontend_percentage: float | None = None,
    *,
    watch_count: int = 0,
    max_watch_count: int | None = None,
    fallback_duration: float | None = None,
    policy: WatchPolicy | None = None,
) -> WatchValidation:
    """Validate a video completion.

    The watch limit is checked before coverage.

    Args:
        segments: Reported play segments
        video_duration: Duration reported by the client
        frontend_percentage: Client-computed percentage
        watch_count: Accepted completions so far
        max_watch_count: Cap on accepted completions (None means no cap)
        fallback_duration: Catalog duration, used when the reported one is
            missing or not positive
        policy: Thresholds (defaults to the configured policy)

    Returns:
        WatchValidation for an accepted completion

    Raises:
        WatchLimitExceededError: If the cap is reached
        ValidationError: If watch data or a usable duration is missing
        InsufficientWatchCoverageError: If coverage is below the thresholds
    """
    check_watch_limit(watch_count, max_watch_count)

    policy = policy or get_watch_policy()

    if segments is None:
        raise ValidationError("Watch data is required to complete a video")

    duration = float(video_duration or 0)
    if duration <= 0:
        duration = float(fallback_duration or 0)
    if duration <= 0:
        raise ValidationError("Video duration is required to complete a video")

    frontend = float(frontend_percentage or 0)
    total, actual, merged = compute_coverage(
        segments, duration, tolerance=policy.merge_tolerance_seconds
    )
    accepted = is_accepted(actual, frontend, policy)

    logger.info(
        "watch_validation",
        total_watched_time=round(total, 2),
        video_duration=duration,
        actual_percentage=round(actual, 2),
        frontend_percentage=frontend,
        accepted=accepted,
    )

    validation = WatchValidation(
        accepted=accepted,
        total_watched_time=total,
        actual_percentage=actual,
        frontend_percentage=frontend,
        video_duration=duration,
        merged_segments=merged,
    )

    if not accepted:
        raise InsufficientWatchCoverageError(
            f"You need to watch at least {policy.required_percentage:g}% of the video "
            f"to complete it. You have watched {actual:.1f}%.",
            actual_percentage=round(actual, 2),
            required_percentage=policy.required_percentage,
            total_watched_time=round(total, 2),
            video_duration=duration,
        )

    return validation
