"""Running-aggregate math for route statistics."""

from __future__ import annotations

from dataclasses import dataclass


def running_mean(previous: float | None, count: int, value: float | None) -> float | None:
    """Fold *value* into a mean over *count* previous samples.

    ``count`` is the pre-increment sample count. A missing *value* leaves
    the mean untouched; a missing *previous* mean (nothing recorded yet)
    starts from *value*.
    """
    if value is None:
        return previous
    if previous is None or count <= 0:
        return float(value)
    return (previous * count + value) / (count + 1)


@dataclass(frozen=True)
class Extreme:
    """A recorded best or worst value and the drive that set it."""

    value: float | None
    drive_id: str | None


def track_best(current: Extreme, value: float | None, drive_id: str) -> Extreme:
    """Replace *current* only when *value* is strictly greater."""
    if value is None:
        return current
    if current.value is None or value > current.value:
        return Extreme(value=value, drive_id=drive_id)
    return current


def track_worst(current: Extreme, value: float | None, drive_id: str) -> Extreme:
    """Replace *current* only when *value* is strictly smaller."""
    if value is None:
        return current
    if current.value is None or value < current.value:
        return Extreme(value=value, drive_id=drive_id)
    return current
