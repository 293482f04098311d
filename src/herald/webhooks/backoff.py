"""Retry delay schedule for failed deliveries."""

from __future__ import annotations

from collections.abc import Sequence

# Delay in seconds after attempt 1, 2, 3
DEFAULT_BACKOFF_SCHEDULE: tuple[int, ...] = (60, 300, 900)

# Delay for any attempt beyond the schedule
DEFAULT_BACKOFF_SECONDS = 3600


def backoff(
    attempt: int,
    schedule: Sequence[int] = DEFAULT_BACKOFF_SCHEDULE,
    default: int = DEFAULT_BACKOFF_SECONDS,
) -> int:
    """Delay before the attempt following failed attempt number `attempt`.

    Args:
        attempt: 1-indexed number of the attempt that just failed.
        schedule: Fixed delays indexed by attempt number.
        default: Delay used once attempt exceeds the schedule.

    Returns:
        Delay in seconds.

    Examples:
        >>> [backoff(n) for n in range(1, 6)]
        [60, 300, 900, 3600, 3600]
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if attempt <= len(schedule):
        return schedule[attempt - 1]
    return default
