"""Shared helpers for Herald models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6a1b2"
        generate_id("evt") -> "evt_a1b2c3d4e5f6a1b2"
    """
    return f"{prefix}_{uuid4().hex[:16]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)
