"""Confirmation code generation and expiry rules.

Codes are 6-digit numeric strings drawn uniformly from 100000-999999.
Uniqueness is only required within a (request, email, role) ledger entry,
so collisions across requests are acceptable.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime, timedelta

CODE_MIN = 100_000
CODE_MAX = 999_999


def generate_code() -> str:
    """Return a fresh 6-digit confirmation code."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_expired(issued_at: datetime, now: datetime, ttl: timedelta) -> bool:
    """A code is expired once strictly more than `ttl` has passed since issue."""
    return as_utc(now) - as_utc(issued_at) > ttl
