"""
Deterministic HMAC-SHA256 helpers for participant pseudonymization.

Fairness history and VIP policies are keyed by participant hash, never by
raw email address. Hashing happens server-side on request intake.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Iterable

from app.config import settings

SECRET_MIN_LENGTH = 16  # keep configurable but catch obvious misconfiguration

__all__ = [
    "HashingError",
    "compute_hmac",
    "hash_participant",
    "hash_participants",
]


class HashingError(RuntimeError):
    """Raised when hashing prerequisites are not satisfied."""


def _secret_bytes() -> bytes:
    secret = getattr(settings, "HASHING_SECRET", None)
    if not secret:
        raise HashingError("HASHING_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise HashingError("HASHING_SECRET is too short; please rotate it")
    return secret.encode("utf-8")


def compute_hmac(value: str, *, namespace: str) -> str:
    """
    Compute a namespaced hex HMAC-SHA256 digest.

    Args:
        value: Raw string value to hash (will be normalized by caller).
        namespace: Logical namespace/salt to avoid cross-field collisions.
    """
    payload = value or ""
    scoped = f"{namespace}:{payload}"
    digest = hmac.new(_secret_bytes(), scoped.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def hash_participant(email: str | None) -> str:
    """Deterministically hash a participant email address."""
    return compute_hmac(_normalize_email(email), namespace="participant")


def hash_participants(emails: Iterable[str | None]) -> list[str]:
    """
    Hash a collection of addresses while preserving input order.

    Order matters: the first participant is the organizer.
    """
    return [hash_participant(address) for address in emails]
