"""
Invocation error taxonomy and provider error classification.

Callers only ever see QuotaExceededError or ConnectionFailureError
from an invocation. Classifiers decide how a raw provider exception
is treated: a quota rejection blocks the tier, a transient failure
is retried, a fatal failure is surfaced without retrying.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from quotagate.tiers import ModelTier


class InvocationError(Exception):
    """Base class for errors raised by the invocation layer."""


class QuotaExceededError(InvocationError):
    """Raised when a tier is blocked locally or the provider confirms exhaustion."""

    def __init__(
        self,
        tier: ModelTier,
        retry_after: float | None = None,
        provider_confirmed: bool = False,
    ) -> None:
        self.tier = tier
        self.retry_after = retry_after
        self.provider_confirmed = provider_confirmed

        if provider_confirmed:
            message = f"Quota exhausted for {tier.value} tier (rejected by provider)"
        elif retry_after:
            message = f"Quota exhausted for {tier.value} tier. Retry in {retry_after:.0f}s or use the other tier"
        else:
            message = f"Quota exhausted for {tier.value} tier"
        super().__init__(message)


class ConnectionFailureError(InvocationError):
    """Raised when the retry budget is spent on non-quota failures."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Generation failed after {attempts} attempt(s){detail}")


class UnknownTaskError(InvocationError, KeyError):
    """Raised when a task name is not registered."""

    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        self.available = available or []
        super().__init__(f"Unknown task: {name}. Available: {self.available}")

    def __str__(self) -> str:
        return self.args[0]


class StoreReadError(Exception):
    """Raised by a store when a read fails, as opposed to the key being absent."""

    def __init__(self, key: str, cause: BaseException | None = None) -> None:
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not read {key}{detail}")


class ErrorKind(str, Enum):
    """How the orchestrator treats a failed generation call."""

    QUOTA = "quota"  # Block the tier, fail now
    TRANSIENT = "transient"  # Retry with backoff
    FATAL = "fatal"  # Fail now without blocking


ErrorClassifier = Callable[[BaseException], ErrorKind]

QUOTA_MARKERS: tuple[str, ...] = ("quota", "429", "limit", "resource_exhausted")

FATAL_STATUS_CODES = frozenset({400, 401, 403, 404})


def classify_by_message(exc: BaseException) -> ErrorKind:
    """
    Classify an error by scanning its message for quota markers.

    Args:
        exc: Exception raised by the generation client

    Returns:
        QUOTA if any marker appears (case-insensitive), else TRANSIENT
    """
    text = str(exc).lower()
    if any(marker in text for marker in QUOTA_MARKERS):
        return ErrorKind.QUOTA
    return ErrorKind.TRANSIENT


def extract_status_code(exc: BaseException) -> int | None:
    """Find an HTTP-style status code on a provider exception."""
    for attr in ("status_code", "code"):
        code = getattr(exc, attr, None)
        if isinstance(code, int) and not isinstance(code, bool):
            return code
    response = getattr(exc, "response", None)
    if response is not None:
        code = getattr(response, "status_code", None)
        if isinstance(code, int):
            return code
    return None


def classify_by_status(exc: BaseException) -> ErrorKind:
    """
    Classify an error from a structured status code.

    Falls back to message scanning when the exception carries no code.

    Args:
        exc: Exception raised by the generation client

    Returns:
        ErrorKind for the exception
    """
    code = extract_status_code(exc)
    if code is None:
        return classify_by_message(exc)
    if code == 429:
        return ErrorKind.QUOTA
    if code in FATAL_STATUS_CODES:
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT
