"""
CoachBot - Failure Taxonomy
============================
Typed failures raised by the provider-facing layers, plus the helpers
that collapse any exception into a short user-facing message.

``EmbeddingUnavailable`` / ``RetrievalFailed``
    Retrieval degrades to the unranked fallback.
``GenerationFailed``
    The assembler substitutes a deterministic templated answer.
``PersistenceFailed``
    Logged and swallowed by the best-effort memory path.

Nothing in this package retries.  ``is_retryable`` exists so an outer
layer can decide.
"""

from __future__ import annotations

from enum import Enum

from coachbot.config.prompt_templates import USER_ERROR_MESSAGES


class FailureKind(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    QUOTA = "quota"
    INVALID_RESPONSE = "invalid_response"
    GENERIC = "generic"


class CoachError(Exception):
    """Base class for every failure this package raises on purpose."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.GENERIC) -> None:
        super().__init__(message)
        self.kind = kind


class EmbeddingUnavailable(CoachError):
    """The embedding provider could not produce a vector."""


class RetrievalFailed(CoachError):
    """The corpus store could not answer a query."""


class GenerationFailed(CoachError):
    """The text-generation provider failed (rate limit, quota, auth, …)."""


class PersistenceFailed(CoachError):
    """A summary, memory or document write failed."""


# ── Classification ─────────────────────────────────────────────────────

_RATE_LIMIT_MARKERS = ("429", "rate limit", "too many", "resource exhausted", "resourceexhausted")
_QUOTA_MARKERS = ("quota",)
_AUTH_MARKERS = ("401", "403", "unauthorized", "unauthenticated", "permission denied", "api key", "auth")
_NETWORK_MARKERS = ("network", "connection", "timeout", "timed out", "fetch", "unreachable")
_INVALID_MARKERS = ("invalid response", "empty response")


def classify_provider_error(exc: BaseException) -> FailureKind:
    """Map an arbitrary provider exception to a ``FailureKind``."""
    if isinstance(exc, CoachError):
        return exc.kind
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return FailureKind.NETWORK

    text = f"{type(exc).__name__} {exc}".lower()
    # Quota wins over rate-limit: Gemini reports both as 429.
    if any(marker in text for marker in _QUOTA_MARKERS):
        return FailureKind.QUOTA
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if any(marker in text for marker in _AUTH_MARKERS):
        return FailureKind.AUTH
    if any(marker in text for marker in _NETWORK_MARKERS):
        return FailureKind.NETWORK
    if any(marker in text for marker in _INVALID_MARKERS):
        return FailureKind.INVALID_RESPONSE
    return FailureKind.GENERIC


def user_message_for(exc: BaseException) -> str:
    """Collapse *exc* into a generic message safe to show an end user."""
    return USER_ERROR_MESSAGES[classify_provider_error(exc).value]


def is_retryable(exc: BaseException) -> bool:
    return classify_provider_error(exc) in (FailureKind.NETWORK, FailureKind.RATE_LIMITED)
