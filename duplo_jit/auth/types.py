"""Typed return values for authentication operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenOutcome(str, Enum):
    """How an interactive token acquisition ended."""

    TOKEN = "token"
    CANCELED = "canceled"
    UNAUTHORIZED_ORIGIN = "unauthorized-origin"
    MALFORMED = "malformed"
    TIMED_OUT = "timed-out"
    TRANSPORT_ERROR = "transport-error"


@dataclass(frozen=True)
class TokenResult:
    """Result of one interactive login attempt.

    ``token`` (and optionally ``otp``) is set only when ``outcome`` is
    ``TokenOutcome.TOKEN``. ``body`` holds a malformed callback body for
    diagnostics; it is never filled for a request from an unauthorized origin.
    """

    outcome: TokenOutcome
    token: str | None = None
    otp: str | None = None
    error: str | None = None
    status: int | None = None
    origin: str | None = None
    body: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is TokenOutcome.TOKEN and bool(self.token)
