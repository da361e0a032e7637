#!/usr/bin/env python3
"""
Protocol Exception Classes
==========================

Errors raised by the session protocol manager while talking to the
chat backend. Everything a caller of ``send`` can observe derives from
ProtocolError.
"""

from dataclasses import dataclass
from typing import Optional

from .base import DuckChatError


class ProtocolError(DuckChatError):
    """
    Base exception for all upstream protocol failures.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None and "status_code" not in self.details:
            self.details["status_code"] = status_code


class TokenAcquisitionError(ProtocolError):
    """
    Raised when the bootstrap exchange yields no session token.

    The session cannot open (or cannot recover) without one.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "Could not obtain a chat token from the backend. "
            "Check your connection or try again in a moment."
        )


class TransientChallenge(ProtocolError):
    """
    Raised when the backend challenges the request (418 / 429).

    Retryable: the manager refreshes its token and tries again.
    """

    def __init__(self, message: str, challenge_type: str = "unknown", **kwargs):
        super().__init__(message, **kwargs)
        self.challenge_type = challenge_type
        self.details.setdefault("challenge_type", challenge_type)
        self.user_hint = "The backend flagged the request as automated traffic."


class InvalidTokenError(TransientChallenge):
    """Raised when the body reports that the session token is invalid."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("challenge_type", "invalid_vqd")
        super().__init__(message, **kwargs)


class ExhaustedRetries(ProtocolError):
    """
    Raised when every retry of a challenged call failed.

    Terminal for one call only; the session remains usable.
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_challenge: Optional[TransientChallenge] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_challenge = last_challenge
        self.details["attempts"] = attempts
        self.user_hint = (
            "The backend kept challenging the request. "
            "Wait a little and send your message again."
        )


class TransportError(ProtocolError):
    """
    Raised for network-level failures (connection, DNS, timeout).

    Not retried by the protocol layer.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.user_hint = (
            "Failed to reach the chat backend. "
            "Please check your internet connection."
        )


@dataclass
class DecodeWarning:
    """
    A single malformed server-sent-event line.

    Recorded on the stream and logged; never raised.
    """

    line: str
    reason: str

    def __str__(self) -> str:
        return f"Skipped malformed SSE line ({self.reason}): {self.line[:120]}"
