"""
Classification of chat responses into success, challenge or failure.
"""

from enum import Enum
from typing import Optional

from duckchat.exceptions.protocol import (
    InvalidTokenError,
    ProtocolError,
    TransientChallenge,
)

INVALID_TOKEN_MARKER = "ERR_INVALID_VQD"


class ChallengeKind(str, Enum):
    SUCCESS = "success"
    BOT_CHALLENGE = "418"
    RATE_CHALLENGE = "429"
    INVALID_TOKEN = "invalid_vqd"
    HARD_FAILURE = "hard_failure"

    @property
    def is_soft(self) -> bool:
        return self in (
            ChallengeKind.BOT_CHALLENGE,
            ChallengeKind.RATE_CHALLENGE,
            ChallengeKind.INVALID_TOKEN,
        )


class ChallengeDetector:
    """
    Maps an HTTP status and body to a ChallengeKind.

    Only non-200 responses are inspected for the invalid-token marker.
    """

    def classify(self, status: int, body: str = "") -> ChallengeKind:
        if status == 200:
            return ChallengeKind.SUCCESS
        if status == 418:
            return ChallengeKind.BOT_CHALLENGE
        if status == 429:
            return ChallengeKind.RATE_CHALLENGE
        if INVALID_TOKEN_MARKER in (body or ""):
            return ChallengeKind.INVALID_TOKEN
        return ChallengeKind.HARD_FAILURE

    def to_exception(
        self, kind: ChallengeKind, status: int, body: str = ""
    ) -> Optional[ProtocolError]:
        """Exception to raise for ``kind``, or None on success."""
        if kind == ChallengeKind.SUCCESS:
            return None

        snippet = (body or "")[:200]
        if kind == ChallengeKind.INVALID_TOKEN:
            return InvalidTokenError(
                f"{status}: session token rejected. Body: {snippet}",
                status_code=status,
            )
        if kind.is_soft:
            return TransientChallenge(
                f"{status}: request challenged by the backend. Body: {snippet}",
                challenge_type=kind.value,
                status_code=status,
            )
        return ProtocolError(
            f"{status}: Failed to send message. Body: {snippet}",
            status_code=status,
        )
