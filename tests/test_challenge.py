# Test suite for response classification

import pytest

from duckchat.exceptions.protocol import (
    InvalidTokenError,
    ProtocolError,
    TransientChallenge,
)
from duckchat.providers.challenge import ChallengeDetector, ChallengeKind


class TestChallengeDetector:
    """Test suite for ChallengeDetector"""

    @pytest.fixture
    def detector(self):
        return ChallengeDetector()

    @pytest.mark.parametrize(
        "status,body,expected",
        [
            (200, "", ChallengeKind.SUCCESS),
            (200, "ERR_INVALID_VQD", ChallengeKind.SUCCESS),
            (418, "", ChallengeKind.BOT_CHALLENGE),
            (429, "slow down", ChallengeKind.RATE_CHALLENGE),
            (400, '{"type":"ERR_INVALID_VQD"}', ChallengeKind.INVALID_TOKEN),
            (400, "bad request", ChallengeKind.HARD_FAILURE),
            (500, "", ChallengeKind.HARD_FAILURE),
        ],
    )
    def test_classify(self, detector, status, body, expected):
        assert detector.classify(status, body) == expected

    def test_soft_kinds(self):
        assert ChallengeKind.BOT_CHALLENGE.is_soft
        assert ChallengeKind.RATE_CHALLENGE.is_soft
        assert ChallengeKind.INVALID_TOKEN.is_soft
        assert not ChallengeKind.HARD_FAILURE.is_soft
        assert not ChallengeKind.SUCCESS.is_soft

    def test_exceptions(self, detector):
        """Test each kind maps to the matching exception type"""
        assert detector.to_exception(ChallengeKind.SUCCESS, 200) is None

        bot = detector.to_exception(ChallengeKind.BOT_CHALLENGE, 418, "blocked")
        assert isinstance(bot, TransientChallenge)
        assert bot.challenge_type == "418"
        assert bot.status_code == 418

        invalid = detector.to_exception(ChallengeKind.INVALID_TOKEN, 400)
        assert isinstance(invalid, InvalidTokenError)
        assert isinstance(invalid, TransientChallenge)

        hard = detector.to_exception(ChallengeKind.HARD_FAILURE, 500, "boom")
        assert type(hard) is ProtocolError
        assert "500" in hard.message
