#!/usr/bin/env python3
"""
Context Scorer Module
=====================
Assigns an importance value in [0, 1] to every transcript message.
Each message is scored on its own: role, distance from the end of the
transcript, and a handful of content signals.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Tuple

from .message import ContextKind, Message, content_hash

ROLE_WEIGHTS: Dict[ContextKind, float] = {
    ContextKind.ASSISTANT: 0.4,
    ContextKind.USER: 0.3,
}
INJECTION_WEIGHT = 0.1

RECENCY_WEIGHT = 0.3
RECENCY_DECAY = 0.1

LONG_BODY_CHARS = 100
LONG_BODY_BONUS = 0.1
CODE_BONUS = 0.2
QUESTION_BONUS = 0.1
INJECTION_BONUS = 0.15
WORDY_THRESHOLD = 50
WORDY_BONUS = 0.1
KEYWORD_BONUS = 0.05

TECHNICAL_KEYWORDS: Tuple[str, ...] = (
    "function",
    "class",
    "method",
    "algorithm",
    "implementation",
    "error",
    "debug",
    "solution",
    "code",
    "api",
    "database",
    "optimize",
    "performance",
    "security",
    "architecture",
)


class ContextScorer:
    """Scores messages; never mutates the input transcript."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def score_message(self, message: Message, index: int, total: int) -> float:
        """
        Importance of the message at ``index`` in a transcript of ``total``.
        """
        content = (message.content or "").lower()

        score = ROLE_WEIGHTS.get(message.kind, INJECTION_WEIGHT)

        # Recency: the last message gets 0.3 / 1.1, older ones decay toward 0
        score += RECENCY_WEIGHT / (1.0 + (total - index) * RECENCY_DECAY)

        if len(content) > LONG_BODY_CHARS:
            score += LONG_BODY_BONUS
        if "```" in content:
            score += CODE_BONUS
        if "?" in content:
            score += QUESTION_BONUS
        if message.kind.is_injection:
            score += INJECTION_BONUS
        if len(content.split()) > WORDY_THRESHOLD:
            score += WORDY_BONUS
        if any(keyword in content for keyword in TECHNICAL_KEYWORDS):
            score += KEYWORD_BONUS

        return min(max(score, 0.0), 1.0)

    def score(self, conversation: List[Message]) -> List[Message]:
        """
        Return scored copies (importance and content hash filled in).
        """
        total = len(conversation)
        scored = [
            replace(
                msg,
                importance=self.score_message(msg, i, total),
                content_hash=content_hash(msg.content),
            )
            for i, msg in enumerate(conversation)
        ]
        self.logger.debug("Scored %d messages", total)
        return scored
