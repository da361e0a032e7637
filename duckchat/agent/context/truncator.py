#!/usr/bin/env python3
"""
Context Truncator Module
========================
Enforces the hard byte budget once scoring, deduplication and
compression are done. Keeps the most important messages that fit and
rebuilds the survivors in conversational order.
"""

import logging
from typing import List, Tuple

from .message import Message, transcript_size


class ContextTruncator:
    """Handles truncation when the byte budget is exceeded."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        self.logger = logging.getLogger(__name__)

    def _select_fitting_messages(
        self, ranked: List[Tuple[int, Message]]
    ) -> List[Tuple[int, Message]]:
        """
        Greedily keep the highest scoring messages that fit within the budget.
        """
        kept = []
        current = 0
        for original_index, msg in ranked:
            size = msg.size
            if current + size <= self.max_bytes:
                kept.append((original_index, msg))
                current += size
        return kept

    def truncate(self, conversation: List[Message]) -> List[Message]:
        """
        Drop the least important messages until the transcript fits.
        """
        if transcript_size(conversation) <= self.max_bytes:
            return conversation

        # 1. Rank by importance (highest first); sort is stable so ties keep order
        ranked = sorted(
            enumerate(conversation), key=lambda item: item[1].importance, reverse=True
        )

        # 2. Select messages that fit in budget
        kept = self._select_fitting_messages(ranked)

        # 3. Rebuild in chronological order
        final_list = [msg for _, msg in sorted(kept, key=lambda item: item[0])]

        removed = len(conversation) - len(final_list)
        if removed:
            self.logger.warning(
                "Removed %d least important messages to fit context limit", removed
            )
        return final_list
