"""
Collapses messages whose bodies are identical after whitespace
normalization. The highest-scored copy survives where it already stands.
"""

import logging
from typing import Dict, List

from .message import Message, content_hash


class Deduplicator:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _hash(message: Message) -> int:
        return content_hash(message.content)

    def deduplicate(self, conversation: List[Message]) -> List[Message]:
        best: Dict[int, int] = {}
        for i, msg in enumerate(conversation):
            h = self._hash(msg)
            kept = best.get(h)
            # Ties keep the earlier occurrence
            if kept is None or msg.importance > conversation[kept].importance:
                best[h] = i

        survivors = set(best.values())
        removed = len(conversation) - len(survivors)
        if removed:
            self.logger.info("Removed %d duplicate messages", removed)

        return [msg for i, msg in enumerate(conversation) if i in survivors]

    def count_duplicates(self, conversation: List[Message]) -> int:
        """Messages beyond the first of each content group."""
        seen = set()
        duplicates = 0
        for msg in conversation:
            h = self._hash(msg)
            if h in seen:
                duplicates += 1
            else:
                seen.add(h)
        return duplicates
