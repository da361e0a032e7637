#!/usr/bin/env python3
"""
Context Compressor Module
=========================
Shrinks the bodies of low-importance messages.

Plain text is compacted losslessly enough to keep its meaning (whitespace
runs collapsed, blank and repeated lines dropped). File, URL and search
injections are replaced by a short summary: their header, a few key
lines and a count of the code blocks that were elided.
"""

import logging
import re
from dataclasses import replace
from typing import List, Tuple

from .message import Message, byte_size, content_hash
from .structs import ContextBudget

_INLINE_WHITESPACE = re.compile(r"[ \t\f\v]+")

KEY_LINE_MARKERS: Tuple[str, ...] = (
    "error",
    "function",
    "class",
    "import",
    "def ",
    "func ",
    "return",
    "struct",
    "interface",
)


class ContextCompressor:
    """Compresses messages scored below the importance threshold."""

    def __init__(self, budget: ContextBudget):
        self.budget = budget
        self.logger = logging.getLogger(__name__)

    def compress(self, conversation: List[Message]) -> List[Message]:
        result = []
        compressed_count = 0

        for msg in conversation:
            if self._is_candidate(msg):
                shrunk = self.compress_message(msg)
                if shrunk.compressed:
                    compressed_count += 1
                result.append(shrunk)
            else:
                result.append(msg)

        if compressed_count:
            self.logger.info("Compressed %d low-importance messages", compressed_count)
        return result

    def _is_candidate(self, msg: Message) -> bool:
        return (
            not msg.compressed
            and msg.importance < self.budget.importance_threshold
            and msg.size > self.budget.compression_min_bytes
        )

    def compress_message(self, msg: Message) -> Message:
        """
        Compressed copy of ``msg``, or ``msg`` itself when nothing shrinks.
        """
        if msg.compressed:
            return msg

        if msg.kind.is_injection:
            candidate = self.summarize_injection(msg.content)
        else:
            candidate = self.compact_text(msg.content)

        if byte_size(candidate) >= msg.size:
            return msg

        return replace(
            msg,
            content=candidate,
            compressed=True,
            content_hash=content_hash(candidate),
        )

    @staticmethod
    def compact_text(content: str) -> str:
        """Collapse inline whitespace and drop blank or repeated lines."""
        kept = []
        seen = set()
        for line in content.splitlines():
            collapsed = _INLINE_WHITESPACE.sub(" ", line).strip()
            if not collapsed or collapsed in seen:
                continue
            seen.add(collapsed)
            kept.append(collapsed)
        return "\n".join(kept)

    def summarize_injection(self, content: str) -> str:
        """
        Header + ``[Summary: ...]`` + at most ``summary_key_lines`` key lines.
        """
        lines = content.splitlines()
        if len(lines) < 3:
            return content

        # Tag line plus the "File:/URL:/Query:" source line when present
        header_count = 2 if ":" in lines[1] else 1
        header = lines[:header_count]

        key_lines = []
        fence_lines = 0
        for line in lines[header_count:]:
            trimmed = line.strip()
            if "```" in trimmed:
                fence_lines += 1
                continue
            if any(marker in trimmed for marker in KEY_LINE_MARKERS):
                key_lines.append(trimmed)

        summary = list(header)
        label = f"[Summary: {len(key_lines)} key lines"
        code_blocks = fence_lines // 2
        if code_blocks:
            label += f", {code_blocks} code blocks"
        summary.append(label + "]")

        limit = self.budget.summary_key_lines
        summary.extend(key_lines[:limit])
        if len(key_lines) > limit:
            summary.append("...")

        return "\n".join(summary)
