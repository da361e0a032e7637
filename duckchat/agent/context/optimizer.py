#!/usr/bin/env python3
"""
Context Optimizer
=================
Façade over the compaction pipeline:

    ContextScorer -> Deduplicator -> ContextCompressor -> ContextTruncator

The optimizer keeps no state between calls. It receives a transcript,
returns a new one, and never touches the list it was given.
"""

import logging
from typing import List, Optional

from .compressor import ContextCompressor
from .deduplicator import Deduplicator
from .message import Message, transcript_size
from .scorer import ContextScorer
from .structs import ContextAnalysis, ContextBudget, OptimizationResult
from .truncator import ContextTruncator


class ContextOptimizer:
    """
    Decides when the transcript needs compaction and performs it.
    """

    def __init__(self, budget: Optional[ContextBudget] = None):
        self.budget = budget or ContextBudget()
        self.logger = logging.getLogger(__name__)

        self.scorer = ContextScorer()
        self.deduplicator = Deduplicator()
        self.compressor = ContextCompressor(self.budget)
        self.truncator = ContextTruncator(self.budget.max_bytes)

    def is_optimization_needed(self, conversation: List[Message]) -> bool:
        """
        True when the transcript is too big, too long, or too repetitive.
        """
        if transcript_size(conversation) > self.budget.max_bytes:
            return True
        if len(conversation) > self.budget.max_messages:
            return True
        return self.deduplicator.count_duplicates(conversation) > self.budget.max_duplicates

    def optimize(self, conversation: List[Message]) -> OptimizationResult:
        """
        Run the full pipeline. Deterministic for a given input.
        """
        if not conversation:
            return OptimizationResult(messages=[], bytes_saved=0)

        original_size = transcript_size(conversation)
        self.logger.info(
            "Optimizing context: %d messages, %d bytes", len(conversation), original_size
        )

        messages = self.scorer.score(conversation)
        messages = self.deduplicator.deduplicate(messages)
        messages = self.compressor.compress(messages)
        messages = self.truncator.truncate(messages)

        optimized_size = transcript_size(messages)
        bytes_saved = original_size - optimized_size

        if bytes_saved > 0:
            self.logger.info(
                "Context optimized: %d -> %d bytes (%.1f%% reduction)",
                original_size,
                optimized_size,
                bytes_saved / original_size * 100,
            )
        return OptimizationResult(messages=messages, bytes_saved=bytes_saved)

    # --- Analysis ---

    def analyze(self, conversation: List[Message]) -> ContextAnalysis:
        """Health report used by /context and by the history store."""
        scored = self.scorer.score(conversation)
        analysis = ContextAnalysis(
            total_messages=len(scored),
            total_size=transcript_size(scored),
            important_messages=sum(
                1 for m in scored if m.importance > self.budget.importance_threshold
            ),
            duplicate_count=self.deduplicator.count_duplicates(scored),
        )
        analysis.optimization_score = self._optimization_score(analysis)
        analysis.recommendations = self._recommendations(analysis)
        return analysis

    def _optimization_score(self, analysis: ContextAnalysis) -> float:
        score = 100.0
        max_bytes = self.budget.max_bytes

        # Penalize large context
        if analysis.total_size > max_bytes:
            score -= 30.0 * (analysis.total_size - max_bytes) / max_bytes

        # Penalize duplicates
        if analysis.duplicate_count and analysis.total_messages:
            score -= analysis.duplicate_count / analysis.total_messages * 20.0

        # Reward a transcript that is mostly important content
        if analysis.total_messages:
            if analysis.important_messages / analysis.total_messages > 0.5:
                score += 10.0

        return min(max(score, 0.0), 100.0)

    def _recommendations(self, analysis: ContextAnalysis) -> List[str]:
        recommendations = []
        if analysis.total_size > self.budget.max_bytes:
            recommendations.append(
                f"Context size ({analysis.total_size} bytes) exceeds the limit "
                f"({self.budget.max_bytes} bytes)"
            )
        if analysis.duplicate_count > self.budget.max_duplicates:
            recommendations.append(
                f"Found {analysis.duplicate_count} duplicate messages that could be removed"
            )
        if analysis.total_messages > 50:
            recommendations.append(
                "Consider starting a new conversation to improve performance"
            )
        if analysis.optimization_score < 70:
            recommendations.append(
                "Context optimization could significantly improve performance"
            )
        return recommendations
