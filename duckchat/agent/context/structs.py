from dataclasses import dataclass, field
from typing import List

from .message import Message


@dataclass(frozen=True)
class ContextBudget:
    """
    Size budget consulted by the context optimizer. Never mutated.

    Attributes:
        max_bytes: Hard ceiling for the summed UTF-8 size of all bodies.
        importance_threshold: Messages scored below this are compression candidates.
        target_compression_ratio: Share of content compaction aims to keep.
        max_messages: Transcript length that triggers optimization on its own.
        max_duplicates: Duplicate count that triggers optimization on its own.
        compression_min_bytes: Bodies at or under this size are never compressed.
        summary_key_lines: Key lines kept when summarizing a context injection.
    """

    max_bytes: int = 50_000
    importance_threshold: float = 0.3
    target_compression_ratio: float = 0.7
    max_messages: int = 30
    max_duplicates: int = 3
    compression_min_bytes: int = 500
    summary_key_lines: int = 5


@dataclass
class OptimizationResult:
    """Transcript after one optimization pass plus the bytes it shed."""

    messages: List[Message]
    bytes_saved: int


@dataclass
class ContextAnalysis:
    """
    Snapshot of the transcript's health.
    Used by the /context command and by the persistence layer.
    """

    total_messages: int = 0
    total_size: int = 0
    important_messages: int = 0
    duplicate_count: int = 0
    optimization_score: float = 100.0
    recommendations: List[str] = field(default_factory=list)
