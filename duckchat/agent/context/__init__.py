from .compressor import ContextCompressor
from .deduplicator import Deduplicator
from .message import ContextKind, Message, content_hash, transcript_size
from .optimizer import ContextOptimizer
from .scorer import ContextScorer
from .structs import ContextAnalysis, ContextBudget, OptimizationResult
from .truncator import ContextTruncator

__all__ = [
    "ContextAnalysis",
    "ContextBudget",
    "ContextCompressor",
    "ContextKind",
    "ContextOptimizer",
    "ContextScorer",
    "ContextTruncator",
    "Deduplicator",
    "Message",
    "OptimizationResult",
    "content_hash",
    "transcript_size",
]
