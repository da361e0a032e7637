from .history import (
    ConversationSession,
    HistoryManager,
    SessionAnalytics,
    SessionSummary,
    StorageStats,
    StoredMessage,
)

__all__ = [
    "ConversationSession",
    "HistoryManager",
    "SessionAnalytics",
    "SessionSummary",
    "StorageStats",
    "StoredMessage",
]
