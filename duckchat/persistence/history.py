"""
Conversation history store.

Each finished conversation is written as ``session_<id>.json.gz`` under the
storage directory. Old and excess sessions are pruned after every save.
"""

import gzip
import logging
import uuid
import zlib
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from duckchat.agent.context.message import ContextKind, Message
from duckchat.agent.context.optimizer import ContextOptimizer
from duckchat.exceptions.persistence import PersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"

TOPIC_KEYWORDS = (
    "code", "function", "api", "database", "error", "bug", "fix",
    "performance", "security", "optimization", "algorithm", "data",
    "server", "client", "frontend", "backend", "deploy", "test",
    "python", "go", "javascript", "typescript", "sql", "json",
    "docker", "kubernetes", "aws", "cloud", "web", "mobile",
)


def new_session_id() -> str:
    return f"{datetime.now():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


class StoredMessage(BaseModel):
    """On-disk form of a transcript entry."""

    kind: ContextKind
    content: str
    timestamp: float
    importance: float = 0.0
    compressed: bool = False

    @property
    def role(self) -> str:
        return "assistant" if self.kind is ContextKind.ASSISTANT else "user"

    @classmethod
    def from_message(cls, message: Message) -> "StoredMessage":
        return cls(
            kind=message.kind,
            content=message.content,
            timestamp=message.timestamp,
            importance=message.importance,
            compressed=message.compressed,
        )

    def to_message(self) -> Message:
        return Message(
            kind=self.kind,
            content=self.content,
            timestamp=self.timestamp,
            importance=self.importance,
            compressed=self.compressed,
        )


class SessionAnalytics(BaseModel):
    message_count: int = 0
    total_tokens: int = 0
    session_duration: float = 0.0
    api_calls_count: int = 0
    error_count: int = 0
    optimizations_used: int = 0


class ConversationSession(BaseModel):
    """A complete saved conversation."""

    id: str = Field(default_factory=new_session_id)
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    model: str = ""
    messages: List[StoredMessage] = Field(default_factory=list)
    optimized_messages: List[StoredMessage] = Field(default_factory=list)
    analytics: SessionAnalytics = Field(default_factory=SessionAnalytics)
    compressed: bool = False
    version: str = FORMAT_VERSION

    @classmethod
    def from_transcript(
        cls,
        messages: List[Message],
        model: str,
        session_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        analytics: Optional[SessionAnalytics] = None,
    ) -> "ConversationSession":
        return cls(
            id=session_id or new_session_id(),
            start_time=start_time or datetime.now(),
            model=model,
            messages=[StoredMessage.from_message(m) for m in messages],
            analytics=analytics or SessionAnalytics(),
        )


class SessionSummary(BaseModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: float = 0.0
    message_count: int = 0
    model: str = ""
    first_message: str = ""
    last_message: str = ""
    key_topics: List[str] = Field(default_factory=list)


class StorageStats(BaseModel):
    total_sessions: int = 0
    compressed_sessions: int = 0
    total_size_bytes: int = 0
    oldest_session: Optional[datetime] = None
    newest_session: Optional[datetime] = None


def _truncate(text: str, max_length: int = 100) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class HistoryManager:
    """
    Saves, lists, searches and restores conversation sessions.

    All methods raise PersistenceError on I/O or decoding failures, except
    the listing helpers which skip unreadable files with a warning.
    """

    def __init__(
        self,
        storage_dir: Union[str, Path],
        max_sessions: int = 100,
        retention_days: int = 30,
        compression_level: int = 6,
        optimizer: Optional[ContextOptimizer] = None,
    ):
        self.storage_dir = Path(storage_dir).expanduser()
        self.max_sessions = max_sessions
        self.retention_days = retention_days
        self.compression_level = compression_level
        self.optimizer = optimizer or ContextOptimizer()

    # --- Paths ---

    def _path(self, session_id: str, compressed: bool = True) -> Path:
        suffix = ".json.gz" if compressed else ".json"
        return self.storage_dir / f"session_{session_id}{suffix}"

    def _session_files(self) -> List[Path]:
        if not self.storage_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.storage_dir.iterdir()
            if p.is_file()
            and p.name.startswith("session_")
            and (p.name.endswith(".json.gz") or p.name.endswith(".json"))
        )

    # --- Save / Load ---

    def save_session(self, session: ConversationSession) -> Path:
        """Write ``session`` (optimizing a copy of its messages when needed)."""
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(
                f"Failed to create storage directory: {e}",
                file_path=str(self.storage_dir),
                operation="save",
                original_error=e,
            ) from e

        session.end_time = datetime.now()
        session.version = FORMAT_VERSION
        session.analytics.session_duration = (
            session.end_time - session.start_time
        ).total_seconds()
        session.analytics.message_count = len(session.messages)

        transcript = [m.to_message() for m in session.messages]
        if self.optimizer.is_optimization_needed(transcript):
            logger.info("Optimizing session before saving...")
            result = self.optimizer.optimize(transcript)
            session.optimized_messages = [
                StoredMessage.from_message(m) for m in result.messages
            ]
            session.analytics.optimizations_used += 1
            logger.info("Session optimized for storage (saved %d bytes)", result.bytes_saved)

        path = self._path(session.id)
        session.compressed = True
        try:
            with gzip.open(path, "wt", encoding="utf-8", compresslevel=self.compression_level) as f:
                f.write(session.model_dump_json(indent=2))
        except OSError as e:
            raise PersistenceError(
                f"Failed to save session: {e}",
                file_path=str(path),
                operation="save",
                original_error=e,
            ) from e

        logger.info("Session saved: %s", path)
        self.cleanup_old_sessions()
        return path

    def load_session(self, session_id: str) -> ConversationSession:
        """Load a session, trying the gzip file before the plain JSON one."""
        compressed_path = self._path(session_id)
        if compressed_path.exists():
            return self._read(compressed_path)

        plain_path = self._path(session_id, compressed=False)
        if plain_path.exists():
            return self._read(plain_path)

        raise PersistenceError(
            f"Session not found: {session_id}",
            file_path=str(compressed_path),
            operation="load",
        )

    def _read(self, path: Path) -> ConversationSession:
        try:
            if path.name.endswith(".gz"):
                with gzip.open(path, "rt", encoding="utf-8") as f:
                    raw = f.read()
            else:
                raw = path.read_text(encoding="utf-8")
            return ConversationSession.model_validate_json(raw)
        except (OSError, EOFError, UnicodeDecodeError, zlib.error, ValidationError) as e:
            raise PersistenceError(
                f"Failed to load session {path.name}: {e}",
                file_path=str(path),
                operation="load",
                original_error=e,
            ) from e

    def _read_all(self) -> List[ConversationSession]:
        sessions = []
        for path in self._session_files():
            try:
                sessions.append(self._read(path))
            except PersistenceError as e:
                logger.warning("Failed to load session %s: %s", path.name, e)
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions

    # --- Queries ---

    def list_sessions(self) -> List[ConversationSession]:
        """Session metadata, newest first. Message bodies are dropped."""
        sessions = self._read_all()
        for session in sessions:
            session.messages = []
            session.optimized_messages = []
        return sessions

    def search_sessions(self, query: str) -> List[ConversationSession]:
        """Sessions with a message containing ``query`` (case-insensitive)."""
        needle = query.lower()
        return [
            session
            for session in self._read_all()
            if any(needle in m.content.lower() for m in session.messages)
        ]

    def restore_session(self, session_id: str) -> List[Message]:
        """Transcript of a saved session, preferring its optimized form."""
        session = self.load_session(session_id)
        if session.optimized_messages:
            logger.info(
                "Restored optimized session with %d messages",
                len(session.optimized_messages),
            )
            return [m.to_message() for m in session.optimized_messages]

        logger.info("Restored session with %d messages", len(session.messages))
        return [m.to_message() for m in session.messages]

    def get_session_summary(self, session_id: str) -> SessionSummary:
        session = self.load_session(session_id)
        summary = SessionSummary(
            id=session.id,
            start_time=session.start_time,
            end_time=session.end_time,
            duration=session.analytics.session_duration,
            message_count=session.analytics.message_count,
            model=session.model,
        )

        for msg in session.messages:
            if msg.role == "user":
                if not summary.first_message:
                    summary.first_message = _truncate(msg.content)
                summary.last_message = _truncate(msg.content)

        summary.key_topics = self.extract_key_topics(session.messages)
        return summary

    @staticmethod
    def extract_key_topics(messages: List[StoredMessage], limit: int = 5) -> List[str]:
        """Keywords seen in at least two messages, most frequent first."""
        counts: Counter = Counter()
        for msg in messages:
            content = msg.content.lower()
            for keyword in TOPIC_KEYWORDS:
                if keyword in content:
                    counts[keyword] += 1

        frequent = [(topic, n) for topic, n in counts.items() if n >= 2]
        frequent.sort(key=lambda item: item[1], reverse=True)
        return [topic for topic, _ in frequent[:limit]]

    def get_storage_stats(self) -> StorageStats:
        sessions = self.list_sessions()
        stats = StorageStats(total_sessions=len(sessions))

        for path in self._session_files():
            try:
                stats.total_size_bytes += path.stat().st_size
            except OSError:
                continue
            if path.name.endswith(".gz"):
                stats.compressed_sessions += 1

        if sessions:
            stats.oldest_session = min(s.start_time for s in sessions)
            stats.newest_session = max(s.start_time for s in sessions)
        return stats

    # --- Maintenance ---

    def _remove(self, session_id: str) -> None:
        for compressed in (True, False):
            path = self._path(session_id, compressed=compressed)
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove %s: %s", path, e)

    def cleanup_old_sessions(self) -> int:
        """Drop sessions past retention, then any beyond ``max_sessions``."""
        sessions = self.list_sessions()
        cutoff = datetime.now() - timedelta(days=self.retention_days)

        kept = []
        removed = 0
        for session in sessions:
            if session.start_time < cutoff:
                self._remove(session.id)
                removed += 1
            else:
                kept.append(session)

        for session in kept[self.max_sessions:]:
            self._remove(session.id)
            removed += 1

        if removed:
            logger.info("Cleaned up %d old sessions", removed)
        return removed
