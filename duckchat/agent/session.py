"""
Chat Session
============
One conversation with the backend: the transcript, the active model and
the protocol manager, serialized behind a single lock.

A turn runs entirely under the lock:

    append user turn -> optimize (when needed) -> send -> stream -> append reply
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import AsyncIterator, List, Optional

from duckchat.agent.context.message import ContextKind, Message
from duckchat.agent.context.optimizer import ContextOptimizer
from duckchat.analytics.tracker import ChatAnalytics
from duckchat.config.settings import Settings, get_settings
from duckchat.exceptions.config import ConfigError
from duckchat.exceptions.persistence import PersistenceError
from duckchat.exceptions.protocol import ExhaustedRetries, ProtocolError
from duckchat.models import normalize_alias, resolve_model
from duckchat.persistence.history import (
    ConversationSession,
    HistoryManager,
    new_session_id,
)
from duckchat.protocol.bus import EventBus
from duckchat.protocol.events import EventTypes
from duckchat.providers.duckduckgo import SessionProtocolManager


class Session:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        manager: Optional[SessionProtocolManager] = None,
        optimizer: Optional[ContextOptimizer] = None,
        history: Optional[HistoryManager] = None,
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus or EventBus()
        self.manager = manager or SessionProtocolManager(self.settings, bus=self.bus)
        self.optimizer = optimizer or ContextOptimizer(self.settings.context_budget())
        self.history = history or HistoryManager(
            self.settings.history_dir,
            max_sessions=self.settings.history_max_sessions,
            retention_days=self.settings.history_retention_days,
            optimizer=self.optimizer,
        )
        self.analytics = ChatAnalytics()
        self.logger = logging.getLogger(__name__)

        self.model_alias = self.settings.default_model
        self.transcript: List[Message] = []
        self.session_id = new_session_id()
        self.started_at = datetime.now()
        self._lock = asyncio.Lock()
        self._analytics_attached = False

    @property
    def model(self) -> str:
        """Backend model id for the active alias."""
        return resolve_model(self.model_alias)

    # --- Lifecycle ---

    async def open(self) -> None:
        if not self._analytics_attached:
            await self.analytics.attach(self.bus)
            self._analytics_attached = True
        async with self._lock:
            await self.manager.open(self.model)
        await self.bus.emit(
            EventTypes.MODEL_SWITCHED, {"model": self.model_alias, "initial": True}
        )

    async def close(self) -> None:
        async with self._lock:
            await self.manager.close()

    async def __aenter__(self) -> "Session":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --- Conversation ---

    def _has_user_turn(self) -> bool:
        return any(m.kind is ContextKind.USER for m in self.transcript)

    async def _record(self, message: Message) -> None:
        self.transcript.append(message)
        await self.bus.emit(
            EventTypes.MESSAGE_RECORDED,
            {"role": message.role, "kind": message.kind.value, "size": message.size},
        )

    async def _optimize_if_needed(self, pending: Message) -> None:
        """Compact everything before ``pending``, which is always kept last."""
        if not self.optimizer.is_optimization_needed(self.transcript):
            return

        earlier = [m for m in self.transcript if m is not pending]
        result = self.optimizer.optimize(earlier)
        compressed = sum(
            1 for m in result.messages if m.compressed
        ) - sum(1 for m in earlier if m.compressed)
        self.transcript = result.messages + [pending]
        await self.bus.emit(
            EventTypes.CONTEXT_OPTIMIZED,
            {
                "bytes_saved": result.bytes_saved,
                "compressed": max(compressed, 0),
                "messages": len(self.transcript),
            },
        )

    async def stream(self, text: str) -> AsyncIterator[str]:
        """
        Run one turn and yield the reply as it streams in.

        The user turn stays in the transcript when sending fails; the
        protocol error is re-raised.
        """
        if not text.strip():
            return

        async with self._lock:
            content = text
            if self.settings.global_prompt and not self._has_user_turn():
                content = f"{self.settings.global_prompt}\n\n{text}"
            turn = Message.user(content)
            await self._record(turn)
            await self._optimize_if_needed(turn)

            started = time.monotonic()
            try:
                chat_stream = await self.manager.send(self.transcript, self.model)
            except ProtocolError as e:
                error_type = "challenge" if isinstance(e, ExhaustedRetries) else "other"
                await self.bus.emit(
                    EventTypes.CHAT_INTERACTION,
                    {
                        "duration": time.monotonic() - started,
                        "success": False,
                        "error_type": error_type,
                    },
                )
                await self.bus.emit(EventTypes.ERROR, {"message": str(e)})
                raise

            parts = []
            try:
                async for chunk in chat_stream:
                    parts.append(chunk)
                    await self.bus.emit(EventTypes.STREAM_CHUNK, {"chunk": chunk})
                    yield chunk
            finally:
                await chat_stream.aclose()

            reply = "".join(parts)
            await self.bus.emit(
                EventTypes.CHAT_INTERACTION,
                {"duration": time.monotonic() - started, "success": True},
            )

            for warning in chat_stream.warnings:
                await self.bus.emit(EventTypes.WARNING, {"message": str(warning)})
            if chat_stream.error is not None:
                await self.bus.emit(
                    EventTypes.WARNING,
                    {"message": f"Response cut short: {chat_stream.error}"},
                )

            if reply:
                await self._record(Message.assistant(reply))
            else:
                self.logger.warning("Backend returned an empty response")
            await self.bus.emit(EventTypes.RESPONSE_COMPLETE, {"content": reply})

    async def ask(self, text: str) -> str:
        """Run one turn and return the complete reply."""
        parts = [chunk async for chunk in self.stream(text)]
        return "".join(parts)

    async def add_context(self, message: Message) -> None:
        """Append a file/URL/search injection to the transcript."""
        async with self._lock:
            await self._record(message)

    async def change_model(self, choice: str) -> str:
        """Switch the model alias. Returns the canonical alias."""
        alias = normalize_alias(choice)
        if alias is None:
            raise ConfigError(
                f"Unknown model: {choice}", field_name="model", invalid_value=choice
            )

        async with self._lock:
            self.model_alias = alias
            self.manager.model = self.model
        await self.bus.emit(EventTypes.MODEL_SWITCHED, {"model": alias})
        self.logger.info("Model changed to %s", alias)
        return alias

    # --- History ---

    def snapshot(self) -> ConversationSession:
        return ConversationSession.from_transcript(
            self.transcript,
            model=self.model,
            session_id=self.session_id,
            start_time=self.started_at,
            analytics=self.analytics.snapshot(),
        )

    async def save(self) -> bool:
        """Persist the transcript. Failures are logged, never raised."""
        if not self.transcript:
            return False
        try:
            await asyncio.to_thread(self.history.save_session, self.snapshot())
        except PersistenceError as e:
            self.logger.warning("Failed to save session: %s", e)
            return False
        return True

    async def clear(self) -> bool:
        """
        Save, then start a fresh conversation with a new token.

        Returns False when there was nothing to clear.
        """
        async with self._lock:
            if not self.transcript:
                self.logger.info("Chat is already empty")
                return False

            await self.save()
            self.transcript = []
            self.session_id = new_session_id()
            self.started_at = datetime.now()
            await self.manager.refresh_token()
        await self.bus.emit(EventTypes.SESSION_CLEARED, {})
        return True

    async def restore(self, session_id: str) -> int:
        """Replace the transcript with a saved one. Returns its length."""
        messages = await asyncio.to_thread(self.history.restore_session, session_id)
        async with self._lock:
            self.transcript = messages
        return len(messages)
