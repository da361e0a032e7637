"""
Session analytics.

ChatAnalytics listens on the EventBus and keeps running counters for one
chat session. It only observes; nothing here feeds back into protocol or
context decisions.
"""

import time
from typing import Any, Dict

from rich import box
from rich.console import Group
from rich.table import Table
from rich.text import Text

from duckchat.persistence.history import SessionAnalytics
from duckchat.protocol.bus import EventBus
from duckchat.protocol.events import EventTypes
from duckchat.ui.styles import create_duck_panel

# Rough estimation: 4 characters per token
CHARS_PER_TOKEN = 4


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{seconds / 60:.1f}m"


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


class ChatAnalytics:
    def __init__(self):
        self.session_start = time.time()

        # Chat interactions
        self.interactions_total = 0
        self.interactions_successful = 0
        self.interactions_failed = 0
        self.total_response_time = 0.0

        # Errors & recovery
        self.error_418_count = 0
        self.error_429_count = 0
        self.other_errors_count = 0
        self.vqd_refresh_count = 0
        self.header_refresh_count = 0

        # Content
        self.messages_total = 0
        self.user_messages = 0
        self.assistant_messages = 0
        self.context_messages = 0
        self.total_tokens_estimate = 0

        # Context optimization
        self.context_optimizations = 0
        self.context_compressions = 0
        self.bytes_saved = 0

        # Model
        self.model_changes = 0
        self.current_model = ""

    async def attach(self, bus: EventBus) -> None:
        """Subscribe to every event the tracker counts."""
        await bus.subscribe_many(
            {
                EventTypes.CHAT_INTERACTION: self._on_interaction,
                EventTypes.CHALLENGE_DETECTED: self._on_challenge,
                EventTypes.TOKEN_REFRESHED: self._on_token_refreshed,
                EventTypes.HEADERS_REFRESHED: self._on_headers_refreshed,
                EventTypes.MESSAGE_RECORDED: self._on_message,
                EventTypes.CONTEXT_OPTIMIZED: self._on_optimized,
                EventTypes.MODEL_SWITCHED: self._on_model_switched,
            }
        )

    # --- Handlers ---

    async def _on_interaction(self, data: Dict[str, Any]) -> None:
        self.record_interaction(
            data.get("duration", 0.0), data.get("success", False), data.get("error_type")
        )

    async def _on_challenge(self, data: Dict[str, Any]) -> None:
        self.record_challenge(str(data.get("challenge_type", "")))

    async def _on_token_refreshed(self, data: Any) -> None:
        self.vqd_refresh_count += 1

    async def _on_headers_refreshed(self, data: Any) -> None:
        self.header_refresh_count += 1

    async def _on_message(self, data: Dict[str, Any]) -> None:
        self.record_message(data.get("role", "user"), data.get("kind", ""), data.get("size", 0))

    async def _on_optimized(self, data: Dict[str, Any]) -> None:
        self.context_optimizations += 1
        self.context_compressions += data.get("compressed", 0)
        self.bytes_saved += data.get("bytes_saved", 0)

    async def _on_model_switched(self, data: Dict[str, Any]) -> None:
        if not data.get("initial"):
            self.model_changes += 1
        self.current_model = data.get("model", "")

    # --- Recording ---

    def record_interaction(self, duration: float, success: bool, error_type=None) -> None:
        self.interactions_total += 1
        self.total_response_time += duration
        if success:
            self.interactions_successful += 1
            return

        self.interactions_failed += 1
        # Challenges are already counted per occurrence
        if error_type != "challenge":
            self.other_errors_count += 1

    def record_challenge(self, challenge_type: str) -> None:
        if challenge_type == "418":
            self.error_418_count += 1
        elif challenge_type == "429":
            self.error_429_count += 1
        else:
            self.other_errors_count += 1

    def record_message(self, role: str, kind: str, size: int) -> None:
        self.messages_total += 1
        self.total_tokens_estimate += size // CHARS_PER_TOKEN
        if kind not in ("user", "assistant"):
            self.context_messages += 1
        elif role == "assistant":
            self.assistant_messages += 1
        else:
            self.user_messages += 1

    # --- Derived metrics ---

    @property
    def session_duration(self) -> float:
        return time.time() - self.session_start

    @property
    def average_response_time(self) -> float:
        if not self.interactions_total:
            return 0.0
        return self.total_response_time / self.interactions_total

    @property
    def success_rate(self) -> float:
        if not self.interactions_total:
            return 0.0
        return self.interactions_successful / self.interactions_total * 100

    @property
    def error_count(self) -> int:
        return self.error_418_count + self.error_429_count + self.other_errors_count

    def efficiency_score(self) -> float:
        """Weighted blend of success rate, latency and optimization use."""
        score = 0.0
        score += self.success_rate * 0.4

        avg = self.average_response_time
        if avg > 0:
            # Anything under 3 seconds scores full marks
            time_score = 100.0 if avg <= 3 else min(100.0, 100.0 * 3 / avg)
            score += time_score * 0.3

        if self.messages_total:
            optimization_score = 50.0
            if self.context_optimizations:
                optimization_score += 50.0 * self.context_optimizations / self.messages_total
            score += min(optimization_score, 100.0) * 0.3
        return score

    def messages_per_minute(self) -> float:
        minutes = self.session_duration / 60
        if minutes <= 0:
            return 0.0
        return self.user_messages / minutes

    def snapshot(self) -> SessionAnalytics:
        """Counters in the shape stored alongside a saved session."""
        return SessionAnalytics(
            message_count=self.messages_total,
            total_tokens=self.total_tokens_estimate,
            session_duration=self.session_duration,
            api_calls_count=self.interactions_total,
            error_count=self.error_count,
            optimizations_used=self.context_optimizations,
        )

    # --- Rendering ---

    def render(self):
        """Rich renderable with the session summary."""
        t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
        t.add_column("Metric", style="tech.cyan")
        t.add_column("Value", style="duck.text")

        t.add_row("Duration", format_duration(self.session_duration))
        t.add_row(
            "Messages",
            f"{self.messages_total} total ({self.user_messages} user, "
            f"{self.assistant_messages} AI, {self.context_messages} context)",
        )
        t.add_row("Estimated Tokens", f"~{self.total_tokens_estimate}")

        if self.interactions_total:
            t.add_row(
                "Interactions",
                f"{self.interactions_total} total ({self.interactions_successful} "
                f"successful, {self.interactions_failed} failed)",
            )
            t.add_row("Success Rate", f"{self.success_rate:.1f}%")
            t.add_row("Average Response", format_duration(self.average_response_time))

        if self.error_count:
            t.add_row(
                "Errors",
                f"418={self.error_418_count}, 429={self.error_429_count}, "
                f"Other={self.other_errors_count}",
                style="warning",
            )
        if self.vqd_refresh_count or self.header_refresh_count:
            t.add_row(
                "Refreshes",
                f"tokens={self.vqd_refresh_count}, headers={self.header_refresh_count}",
            )

        if self.context_optimizations:
            t.add_row("Optimizations", str(self.context_optimizations))
            t.add_row("Compressions", str(self.context_compressions))
            t.add_row("Bytes Saved", format_bytes(self.bytes_saved))

        if self.current_model:
            model = self.current_model
            if self.model_changes:
                model += f" ({self.model_changes} changes)"
            t.add_row("Model", model)

        footer = Text(
            f"Performance Score: {self.efficiency_score():.1f}% | "
            f"Messages/min: {self.messages_per_minute():.1f}",
            style="dim",
        )
        return create_duck_panel(Group(t, footer), title="Session Analytics")
