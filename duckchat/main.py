#!/usr/bin/env python3
"""
Application Starter for duckchat
================================

Interactive REPL over a single chat Session:
1. Loads settings and configures logging
2. Opens the session (headers + token bootstrap)
3. Reads prompts, streams replies, dispatches slash commands
4. Saves the conversation on exit
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from pydantic import ValidationError
from rich import box
from rich.table import Table

from duckchat.agent.context.message import Message
from duckchat.agent.session import Session
from duckchat.analytics.tracker import format_bytes
from duckchat.config.settings import Settings, get_settings
from duckchat.exceptions import ConfigError, DuckChatError, PersistenceError
from duckchat.models import MODEL_ALIASES, short_name
from duckchat.protocol.events import EventTypes
from duckchat.ui.styles import console, create_duck_panel
from duckchat.utils.logger import EventLogger, setup_logging

logger = logging.getLogger(__name__)

COMMANDS = {
    "/help": "Show this help",
    "/clear": "Save and start a new conversation",
    "/model <alias>": "Switch model (no argument lists them)",
    "/file <path>": "Add a local file to the context",
    "/context": "Show context size and optimization report",
    "/stats": "Show session analytics",
    "/history [text]": "List saved sessions, or search them",
    "/load <id>": "Restore a saved session",
    "/quit": "Save and exit",
}


class ChatCLI:
    """prompt_toolkit REPL bound to one Session."""

    def __init__(self, session: Session):
        self.session = session
        self._prompt: Optional[PromptSession] = None
        self._running = False

    async def start(self) -> None:
        await self.session.bus.subscribe(EventTypes.WARNING, self._handle_warning)
        await self.session.bus.subscribe(
            EventTypes.CONTEXT_OPTIMIZED, self._handle_optimized
        )
        await self.session.open()

    # --- Event handlers ---

    async def _handle_warning(self, data: Dict[str, Any]) -> None:
        console.print(f"[warning]⚠️  {data.get('message', data)}[/]")

    async def _handle_optimized(self, data: Dict[str, Any]) -> None:
        console.print(
            f"[dim]Context optimized: {data.get('bytes_saved', 0)} bytes saved[/]"
        )

    # --- REPL ---

    def _prompt_text(self) -> str:
        return f"[{short_name(self.session.model)}] > "

    async def run(self) -> None:
        self._running = True
        if self._prompt is None:
            self._prompt = PromptSession(multiline=False)
        console.print(
            create_duck_panel(
                "Type a message and press Enter. /help lists commands.",
                title="🦆 DuckChat",
            )
        )

        while self._running:
            try:
                with patch_stdout():
                    user_text = await self._prompt.prompt_async(self._prompt_text())
            except (EOFError, KeyboardInterrupt):
                break

            text = user_text.strip()
            if not text:
                continue
            if text.startswith("/"):
                await self.dispatch(text)
                continue
            await self.chat(text)

        await self.session.save()

    async def chat(self, text: str) -> None:
        try:
            async for chunk in self.session.stream(text):
                console.print(chunk, end="", markup=False, highlight=False)
        except DuckChatError as e:
            logger.debug("Turn failed", exc_info=True)
            console.print(f"\n[error]🚫 {e.message}[/]")
            console.print(f"[dim]{e.user_hint}[/]")
            return
        console.print()

    async def dispatch(self, line: str) -> None:
        command, _, arg = line.partition(" ")
        try:
            await self._run_command(command.lower(), arg.strip())
        except DuckChatError as e:
            logger.debug("Command %s failed", command, exc_info=True)
            console.print(f"[error]🚫 {e.message}[/]")
            console.print(f"[dim]{e.user_hint}[/]")

    async def _run_command(self, command: str, arg: str) -> None:
        if command in ("/quit", "/exit", "/q"):
            self._running = False
        elif command == "/help":
            self.show_help()
        elif command == "/clear":
            if await self.session.clear():
                console.print("[success]Chat history and context cleared[/]")
            else:
                console.print("[dim]Chat is already empty[/]")
        elif command == "/model":
            await self.change_model(arg)
        elif command == "/file":
            await self.add_file(arg)
        elif command == "/context":
            self.show_context()
        elif command == "/stats":
            console.print(self.session.analytics.render())
        elif command == "/history":
            await self.show_history(arg)
        elif command == "/load":
            await self.load(arg)
        else:
            console.print(f"[error]Unknown command: {command}[/]")

    # --- Commands ---

    def show_help(self) -> None:
        t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
        t.add_column("Command", style="tech.cyan")
        t.add_column("Description", style="duck.text")
        for command, description in COMMANDS.items():
            t.add_row(command, description)
        console.print(create_duck_panel(t, title="Commands"))

    async def change_model(self, choice: str) -> None:
        if not choice:
            t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
            t.add_column("ID", style="tech.cyan", justify="right")
            t.add_column("Alias", style="duck.text")
            t.add_column("Model", style="dim")
            for idx, (alias, model_id) in enumerate(MODEL_ALIASES.items(), 1):
                marker = " (active)" if alias == self.session.model_alias else ""
                t.add_row(str(idx), alias + marker, model_id)
            console.print(create_duck_panel(t, title="Models"))
            return
        try:
            alias = await self.session.change_model(choice)
        except ConfigError as e:
            console.print(f"[error]🚫 {e.message}[/]")
            return
        console.print(f"[success]Model changed to {alias}[/]")

    async def add_file(self, raw_path: str) -> None:
        if not raw_path:
            console.print("[error]Usage: /file <path>[/]")
            return
        path = Path(raw_path).expanduser()
        try:
            body = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[error]🚫 Cannot read {path}: {e}[/]")
            return
        await self.session.add_context(Message.file_context(str(path), body))
        console.print(f"[success]Added {path} to the context[/]")

    def show_context(self) -> None:
        analysis = self.session.optimizer.analyze(self.session.transcript)
        t = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
        t.add_column("Metric", style="tech.cyan")
        t.add_column("Value", style="duck.text")
        t.add_row("Messages", str(analysis.total_messages))
        t.add_row("Size", f"{analysis.total_size} bytes")
        t.add_row("Important", str(analysis.important_messages))
        t.add_row("Duplicates", str(analysis.duplicate_count))
        t.add_row("Score", f"{analysis.optimization_score:.1f}/100")
        for recommendation in analysis.recommendations:
            t.add_row("Tip", recommendation, style="warning")
        console.print(create_duck_panel(t, title="Context"))

    async def show_history(self, query: str) -> None:
        history = self.session.history
        try:
            if query:
                sessions = await asyncio.to_thread(history.search_sessions, query)
            else:
                sessions = await asyncio.to_thread(history.list_sessions)
            stats = await asyncio.to_thread(history.get_storage_stats)
        except PersistenceError as e:
            console.print(f"[error]🚫 {e.message}[/]")
            return

        if not sessions:
            console.print("[dim]No saved sessions[/]")
            return

        t = Table(box=box.SIMPLE, padding=(0, 2))
        t.add_column("ID", style="tech.cyan")
        t.add_column("Started", style="duck.text")
        t.add_column("Model", style="dim")
        t.add_column("Messages", justify="right")
        for saved in sessions[:20]:
            t.add_row(
                saved.id,
                f"{saved.start_time:%Y-%m-%d %H:%M}",
                short_name(saved.model),
                str(saved.analytics.message_count),
            )
        console.print(create_duck_panel(t, title="History"))
        console.print(
            f"[dim]{stats.total_sessions} sessions stored, "
            f"{format_bytes(stats.total_size_bytes)} on disk[/]"
        )

    async def load(self, session_id: str) -> None:
        if not session_id:
            console.print("[error]Usage: /load <id>[/]")
            return
        try:
            count = await self.session.restore(session_id)
        except PersistenceError as e:
            console.print(f"[error]🚫 {e.message}[/]")
            return
        console.print(f"[success]Restored session with {count} messages[/]")


async def run_cli(settings: Settings) -> int:
    session = Session(settings)
    cli = ChatCLI(session)
    await EventLogger(session.bus).start()
    try:
        await cli.start()
        await cli.run()
    except DuckChatError as e:
        console.print(f"[error]🚫 {e.message}[/]")
        console.print(f"[dim]{e.user_hint}[/]")
        return 1
    finally:
        await session.close()
    return 0


def main() -> None:
    try:
        settings = get_settings()
    except (ConfigError, ValidationError) as e:
        print(f"❌ Configuration Error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings.log_level, settings.log_file)

    try:
        sys.exit(asyncio.run(run_cli(settings)))
    except KeyboardInterrupt:
        print("\n[duckchat] Interrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
