"""Shared fixtures: an in-process fake of the chat backend."""

import json
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from duckchat.agent.session import Session
from duckchat.config.settings import Settings
from duckchat.exceptions.protocol import TransportError
from duckchat.persistence.history import HistoryManager
from duckchat.protocol.bus import EventBus
from duckchat.providers.duckduckgo import SessionProtocolManager
from duckchat.providers.headers import StaticHeaderProvider

STATIC_HEADERS = {
    "fe_signals": "static-signals",
    "fe_version": "static-version",
    "vqd_hash_1": "static-hash",
    "user_agent": "TestAgent/1.0",
    "sec_ch_ua": '"Test";v="1"',
}


def sse_body(*messages: str, done: bool = True) -> str:
    lines = [f"data: {json.dumps({'role': 'assistant', 'message': m})}\n\n" for m in messages]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


class FakeBackend:
    """
    Scripted stand-in for the status and chat endpoints.

    ``chat_script`` is consumed front to back; the last entry repeats.
    """

    def __init__(self):
        self.chat_script: List[Tuple[int, str]] = [(200, sse_body("ok"))]
        self.chat_requests: List[Dict[str, Any]] = []
        self.bootstrap_count = 0
        self.issue_tokens = True
        self.page_status = 200
        self.page_html = "<html></html>"
        self.server: TestServer = None

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def _next_response(self) -> Tuple[int, str]:
        if len(self.chat_script) > 1:
            return self.chat_script.pop(0)
        return self.chat_script[0]

    async def status(self, request: web.Request) -> web.Response:
        self.bootstrap_count += 1
        headers = {}
        if self.issue_tokens:
            headers["x-vqd-hash-1"] = f"boot-{self.bootstrap_count}"
        return web.Response(status=200, headers=headers)

    async def chat(self, request: web.Request) -> web.Response:
        payload = await request.json()
        self.chat_requests.append({"headers": request.headers.copy(), "json": payload})

        status, body = self._next_response()
        headers = {}
        if status == 200:
            headers["x-vqd-4"] = f"rot-{len(self.chat_requests)}"
            return web.Response(
                status=200, text=body, content_type="text/event-stream", headers=headers
            )
        return web.Response(status=status, text=body)

    async def page(self, request: web.Request) -> web.Response:
        return web.Response(
            status=self.page_status, text=self.page_html, content_type="text/html"
        )


class CountingHeaderProvider(StaticHeaderProvider):
    def __init__(self, values=None):
        super().__init__(values or STATIC_HEADERS)
        self.fetch_count = 0

    async def fetch(self, http):
        self.fetch_count += 1
        return await super().fetch(http)


class FailingHeaderProvider(StaticHeaderProvider):
    def __init__(self, values=None):
        super().__init__(values or STATIC_HEADERS)

    async def fetch(self, http):
        raise TransportError("header page unreachable")


class EventRecorder:
    """Collects every payload emitted for the events it is attached to."""

    def __init__(self):
        self.events: List[Tuple[Any, Any]] = []

    async def attach(self, bus: EventBus, *event_types) -> None:
        for event_type in event_types:
            await bus.subscribe(event_type, self._make_handler(event_type))

    def _make_handler(self, event_type):
        async def handler(data):
            self.events.append((event_type, data))

        return handler

    def count(self, event_type) -> int:
        return sum(1 for kind, _ in self.events if kind == event_type)


@pytest_asyncio.fixture
async def backend():
    fake = FakeBackend()
    app = web.Application()
    app.router.add_get("/duckchat/v1/status", fake.status)
    app.router.add_post("/duckchat/v1/chat", fake.chat)
    app.router.add_get("/page", fake.page)

    async with TestServer(app) as server:
        fake.server = server
        yield fake


@pytest.fixture
def settings_for(tmp_path):
    """Factory building Settings that point at a FakeBackend."""

    def build(fake: FakeBackend, **overrides) -> Settings:
        values = dict(
            status_url=fake.url("/duckchat/v1/status"),
            chat_url=fake.url("/duckchat/v1/chat"),
            page_url=fake.url("/page"),
            challenge_backoff=0.0,
            history_dir=tmp_path / "history",
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return build


@pytest.fixture
def bus():
    return EventBus()


@pytest_asyncio.fixture
async def make_session(backend, settings_for, bus, tmp_path):
    """Factory for opened sessions wired to the fake backend."""
    opened = []

    async def build(**overrides):
        settings = settings_for(backend, **overrides)
        manager = SessionProtocolManager(
            settings, header_provider=CountingHeaderProvider(), bus=bus
        )
        history = HistoryManager(tmp_path / "history")
        session = Session(settings, manager=manager, history=history, bus=bus)
        await session.open()
        opened.append(session)
        return session

    yield build

    for session in opened:
        await session.close()
