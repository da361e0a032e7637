"""
DuckDuckGo AI chat protocol manager.

Owns the HTTP transport, the session token and the anti-automation
headers for one conversation. ``send`` turns a transcript into a
streaming ``ChatStream``, transparently riding out bot/rate challenges
with a bounded number of token refreshes.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)
from yarl import URL

from duckchat.agent.context.message import Message
from duckchat.config.settings import Settings
from duckchat.exceptions.protocol import (
    ExhaustedRetries,
    ProtocolError,
    TokenAcquisitionError,
    TransientChallenge,
    TransportError,
)
from duckchat.protocol.bus import EventBus
from duckchat.protocol.events import EventTypes

from .challenge import ChallengeDetector, ChallengeKind
from .headers import HeaderProvider, PageHeaderProvider, StaticHeaderProvider
from .sse import ChatStream
from .token_store import TokenStore

logger = logging.getLogger(__name__)

COOKIE_URL = URL("https://duckduckgo.com/")
SEED_COOKIES = {"5": "1", "dcm": "3", "dcs": "1"}


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SENDING = "sending"
    CHALLENGED = "challenged"
    REFRESHING = "refreshing"
    FAILED = "failed"
    CLOSED = "closed"


def build_header_provider(settings: Settings) -> HeaderProvider:
    """Page scraper backed by the on-disk last-known-good header set."""
    static = StaticHeaderProvider(settings.load_fallback_headers())
    return PageHeaderProvider(
        settings.page_url, fallback=static, timeout=settings.header_timeout
    )


class SessionProtocolManager:
    """
    Token rotation, challenge handling and streaming for the chat backend.

    Not safe for concurrent ``send`` calls; the owning Session serializes
    turns.
    """

    def __init__(
        self,
        settings: Settings,
        header_provider: Optional[HeaderProvider] = None,
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings
        self.header_provider = header_provider or build_header_provider(settings)
        self.bus = bus
        self.tokens = TokenStore()
        self.detector = ChallengeDetector()
        self.state = SessionState.UNINITIALIZED
        self.model: Optional[str] = None
        self._http: Optional[aiohttp.ClientSession] = None

    # --- Lifecycle ---

    def _create_http_session(self) -> aiohttp.ClientSession:
        jar = aiohttp.CookieJar()
        jar.update_cookies(SEED_COOKIES, response_url=COOKIE_URL)
        return aiohttp.ClientSession(cookie_jar=jar)

    async def open(self, initial_model: str) -> None:
        """
        Load anti-automation headers and acquire the first token.

        Raises:
            TokenAcquisitionError: bootstrap yielded no token.
        """
        if self._http is None or self._http.closed:
            self._http = self._create_http_session()

        await self._load_headers()
        token = await self._bootstrap()
        self.tokens.rotate(token)
        self.tokens.reset_retries()
        self.model = initial_model
        self.state = SessionState.READY
        logger.info("Session opened with model %s", initial_model)

    async def refresh_token(self) -> None:
        """Start over with a freshly bootstrapped token."""
        if not self.is_ready:
            raise ProtocolError(f"Session is not open (state: {self.state.value})")
        self.tokens.rotate(await self._bootstrap())
        self.tokens.reset_retries()
        self.state = SessionState.READY
        await self._emit(EventTypes.TOKEN_REFRESHED, {})

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None
        self.state = SessionState.CLOSED

    async def __aenter__(self) -> "SessionProtocolManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_ready(self) -> bool:
        # FAILED is terminal for one call only
        return self.state in (SessionState.READY, SessionState.FAILED)

    # --- Sending ---

    async def send(
        self, transcript: List[Message], model: Optional[str] = None
    ) -> ChatStream:
        """
        POST the transcript and return the streaming response.

        Raises:
            ExhaustedRetries: every retry of a challenged call failed.
            TokenAcquisitionError: re-bootstrap after a challenge failed.
            TransportError: network failure.
            ProtocolError: any other non-200 status.
        """
        if not self.is_ready:
            raise ProtocolError(f"Session is not open (state: {self.state.value})")

        model = model or self.model
        payload = self.build_payload(transcript, model)

        self.tokens.reset_retries()
        self.state = SessionState.SENDING
        last_challenge: Optional[TransientChallenge] = None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_fixed(self.settings.challenge_backoff),
            retry=retry_if_exception_type(TransientChallenge),
            before_sleep=self._log_before_sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    if last_challenge is not None:
                        await self._refresh_after_challenge(last_challenge)
                    try:
                        stream = await self._post(payload)
                    except TransientChallenge as challenge:
                        last_challenge = challenge
                        self.state = SessionState.CHALLENGED
                        await self._emit(
                            EventTypes.CHALLENGE_DETECTED,
                            {
                                "challenge_type": challenge.challenge_type,
                                "status_code": challenge.status_code,
                                "retry_count": self.tokens.retry_count,
                            },
                        )
                        raise
                    self.state = SessionState.READY
                    return stream
        except TransientChallenge as e:
            self.state = SessionState.FAILED
            attempts = self.tokens.retry_count + 1
            logger.error("Giving up after %d attempts: %s", attempts, e)
            raise ExhaustedRetries(
                f"Request still challenged after {self.tokens.retry_count} retries",
                attempts=attempts,
                last_challenge=e,
                original_error=e,
                status_code=e.status_code,
            ) from e
        except ProtocolError:
            self.state = SessionState.FAILED
            raise

    @staticmethod
    def build_payload(transcript: List[Message], model: Optional[str]) -> Dict[str, Any]:
        return {
            "model": model,
            "metadata": {
                "toolChoice": {
                    "NewsSearch": False,
                    "VideosSearch": False,
                    "LocalSearch": False,
                    "WeatherForecast": False,
                }
            },
            "messages": [m.to_dict() for m in transcript],
            "canUseTools": True,
            "canUseApproxLocation": True,
        }

    async def _post(self, payload: Dict[str, Any]) -> ChatStream:
        headers = self._browser_headers()
        headers.update(
            {
                "Accept": "text/event-stream",
                "Content-Type": "application/json",
                "Origin": "https://duckduckgo.com",
                "x-vqd-4": self.tokens.current or "",
            }
        )
        headers.update(self.tokens.aux_headers.as_request_headers())

        # Streams can run long; bound connect and each read instead of the total
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.settings.chat_timeout,
            sock_read=self.settings.chat_timeout,
        )

        try:
            response = await self._http.post(
                self.settings.chat_url, json=payload, headers=headers, timeout=timeout
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Error sending request: {e}", original_error=e) from e

        if response.status != 200:
            try:
                body = await response.text()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransportError(
                    f"Error reading error response: {e}", original_error=e
                ) from e
            finally:
                response.release()

            logger.debug("Chat request failed with %d: %s", response.status, body)
            kind = self.detector.classify(response.status, body)
            raise self.detector.to_exception(kind, response.status, body)

        if self.tokens.rotate(response.headers.get("x-vqd-4")):
            logger.debug("Adopted rotated session token")
        self.tokens.reset_retries()
        return ChatStream(response)

    # --- Challenge recovery ---

    async def _refresh_after_challenge(self, challenge: TransientChallenge) -> None:
        """Fresh token (and, on the first 418 of a window, fresh headers)."""
        self.state = SessionState.REFRESHING

        if (
            challenge.challenge_type == ChallengeKind.BOT_CHALLENGE.value
            and self.tokens.retry_count == 0
        ):
            logger.warning("Error 418 detected, refreshing headers...")
            await self._load_headers()
            await self._emit(EventTypes.HEADERS_REFRESHED, {})

        token = await self._bootstrap()
        self.tokens.rotate(token)
        await self._emit(EventTypes.TOKEN_REFRESHED, {})

        retry = self.tokens.record_retry()
        logger.warning(
            "Retrying request (attempt %d/%d)...", retry, self.settings.max_retries
        )
        self.state = SessionState.SENDING

    def _log_before_sleep(self, retry_state: RetryCallState) -> None:
        logger.info(
            "Challenge on attempt %d, backing off %.1fs",
            retry_state.attempt_number,
            self.settings.challenge_backoff,
        )

    # --- Bootstrap & headers ---

    async def _load_headers(self) -> None:
        try:
            aux = await self.header_provider.fetch(self._http)
        except ProtocolError as e:
            logger.warning(
                "Failed to get dynamic headers, using last-known-good values: %s", e
            )
            aux = self.header_provider.last_known_good()
        self.tokens.set_aux_headers(aux)

    async def _bootstrap(self) -> str:
        headers = self._browser_headers()
        headers.update(
            {
                "Accept": "*/*",
                "Cache-Control": "no-store",
                "x-vqd-accept": "1",
            }
        )
        timeout = aiohttp.ClientTimeout(total=self.settings.bootstrap_timeout)

        try:
            async with self._http.get(
                self.settings.status_url, headers=headers, timeout=timeout
            ) as response:
                token = response.headers.get("x-vqd-hash-1") or response.headers.get(
                    "x-vqd-4"
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TokenAcquisitionError(
                f"Bootstrap request failed: {e}", original_error=e
            ) from e

        if not token:
            raise TokenAcquisitionError(
                f"Bootstrap returned no token (HTTP {response.status})",
                status_code=response.status,
            )
        return token

    def _browser_headers(self) -> Dict[str, str]:
        aux = self.tokens.aux_headers
        headers = {
            "Accept-Language": "en-US,en;q=0.5",
            "DNT": "1",
            "Priority": "u=1, i",
            "Referer": "https://duckduckgo.com/",
            "Sec-CH-UA-Mobile": "?0",
            "Sec-CH-UA-Platform": '"Windows"',
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
            "Sec-GPC": "1",
        }
        if aux.user_agent:
            headers["User-Agent"] = aux.user_agent
        if aux.sec_ch_ua:
            headers["Sec-CH-UA"] = aux.sec_ch_ua
        return headers

    async def _emit(self, event: EventTypes, data: Dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.emit(event, data)
