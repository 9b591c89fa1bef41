"""HTTP client for the streamchat relay."""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence
from urllib.parse import urlparse, urlunparse

import httpx

from ..errors import StreamReadError, TransportError
from ..models import Message

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


def _normalize_relay_url(url: str) -> str:
    """Strip a trailing ``/api`` or slash so paths can be joined onto it."""
    raw = (url or "").strip()
    if not raw:
        return raw

    parsed = urlparse(raw)
    path = (parsed.path or "").rstrip("/")
    if path == "/api":
        path = ""
    return urlunparse(parsed._replace(path=path)).rstrip("/")


@dataclass
class RelayConfig:
    """Configuration for the relay connection.

    ``timeout`` of None means no client-side timeout: a send waits on the
    transport for as long as the relay keeps the stream open.
    """

    url: str
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        self.url = _normalize_relay_url(self.url)

    @classmethod
    def from_settings(cls, settings) -> "RelayConfig":
        return cls(url=settings.relay_url, timeout=settings.relay_timeout)


class RelayClient:
    """Streams model replies from the relay's ``POST /api/chat``."""

    def __init__(self, config: RelayConfig):
        self.config = config
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.url,
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def health(self) -> bool:
        """Check if the relay is up."""
        try:
            response = await self.client.get("/health")
            return response.status_code == 200
        except httpx.RequestError as e:
            logger.warning("Relay health check request error: %s", e)
            return False

    async def stream_chat(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """Send the conversation and yield the reply as it arrives.

        Fragments are decoded UTF-8 text in arrival order; multi-byte
        characters split across chunks are reassembled before yielding.

        Raises:
            TransportError: The request failed or the relay answered non-2xx.
            StreamReadError: The body broke off after the headers arrived.
        """
        payload = {"messages": [m.to_dict() for m in messages]}
        try:
            async with self.client.stream("POST", CHAT_PATH, json=payload) as response:
                await self._check_response(response)
                async for fragment in self._read_fragments(response):
                    yield fragment
        except httpx.RequestError as e:
            raise TransportError(
                f"Could not reach relay: {str(e) or type(e).__name__}"
            ) from e

    async def _read_fragments(self, response: httpx.Response) -> AsyncIterator[str]:
        received = ""
        try:
            async for fragment in response.aiter_text():
                if fragment:
                    received += fragment
                    yield fragment
        except httpx.HTTPError as e:
            raise StreamReadError(
                f"Reply stream interrupted: {str(e) or type(e).__name__}", received
            ) from e

    async def _check_response(self, response: httpx.Response) -> None:
        """Raise TransportError for non-success statuses.

        The relay reports failures as plain text, which becomes part of the
        error message.
        """
        if response.is_success:
            return
        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        except httpx.HTTPError:
            body = ""
        raise TransportError.from_status(response.status_code, body)
