"""Gemini streaming gateway for the relay.

A fresh ``genai.Client`` is built for each call so the relay holds no state
between requests.
"""

import logging
from typing import Any, AsyncIterator, Iterable, Protocol

from google import genai

logger = logging.getLogger(__name__)


class ChatTurn(Protocol):
    role: str
    text: str


def build_contents(messages: Iterable[ChatTurn]) -> list[dict[str, Any]]:
    """Map chat turns to Gemini ``contents``.

    Roles are passed through unchanged (``user``/``model`` is Gemini's own
    vocabulary); the text becomes a single text part.
    """
    return [
        {"role": message.role, "parts": [{"text": message.text}]}
        for message in messages
    ]


async def stream_text(
    messages: Iterable[ChatTurn],
    api_key: str,
    model: str,
) -> AsyncIterator[str]:
    """Stream the model's reply as text increments.

    Nothing is sent until the first increment is requested. Increments that
    carry no text (e.g. safety or usage-only chunks) are skipped.

    Args:
        messages: Prior conversation, oldest first.
        api_key: Gemini API key.
        model: Gemini model name.

    Yields:
        The text of each provider increment, in emission order.
    """
    client = genai.Client(api_key=api_key)
    contents = build_contents(messages)
    logger.debug("Dispatching %s turns to %s", len(contents), model)

    stream = await client.aio.models.generate_content_stream(
        model=model,
        contents=contents,
    )
    async for chunk in stream:
        text = chunk.text
        if text:
            yield text
