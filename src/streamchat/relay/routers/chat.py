"""Chat relay endpoint.

POST /api/chat forwards the conversation to Gemini and streams the reply back
as chunked ``text/plain``. Each chunk is exactly one provider increment, with
no added delimiters.
"""

import logging
from typing import AsyncIterator, List, Literal, Optional

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from pydantic import BaseModel

from ...errors import ConfigurationError
from ..config import settings
from ..gemini_gateway import stream_text as gemini_stream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


class ChatMessage(BaseModel):
    """A single prior message."""

    role: Literal["user", "model"]
    text: str


class ChatRequest(BaseModel):
    """Relay request body."""

    messages: List[ChatMessage]


def _error_response(text: str) -> Response:
    return PlainTextResponse(text, status_code=500, media_type=TEXT_MEDIA_TYPE)


async def _relay_fragments(
    first: Optional[str],
    fragments: AsyncIterator[str],
) -> AsyncIterator[str]:
    """Re-emit provider fragments after the first one was prefetched."""
    if first is None:
        return
    yield first
    try:
        async for fragment in fragments:
            yield fragment
    except Exception:
        # Headers are already sent; aborting the body is the only signal left.
        logger.exception("[Relay] Provider stream failed mid-response")
        raise


@router.post("/chat")
async def chat(request: ChatRequest) -> Response:
    """Relay a conversation to the model provider and stream the reply."""
    logger.info("[Relay] Received request: messages=%s", len(request.messages))

    if not settings.gemini_api_key:
        error = ConfigurationError("GEMINI_API_KEY")
        logger.error("[Relay] %s", error.message)
        return _error_response(error.message)

    # Pull the first increment before committing to a 200 so that request
    # construction and dispatch failures still surface as a 500.
    fragments = gemini_stream(
        request.messages,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
    )
    try:
        first: Optional[str] = await anext(fragments)
    except StopAsyncIteration:
        first = None
    except Exception as e:
        logger.exception("[Relay] Provider call failed")
        return _error_response(f"Error processing request: {str(e) or 'Unknown error'}")

    return StreamingResponse(
        _relay_fragments(first, fragments),
        media_type=TEXT_MEDIA_TYPE,
    )
