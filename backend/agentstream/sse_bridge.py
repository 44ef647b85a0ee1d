"""SSE bridge — frames WireEvents as ``data: <json>\\n\\n`` ServerSentEvents.

This module sits between the relay and the HTTP response. Frames carry no
``event:`` line; the type travels inside the JSON body. A clean end of the
relay is followed by the ``[DONE]`` sentinel.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing

from sse_starlette.sse import ServerSentEvent

from agentstream.events import WireEvent

DONE_SENTINEL = "[DONE]"
SSE_LINE_SEPARATOR = "\n"


def frame(event: WireEvent) -> ServerSentEvent:
    return ServerSentEvent(data=event.to_json(), sep=SSE_LINE_SEPARATOR)


async def stream_sse_events(
    event_source: AsyncGenerator[WireEvent, None],
) -> AsyncIterator[ServerSentEvent]:
    """Convert relay events to SSE frames.

    Args:
        event_source: Async generator from relay.relay_events().

    Yields:
        ServerSentEvent objects ready for EventSourceResponse.
    """
    async with aclosing(event_source) as events:
        async for event in events:
            yield frame(event)
    yield ServerSentEvent(data=DONE_SENTINEL, sep=SSE_LINE_SEPARATOR)
