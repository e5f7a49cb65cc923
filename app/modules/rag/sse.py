"""Server-Sent Events helpers: parsing upstream streams and framing outbound events."""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[Optional[str], Dict[str, Any]]]:
    """
    Yield ``(event_type, payload)`` pairs from an SSE line stream.

    An ``event:`` line names the type of the next ``data:`` line only; the
    pending type is cleared once that data line is consumed. Data lines that
    are not valid JSON objects (including ``[DONE]`` sentinels) are skipped.
    """
    event_type: Optional[str] = None
    async for raw in lines:
        line = raw.rstrip("\r")
        if line.startswith("event:"):
            event_type = line[len("event:"):].strip()
            continue
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        current, event_type = event_type, None
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed SSE data line: %s", data[:200])
            continue
        if isinstance(payload, dict):
            yield current, payload


def format_sse(event: Union[BaseModel, Dict[str, Any]]) -> str:
    """Frame an event as a single ``data:`` message."""
    if isinstance(event, BaseModel):
        payload = event.model_dump(by_alias=True, exclude_none=True)
    else:
        payload = event
    return f"data: {json.dumps(payload)}\n\n"
