"""
Realtime Event Stream

Server-Sent Events feed of the authenticated user's subscription updates
(`subscription:updated` with `{tier, isActive}`).
"""

import json
import logging

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from walletwise.api.dependencies import CurrentUserId
from walletwise.infrastructure.realtime import EventBroker, get_event_broker


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/events/stream")
async def stream_events(
    user_id: CurrentUserId,
    broker: EventBroker = Depends(get_event_broker),
):
    """Stream subscription events until the client disconnects."""

    async def event_generator():
        logger.debug(f"SSE client connected for user {user_id}")
        async for message in broker.subscribe(user_id):
            yield {"event": message["event"], "data": json.dumps(message["data"])}

    return EventSourceResponse(event_generator(), ping=15)
