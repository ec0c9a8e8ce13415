"""
Realtime change notifications for custom order requests.

Every change to a provider's requests is published on the Redis channel
`custom_order_requests:<provider_id>`. Events carry no row data; merchant
clients reload the list when one arrives. The merchant dashboard listens
through a Server-Sent-Events stream.
"""

import json
import logging
from typing import AsyncIterator

logger = logging.getLogger("backoffice.realtime")

CHANNEL_PREFIX = "custom_order_requests:"
TABLE_NAME = "custom_order_requests"


def request_channel(provider_id: int) -> str:
    return f"{CHANNEL_PREFIX}{provider_id}"


async def publish_request_change(redis, provider_id: int, event: str, request_id: int) -> bool:
    """
    Publish a change event. Best-effort: a Redis failure is logged only.

    Args:
        event: INSERT, UPDATE or DELETE
    """
    payload = json.dumps({"table": TABLE_NAME, "event": event, "id": request_id})
    try:
        await redis.publish(request_channel(provider_id), payload)
        return True
    except Exception as e:
        logger.warning("Realtime publish failed for provider %s: %s", provider_id, e)
        return False


async def stream_request_changes(redis, provider_id: int) -> AsyncIterator[str]:
    """
    Yield SSE frames for one provider's channel until the client goes away.
    """
    pubsub = redis.pubsub()
    await pubsub.subscribe(request_channel(provider_id))
    try:
        yield "event: ready\ndata: {}\n\n"
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode()
            yield f"event: change\ndata: {data}\n\n"
    finally:
        await pubsub.unsubscribe(request_channel(provider_id))
        await pubsub.aclose()
