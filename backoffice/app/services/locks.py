"""
Short-lived distributed locks on Redis.

A lock is a `SET key token NX EX ttl`; only the holder of the token may
release it. Used to serialize settlement generation per provider and to
reject double pricing submits.
"""

import uuid
import logging
from typing import Optional

logger = logging.getLogger("backoffice.locks")

SETTLEMENT_LOCK_PREFIX = "settlement-lock:"
PRICING_SUBMIT_PREFIX = "pricing-submit:"


def settlement_lock_key(provider_id: int) -> str:
    return f"{SETTLEMENT_LOCK_PREFIX}{provider_id}"


def pricing_submit_key(request_id: int) -> str:
    return f"{PRICING_SUBMIT_PREFIX}{request_id}"


async def acquire_lock(redis, key: str, ttl_seconds: int) -> Optional[str]:
    """
    Try to take the lock.

    Returns:
        The owner token when acquired, None when someone else holds it
    """
    token = uuid.uuid4().hex
    acquired = await redis.set(key, token, nx=True, ex=ttl_seconds)
    if not acquired:
        logger.info("Lock %s is held by another worker", key)
        return None
    return token


async def release_lock(redis, key: str, token: str) -> bool:
    """Release the lock if we still own it (it may have expired)."""
    current = await redis.get(key)
    if isinstance(current, bytes):
        current = current.decode()
    if current != token:
        logger.warning("Lock %s expired or changed owner before release", key)
        return False
    await redis.delete(key)
    return True
