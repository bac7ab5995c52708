"""Concurrency control for companion accounts.

Two batches against the same companion would race the runtime balance
lookups of each other, so supply runs are serialized per companion address.
This only covers runs inside one process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from supertx.errors import SupertransactionError

logger = logging.getLogger(__name__)

# Global lock registry: lowercase companion address -> asyncio.Lock
_companion_locks: dict[str, asyncio.Lock] = {}


class LockTimeoutError(SupertransactionError):
    """Raised when a lock cannot be acquired within the timeout period."""

    exit_code = 9
    kind = "LockTimeoutError"


def get_companion_lock(address: str) -> asyncio.Lock:
    """Get or create the lock for a companion address.

    Args:
        address: Companion address (any casing)

    Returns:
        asyncio.Lock for the companion
    """
    key = address.lower()
    if key not in _companion_locks:
        _companion_locks[key] = asyncio.Lock()
    return _companion_locks[key]


@asynccontextmanager
async def companion_lock(
    address: str,
    timeout: Optional[float] = 30.0,
    operation: str = "supertransaction",
):
    """Exclusive access to a companion account for one batch.

    Args:
        address: Companion address
        timeout: Maximum time to wait for the lock (None = wait forever)
        operation: Description for logging

    Example:
        async with companion_lock(companion, operation="aave_supply"):
            # quote, execute, await receipt
            pass
    """
    lock = get_companion_lock(address)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError:
        logger.warning(f"Lock timeout for companion {address} after {timeout}s: {operation}")
        raise LockTimeoutError(
            f"Could not acquire lock for companion {address} within {timeout}s"
        )

    logger.debug(f"Lock acquired for companion {address}: {operation}")
    try:
        yield
    finally:
        lock.release()
        logger.debug(f"Lock released for companion {address}: {operation}")


def clear_companion_locks() -> None:
    """Clear all companion locks (useful for testing)."""
    _companion_locks.clear()
