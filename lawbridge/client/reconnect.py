"""
Reconnection policy for live channel clients.

Bounded: a fixed number of attempts with a fixed delay between them. After
the last failure the error propagates and the view keeps whatever it had
until an explicit refetch.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReconnectPolicy:
    attempts: int = 3
    delay_seconds: float = 1.0

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

    @classmethod
    def from_settings(cls) -> "ReconnectPolicy":
        settings = get_settings()
        return cls(
            attempts=settings.ws_reconnect_attempts,
            delay_seconds=settings.ws_reconnect_delay_seconds,
        )


async def connect_with_retry(
    connect: Callable[[], Awaitable[T]],
    policy: Optional[ReconnectPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``connect`` until it succeeds or the policy's attempts run out."""
    policy = policy or ReconnectPolicy()
    last_error: Optional[Exception] = None
    for attempt in range(1, policy.attempts + 1):
        try:
            return await connect()
        except OSError as e:
            last_error = e
            logger.warning(f"Live channel connect attempt {attempt}/{policy.attempts} failed: {e}")
            if attempt < policy.attempts:
                await sleep(policy.delay_seconds)
    raise last_error
