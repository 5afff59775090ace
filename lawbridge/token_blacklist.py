"""
Token Blacklist Management
==========================

Redis-backed revocation list for access tokens (logout, password change).
Every revocation is also written to the ``revoked_tokens`` table so checks
keep working when Redis is unavailable.
"""

import time
import logging
from datetime import datetime
from typing import Optional

from redis import Redis
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import RevokedToken

logger = logging.getLogger(__name__)

BLACKLIST_PREFIX = "token:blacklist:"
_RECONNECT_BACKOFF_SECONDS = 30.0

_redis_client: Optional[Redis] = None
_last_failure: float = 0.0


def get_redis_client() -> Optional[Redis]:
    """Get Redis client (singleton); None while Redis is unreachable."""
    global _redis_client, _last_failure

    if _redis_client is not None:
        return _redis_client
    if _last_failure and time.monotonic() - _last_failure < _RECONNECT_BACKOFF_SECONDS:
        return None

    try:
        client = Redis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=0.5,
            socket_timeout=0.5,
        )
        client.ping()
    except Exception as e:
        _last_failure = time.monotonic()
        logger.warning(f"Redis connection failed: {e}. Using database fallback.")
        return None

    _redis_client = client
    return _redis_client


def reset_redis_client():
    """Forget the cached client (tests, config reloads)."""
    global _redis_client, _last_failure
    _redis_client = None
    _last_failure = 0.0


def revoke_token(db: Session, jti: str, expires_at: datetime, user_id: Optional[str] = None) -> bool:
    """
    Revoke a token by its JTI.

    Returns:
        True if the entry also reached Redis, False if only the database has it
    """
    if db.get(RevokedToken, jti) is None:
        db.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))
        db.commit()

    redis = get_redis_client()
    if not redis:
        return False

    try:
        ttl_seconds = max(int((expires_at - datetime.utcnow()).total_seconds()), 60)
        redis.setex(f"{BLACKLIST_PREFIX}{jti}", ttl_seconds, user_id or "")
        return True
    except Exception as e:
        logger.warning(f"Redis blacklist add failed: {e}")
        return False


def is_token_revoked(db: Session, jti: str) -> bool:
    """Check Redis first, then the database."""
    redis = get_redis_client()
    if redis:
        try:
            if redis.exists(f"{BLACKLIST_PREFIX}{jti}"):
                return True
        except Exception as e:
            logger.warning(f"Redis blacklist check failed: {e}")

    return db.get(RevokedToken, jti) is not None


def remove_expired_entries(db: Session) -> int:
    """Delete expired rows from the database fallback table."""
    removed = db.query(RevokedToken).filter(
        RevokedToken.expires_at < datetime.utcnow()
    ).delete()
    db.commit()
    return removed


def get_blacklist_stats() -> dict:
    """Get statistics about the token blacklist."""
    redis = get_redis_client()
    stats = {"redis_available": redis is not None}
    if redis:
        try:
            stats["redis_count"] = sum(1 for _ in redis.scan_iter(f"{BLACKLIST_PREFIX}*"))
        except Exception as e:
            stats["redis_error"] = str(e)
    return stats
