"""Round handles and round storage with Redis backend and in-memory fallback."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any

import redis.asyncio as redis
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from redis.exceptions import RedisError

from config import config

logger = logging.getLogger(__name__)


class HandleSigner:
    """Sign and verify round handles using itsdangerous."""

    def __init__(self, secret_key: str | None = None) -> None:
        """Initialize the signer with a secret key."""
        self._secret_key = secret_key or config.security.secret_key
        self._serializer = URLSafeTimedSerializer(self._secret_key, salt="round-handle")

    def sign(self, round_id: str) -> str:
        """Create a signed handle from a round ID."""
        return self._serializer.dumps(round_id)

    def unsign(self, handle: str, max_age: int | None = None) -> str | None:
        """
        Verify and extract the round ID from a signed handle.

        Args:
            handle: The signed handle to verify
            max_age: Maximum age in seconds (defaults to round_ttl)

        Returns:
            The round ID if valid, None otherwise
        """
        max_age = max_age or config.round_ttl
        try:
            return self._serializer.loads(handle, max_age=max_age)
        except (BadSignature, SignatureExpired):
            return None


# Global signer instance
_handle_signer: HandleSigner | None = None


def get_handle_signer() -> HandleSigner:
    """Get or create the handle signer."""
    global _handle_signer
    if _handle_signer is None:
        _handle_signer = HandleSigner()
    return _handle_signer


class RoundStore(ABC):
    """Abstract store for serialized rounds."""

    @abstractmethod
    async def get(self, round_id: str) -> dict[str, Any] | None:
        """Get round data."""
        ...

    @abstractmethod
    async def set(self, round_id: str, data: dict[str, Any], ttl: int | None = None) -> None:
        """Set round data."""
        ...

    @abstractmethod
    async def delete(self, round_id: str) -> None:
        """Delete round data."""
        ...

    async def exists(self, round_id: str) -> bool:
        """Check if a round is stored."""
        return await self.get(round_id) is not None


class InMemoryRoundStore(RoundStore):
    """In-memory round store for local development."""

    def __init__(self) -> None:
        self._rounds: dict[str, tuple[dict[str, Any], datetime]] = {}

    async def get(self, round_id: str) -> dict[str, Any] | None:
        """Get round data."""
        if round_id not in self._rounds:
            return None

        data, expiry = self._rounds[round_id]
        if expiry < datetime.now():
            await self.delete(round_id)
            return None

        return data

    async def set(
        self,
        round_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Set round data."""
        ttl = ttl or config.round_ttl
        expiry = datetime.now() + timedelta(seconds=ttl)
        self._rounds[round_id] = (data, expiry)

    async def delete(self, round_id: str) -> None:
        """Delete round data."""
        self._rounds.pop(round_id, None)

    async def cleanup_expired(self) -> int:
        """Remove expired rounds."""
        now = datetime.now()
        expired = [rid for rid, (_, expiry) in self._rounds.items() if expiry < now]
        for rid in expired:
            del self._rounds[rid]
        return len(expired)


class RedisRoundStore(RoundStore):
    """Redis-backed round store."""

    def __init__(self, redis_client: "redis.Redis") -> None:
        self._redis = redis_client
        self._prefix = "blackjack:live-round:"

    def _key(self, round_id: str) -> str:
        """Get Redis key for a round."""
        return f"{self._prefix}{round_id}"

    async def get(self, round_id: str) -> dict[str, Any] | None:
        """Get round data."""
        data = await self._redis.get(self._key(round_id))
        if data is None:
            return None
        return json.loads(data)

    async def set(
        self,
        round_id: str,
        data: dict[str, Any],
        ttl: int | None = None,
    ) -> None:
        """Set round data."""
        ttl = ttl or config.round_ttl
        await self._redis.setex(self._key(round_id), ttl, json.dumps(data))

    async def delete(self, round_id: str) -> None:
        """Delete round data."""
        await self._redis.delete(self._key(round_id))


# Global round store instance
_round_store: RoundStore | None = None


async def get_round_store() -> RoundStore:
    """Get or create the round store."""
    global _round_store

    if _round_store is not None:
        return _round_store

    if config.redis.enabled:
        try:
            redis_client = redis.from_url(config.redis.url)
            await redis_client.ping()
            _round_store = RedisRoundStore(redis_client)
            return _round_store
        except RedisError as exc:
            logger.warning("Redis unavailable (%s), keeping rounds in memory", exc)

    _round_store = InMemoryRoundStore()
    return _round_store
