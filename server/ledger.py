"""Settlement recorder backends: Redis with in-memory fallback."""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from blackjack.errors import InputError, NotFoundError, PersistenceError
from blackjack.settlement import (
    Account,
    HistoryEntry,
    InMemorySettlementRecorder,
    Outcome,
    Settlement,
    SettlementRecorder,
)
from config import config

logger = logging.getLogger(__name__)


def serialize_entry(entry: HistoryEntry) -> dict[str, Any]:
    """Serialize a history entry to a JSON-safe dict."""
    return {
        "round_id": entry.round_id,
        "username": entry.username,
        "result": entry.result.value,
        "bet_amount": entry.bet_amount,
        "profit_change": str(entry.profit_change),
        "dealer_ref": entry.dealer_ref,
        "created_at": entry.created_at.isoformat(),
    }


def deserialize_entry(data: dict[str, Any]) -> HistoryEntry:
    """Deserialize a history entry from a dict."""
    return HistoryEntry(
        round_id=data["round_id"],
        username=data["username"],
        result=Outcome(data["result"]),
        bet_amount=data["bet_amount"],
        profit_change=Decimal(data["profit_change"]),
        dealer_ref=data["dealer_ref"],
        created_at=datetime.fromisoformat(data["created_at"]),
    )


def _account_from_hash(
    username: str, data: dict[str, Any], holds: dict[str, Any] | None = None
) -> Account:
    return Account(
        username=username,
        wallet=Decimal(data.get("wallet", "0")),
        total_wins=int(data.get("total_wins", 0)),
        total_profit=Decimal(data.get("total_profit", "0")),
        total_invested=Decimal(data.get("total_invested", "0")),
        reserved=sum((Decimal(v) for v in (holds or {}).values()), Decimal(0)),
    )


class RedisSettlementRecorder(SettlementRecorder):
    """
    Redis-backed recorder.

    The history push, the account update, the round marker and the removal
    of the round's stake hold are written in one MULTI/EXEC transaction.
    The round marker is WATCHed, so a concurrent report of the same round
    retries and then sees the marker. Holds live in one hash per user,
    keyed by round id.
    """

    def __init__(self, redis_client: "redis.Redis") -> None:
        self._redis = redis_client
        self._prefix = "blackjack:"

    def _account_key(self, username: str) -> str:
        return f"{self._prefix}account:{username}"

    def _history_key(self, username: str) -> str:
        return f"{self._prefix}history:{username}"

    def _holds_key(self, username: str) -> str:
        return f"{self._prefix}holds:{username}"

    def _round_key(self, round_id: str) -> str:
        return f"{self._prefix}round:{round_id}"

    async def create_account(self, username: str, wallet: Decimal) -> Account:
        """Open an account with a starting wallet, all fields in one transaction."""
        key = self._account_key(username)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                if await pipe.exists(key):
                    raise InputError(f"Account already exists: {username}")
                pipe.multi()
                pipe.hset(
                    key,
                    mapping={
                        "username": username,
                        "wallet": str(wallet),
                        "total_wins": 0,
                        "total_profit": "0",
                        "total_invested": "0",
                    },
                )
                await pipe.execute()
        except WatchError:
            # Someone else opened the account between WATCH and EXEC
            raise InputError(f"Account already exists: {username}") from None
        except RedisError as exc:
            raise PersistenceError(f"Could not create account {username}") from exc
        return Account(username=username, wallet=wallet)

    async def get_account(self, username: str) -> Account:
        """Get an account with its current holds."""
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hgetall(self._account_key(username))
                pipe.hgetall(self._holds_key(username))
                data, holds = await pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"Could not load account {username}") from exc
        if not data:
            raise NotFoundError(f"Unknown account: {username}")
        return _account_from_hash(username, data, holds)

    async def history(self, username: str, limit: int | None = None) -> list[HistoryEntry]:
        """Get booked rounds, newest first."""
        await self.get_account(username)
        end = -1 if limit is None else limit - 1
        try:
            rows = await self._redis.lrange(self._history_key(username), 0, end)
        except RedisError as exc:
            raise PersistenceError(f"Could not load history for {username}") from exc
        return [deserialize_entry(json.loads(row)) for row in rows]

    async def reserve(self, username: str, round_id: str, amount: Decimal) -> Account:
        """Hold part of the wallet for a round, checked under WATCH."""
        account_key = self._account_key(username)
        holds_key = self._holds_key(username)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(account_key, holds_key)

                        data = await pipe.hgetall(account_key)
                        if not data:
                            raise NotFoundError(f"Unknown account: {username}")
                        holds = await pipe.hgetall(holds_key)
                        others = sum(
                            (Decimal(v) for rid, v in holds.items() if rid != round_id),
                            Decimal(0),
                        )
                        self._check_hold(username, Decimal(data.get("wallet", "0")), others, amount)

                        pipe.multi()
                        pipe.hset(holds_key, round_id, str(amount))
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug("Hold for round %s watch conflict, retrying", round_id)
                        continue
        except RedisError as exc:
            raise PersistenceError(f"Could not hold stake for round {round_id}") from exc

        holds[round_id] = str(amount)
        return _account_from_hash(username, data, holds)

    async def release(self, username: str, round_id: str) -> None:
        """Drop a round's hold."""
        try:
            if await self._redis.hdel(self._holds_key(username), round_id):
                logger.info("Released hold of round %s for %s", round_id, username)
        except RedisError as exc:
            raise PersistenceError(f"Could not release stake for round {round_id}") from exc

    async def record(
        self,
        username: str,
        settlement: Settlement,
        round_id: str,
        dealer_ref: str | None = None,
    ) -> HistoryEntry:
        """Book a settlement in a single Redis transaction."""
        self._validate(settlement)

        account_key = self._account_key(username)
        round_key = self._round_key(round_id)
        entry = HistoryEntry(
            round_id=round_id,
            username=username,
            result=settlement.outcome,
            bet_amount=settlement.bet_amount,
            profit_change=settlement.profit,
            dealer_ref=dealer_ref,
        )
        payload = json.dumps(serialize_entry(entry))

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(round_key, account_key)

                        existing = await pipe.get(round_key)
                        if existing is not None:
                            logger.info("Round %s already recorded, skipping", round_id)
                            return deserialize_entry(json.loads(existing))
                        if not await pipe.exists(account_key):
                            raise NotFoundError(f"Unknown account: {username}")

                        pipe.multi()
                        pipe.lpush(self._history_key(username), payload)
                        pipe.hincrbyfloat(account_key, "wallet", float(settlement.profit))
                        pipe.hincrbyfloat(account_key, "total_profit", float(settlement.profit))
                        pipe.hincrbyfloat(account_key, "total_invested", float(settlement.bet_amount))
                        pipe.hincrby(
                            account_key,
                            "total_wins",
                            1 if settlement.outcome == Outcome.WIN else 0,
                        )
                        pipe.hdel(self._holds_key(username), round_id)
                        pipe.set(round_key, payload)
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug("Round %s watch conflict, retrying", round_id)
                        continue
        except RedisError as exc:
            logger.error("Recording round %s for %s failed: %s", round_id, username, exc)
            raise PersistenceError(f"Could not record round {round_id}") from exc

        logger.info(
            "Recorded round %s for %s: %s %s",
            round_id,
            username,
            settlement.outcome.value,
            settlement.profit,
        )
        return entry


# Global recorder instance
_recorder: SettlementRecorder | None = None


async def get_settlement_recorder() -> SettlementRecorder:
    """Get or create the settlement recorder."""
    global _recorder

    if _recorder is not None:
        return _recorder

    if config.redis.enabled:
        try:
            redis_client = redis.from_url(config.redis.url, decode_responses=True)
            await redis_client.ping()
            _recorder = RedisSettlementRecorder(redis_client)
            return _recorder
        except RedisError as exc:
            logger.warning("Redis unavailable (%s), keeping accounts in memory", exc)

    _recorder = InMemorySettlementRecorder()
    return _recorder
