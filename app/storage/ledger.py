"""Token balances kept in a Redis hash.

This adapter stands in for the external token program: it moves integer
balances between named accounts with an optimistic ``WATCH``/``MULTI``
transaction so a debit never drives a balance negative.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from app.services.ports import TransferError

logger = logging.getLogger(__name__)

BALANCES_KEY = "ledger:balances"
MAX_WATCH_RETRIES = 16


class RedisLedger:
    def __init__(self, redis_client: Redis, key: str = BALANCES_KEY):
        self.redis = redis_client
        self.key = key

    async def balance(self, account: str) -> int:
        raw = await self.redis.hget(self.key, account)
        return int(raw or 0)

    async def mint(self, account: str, amount: int) -> int:
        if amount <= 0:
            raise ValueError("Mint amount must be positive")
        return int(await self.redis.hincrby(self.key, account, amount))

    async def transfer(
        self,
        source: str,
        destination: str,
        amount: int,
        *,
        authority: str | None = None,
    ) -> None:
        if amount < 0:
            raise TransferError("Transfer amount must be non-negative")
        if amount == 0:
            return

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(self.key)
                        balance = int(await pipe.hget(self.key, source) or 0)
                        if balance < amount:
                            await pipe.unwatch()
                            raise TransferError(
                                f"Insufficient balance: account={source}, balance={balance}, amount={amount}"
                            )
                        pipe.multi()
                        pipe.hincrby(self.key, source, -amount)
                        pipe.hincrby(self.key, destination, amount)
                        await pipe.execute()
                        break
                    except WatchError:
                        # Another writer touched the balances; re-read and retry.
                        continue
                else:
                    raise TransferError(
                        f"Ledger contention: gave up after {MAX_WATCH_RETRIES} attempts, "
                        f"source={source}, destination={destination}"
                    )
        except RedisError as exc:
            raise TransferError(f"Ledger unavailable: {exc}") from exc

        logger.debug(
            f"Transfer: source={source}, destination={destination}, amount={amount}, "
            f"authority={authority}"
        )
