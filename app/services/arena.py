"""Arena operations: the single write boundary for each leaderboard.

Every mutating call loads the leaderboard from the store, runs under that
leaderboard's lock, calls the ledger before changing any local state and
persists the aggregate in one store write. If that write fails, the ledger
movements made by the call are reversed before the error propagates.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass

from app.services.config import build_config, require_authority, validate_secret_key
from app.services.errors import (
    AlreadyInitializedError,
    InsufficientCommissionError,
    InvalidConfigError,
    InvalidSessionKeyError,
    LeaderboardNotFoundError,
    SessionExpiredError,
    SessionNotStartedError,
    SettlementIncompleteError,
    TransferFailedError,
)
from app.services.leaderboard import Leaderboard
from app.services.ports import ArenaStore, Clock, LedgerPort, SystemClock, TransferError
from app.services.prizes import Payout, Settlement, policy_for
from app.services.session_keys import derive_session_key
from app.services.sessions import GameSession, retire_previous, validate_display_name

logger = logging.getLogger(__name__)

# (source, destination, amount) of a transfer already executed by the call.
Movement = tuple[str, str, int]


@dataclass(slots=True)
class ScoreOutcome:
    session: GameSession
    score: int
    rank: int | None


class ArenaService:
    def __init__(
        self,
        store: ArenaStore,
        ledger: LedgerPort,
        clock: Clock | None = None,
        default_secret: bytes | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.clock = clock or SystemClock()
        self.default_secret = default_secret
        # Entries vanish once no caller holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, leaderboard_id: str) -> asyncio.Lock:
        lock = self._locks.get(leaderboard_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[leaderboard_id] = lock
        return lock

    async def _load(self, leaderboard_id: str) -> Leaderboard:
        leaderboard = await self.store.load_leaderboard(leaderboard_id)
        if leaderboard is None:
            raise LeaderboardNotFoundError(details={"leaderboard_id": leaderboard_id})
        return leaderboard

    async def _transfer_in(self, source: str, leaderboard: Leaderboard, amount: int) -> None:
        try:
            await self.ledger.transfer(source, leaderboard.config.token_pool, amount)
        except TransferError as exc:
            raise TransferFailedError(str(exc) or None) from exc

    async def _commit(
        self,
        leaderboard_id: str,
        write: Awaitable[None],
        movements: Sequence[Movement],
    ) -> None:
        """Await the store write; undo ``movements`` if it fails."""
        try:
            await write
        except Exception:
            logger.exception(
                f"Store write failed, reversing {len(movements)} transfer(s): "
                f"leaderboard={leaderboard_id}"
            )
            for source, destination, amount in reversed(movements):
                if amount == 0:
                    continue
                try:
                    await self.ledger.transfer(destination, source, amount, authority=leaderboard_id)
                except TransferError:
                    logger.exception(
                        f"Failed to reverse transfer: leaderboard={leaderboard_id}, "
                        f"source={source}, destination={destination}, amount={amount}"
                    )
            raise

    async def initialize(
        self,
        leaderboard_id: str,
        *,
        authority: str,
        entry_fee: int,
        prize_ratio: int,
        prize_distribution: Sequence[int],
        owner_account: str,
        token_pool: str | None = None,
        secret_key: bytes | None = None,
        payout_policy: str = "claim",
        require_session_key: bool = True,
    ) -> Leaderboard:
        secret = secret_key if secret_key is not None else self.default_secret
        if secret is None:
            raise InvalidConfigError("A secret key is required")

        config = build_config(
            authority=authority,
            entry_fee=entry_fee,
            prize_ratio=prize_ratio,
            prize_distribution=prize_distribution,
            owner_account=owner_account,
            token_pool=token_pool or f"pool:{leaderboard_id}",
            secret_key=secret,
            payout_policy=payout_policy,
            require_session_key=require_session_key,
        )
        leaderboard = Leaderboard(leaderboard_id=leaderboard_id, config=config)

        async with self._lock(leaderboard_id):
            if not await self.store.create_leaderboard(leaderboard):
                raise AlreadyInitializedError(details={"leaderboard_id": leaderboard_id})

        logger.info(
            f"Leaderboard initialized: id={leaderboard_id}, entry_fee={entry_fee}, "
            f"prize_ratio={prize_ratio}, policy={payout_policy}"
        )
        return leaderboard

    async def set_secret_key(self, leaderboard_id: str, caller: str, secret_key: bytes) -> None:
        validate_secret_key(secret_key)
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            require_authority(leaderboard.config, caller)
            leaderboard.config.secret_key = secret_key
            await self.store.save_leaderboard(leaderboard)
        logger.info(f"Secret key rotated: leaderboard={leaderboard_id}")

    async def set_token_pool(self, leaderboard_id: str, caller: str, token_pool: str) -> Leaderboard:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            require_authority(leaderboard.config, caller)
            leaderboard.config.token_pool = token_pool
            await self.store.save_leaderboard(leaderboard)
        return leaderboard

    async def get_leaderboard(self, leaderboard_id: str) -> Leaderboard:
        return await self._load(leaderboard_id)

    async def get_session(self, leaderboard_id: str, player_id: str) -> GameSession:
        await self._load(leaderboard_id)
        session = await self.store.load_session(leaderboard_id, player_id)
        if session is None:
            raise SessionNotStartedError(details={"player_id": player_id})
        return session

    async def start_game(self, leaderboard_id: str, player_id: str, display_name: str) -> GameSession:
        validate_display_name(display_name)

        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            now = self.clock.now()
            retire_previous(await self.store.load_session(leaderboard_id, player_id), now)

            fee = leaderboard.config.entry_fee
            await self._transfer_in(player_id, leaderboard, fee)
            leaderboard.credit_entry_fee()

            session = GameSession(player_id=player_id, display_name=display_name, start_time=now)
            if leaderboard.config.require_session_key:
                session.session_key = derive_session_key(
                    player_id, now, leaderboard.config.secret_key
                )

            await self._commit(
                leaderboard_id,
                self.store.save_round(leaderboard, session),
                [(player_id, leaderboard.config.token_pool, fee)],
            )

        logger.info(
            f"Game started: leaderboard={leaderboard_id}, player={player_id}, "
            f"start_time={now}, prize_pool={leaderboard.prize_pool}"
        )
        return session

    async def submit_score(
        self,
        leaderboard_id: str,
        player_id: str,
        score: int,
        session_key: bytes | None = None,
    ) -> ScoreOutcome:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            session = await self.store.load_session(leaderboard_id, player_id)
            if session is None:
                raise SessionNotStartedError(details={"player_id": player_id})

            try:
                session.complete_score(
                    session_key,
                    self.clock.now(),
                    leaderboard.config.require_session_key,
                )
            except (SessionExpiredError, InvalidSessionKeyError) as exc:
                # The session stays closed so it cannot be retried.
                await self.store.save_session(leaderboard_id, session)
                logger.warning(
                    f"Score rejected: leaderboard={leaderboard_id}, player={player_id}, "
                    f"reason={exc.code}"
                )
                raise

            rank = leaderboard.insert(player_id, score, session.display_name)
            await self.store.save_round(leaderboard, session)

        logger.info(
            f"Score logged: leaderboard={leaderboard_id}, player={player_id}, "
            f"score={score}, rank={rank}"
        )
        return ScoreOutcome(session=session, score=score, rank=rank)

    async def add_to_prize_pool(self, leaderboard_id: str, contributor: str, amount: int) -> Leaderboard:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            await self._transfer_in(contributor, leaderboard, amount)
            leaderboard.prize_pool += amount
            await self._commit(
                leaderboard_id,
                self.store.save_leaderboard(leaderboard),
                [(contributor, leaderboard.config.token_pool, amount)],
            )

        logger.info(
            f"Prize pool topped up: leaderboard={leaderboard_id}, contributor={contributor}, "
            f"amount={amount}, prize_pool={leaderboard.prize_pool}"
        )
        return leaderboard

    async def claim(self, leaderboard_id: str, player_id: str) -> Payout:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            payout = await policy_for(leaderboard, self.ledger).claim(leaderboard, player_id)
            await self._commit(
                leaderboard_id,
                self.store.save_leaderboard(leaderboard),
                [(leaderboard.config.token_pool, payout.destination, payout.amount)],
            )
        return payout

    async def settle(self, leaderboard_id: str, caller: str) -> Settlement:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            require_authority(leaderboard.config, caller)
            try:
                settlement = await policy_for(leaderboard, self.ledger).settle(leaderboard)
            except SettlementIncompleteError:
                # The round was closed over the payouts that stuck; persist that.
                await self.store.save_leaderboard(leaderboard)
                raise

            pool = leaderboard.config.token_pool
            transfers = list(settlement.payouts)
            if settlement.rollover:
                transfers.append(settlement.rollover)
            await self._commit(
                leaderboard_id,
                self.store.save_leaderboard(leaderboard),
                [(pool, payout.destination, payout.amount) for payout in transfers],
            )
        return settlement

    async def withdraw_commission(
        self,
        leaderboard_id: str,
        caller: str,
        amount: int | None = None,
    ) -> Payout:
        async with self._lock(leaderboard_id):
            leaderboard = await self._load(leaderboard_id)
            require_authority(leaderboard.config, caller)

            if amount is None:
                amount = leaderboard.commission_pool
            if amount > leaderboard.commission_pool:
                raise InsufficientCommissionError(
                    details={"commission_pool": leaderboard.commission_pool},
                )

            pool = leaderboard.config.token_pool
            payout = Payout(destination=leaderboard.config.owner_account, amount=amount)
            if amount:
                try:
                    await self.ledger.transfer(
                        pool,
                        payout.destination,
                        amount,
                        authority=leaderboard_id,
                    )
                except TransferError as exc:
                    raise TransferFailedError(str(exc) or None) from exc

            leaderboard.commission_pool -= amount
            await self._commit(
                leaderboard_id,
                self.store.save_leaderboard(leaderboard),
                [(pool, payout.destination, amount)],
            )

        logger.info(
            f"Commission withdrawn: leaderboard={leaderboard_id}, amount={amount}, "
            f"commission_pool={leaderboard.commission_pool}"
        )
        return payout

    async def ping(self) -> bool:
        return await self.store.ping()
