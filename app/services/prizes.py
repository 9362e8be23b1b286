"""Prize distribution strategies.

A leaderboard uses exactly one payout policy for its whole life:

* ``claim``: a top-3 player pulls their share of the live prize pool on
  demand. The round is never closed and the pool is not decremented.
* ``settle``: the operator pays all winners at once, rolls unassigned shares
  over to the owner account and resets the round.

The ledger is always called before local state is touched, so a failed
transfer leaves the leaderboard exactly as it was. The one exception is a
settlement whose undo also fails: the round is then closed over the payouts
that went through and ``SettlementIncompleteError`` reports the rest.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from app.services.errors import (
    NotEligibleForPrizeError,
    PolicyMismatchError,
    PrizeAlreadyClaimedError,
    SettlementIncompleteError,
    TransferFailedError,
)
from app.services.leaderboard import PAID_RANKS, Leaderboard
from app.services.ports import LedgerPort, TransferError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Payout:
    destination: str
    amount: int
    rank: int | None = None


@dataclass(slots=True)
class Settlement:
    prize_pool_before: int
    payouts: list[Payout] = field(default_factory=list)
    rollover: Payout | None = None

    @property
    def total_paid(self) -> int:
        rollover = self.rollover.amount if self.rollover else 0
        return sum(p.amount for p in self.payouts) + rollover


class PayoutPolicy:
    name = ""

    def __init__(self, ledger: LedgerPort):
        self.ledger = ledger

    async def claim(self, leaderboard: Leaderboard, player_id: str) -> Payout:
        raise PolicyMismatchError(details={"payout_policy": self.name})

    async def settle(self, leaderboard: Leaderboard) -> Settlement:
        raise PolicyMismatchError(details={"payout_policy": self.name})

    async def _pay(self, leaderboard: Leaderboard, payout: Payout) -> None:
        if payout.amount == 0:
            return
        try:
            await self.ledger.transfer(
                leaderboard.config.token_pool,
                payout.destination,
                payout.amount,
                authority=leaderboard.leaderboard_id,
            )
        except TransferError as exc:
            raise TransferFailedError(str(exc) or None) from exc


class ClaimPolicy(PayoutPolicy):
    name = "claim"

    async def claim(self, leaderboard: Leaderboard, player_id: str) -> Payout:
        rank = leaderboard.rank(player_id)
        if rank >= PAID_RANKS:
            raise NotEligibleForPrizeError(details={"rank": rank})

        entry = leaderboard.entries[rank]
        if entry.claimed:
            raise PrizeAlreadyClaimedError(details={"rank": rank})

        payout = Payout(destination=player_id, amount=leaderboard.share(rank), rank=rank)
        await self._pay(leaderboard, payout)

        entry.claimed = True
        logger.info(
            f"Prize claimed: leaderboard={leaderboard.leaderboard_id}, player={player_id}, "
            f"rank={rank}, amount={payout.amount}, prize_pool={leaderboard.prize_pool}"
        )
        return payout


class SettlePolicy(PayoutPolicy):
    name = "settle"

    def plan(self, leaderboard: Leaderboard) -> Settlement:
        settlement = Settlement(prize_pool_before=leaderboard.prize_pool)
        winner_count = min(len(leaderboard.entries), PAID_RANKS)

        for rank in range(winner_count):
            settlement.payouts.append(
                Payout(
                    destination=leaderboard.entries[rank].player_id,
                    amount=leaderboard.share(rank),
                    rank=rank,
                )
            )

        remaining = sum(leaderboard.share(rank) for rank in range(winner_count, PAID_RANKS))
        if remaining:
            settlement.rollover = Payout(
                destination=leaderboard.config.owner_account,
                amount=remaining,
            )
        return settlement

    async def settle(self, leaderboard: Leaderboard) -> Settlement:
        settlement = self.plan(leaderboard)
        transfers = list(settlement.payouts)
        if settlement.rollover:
            transfers.append(settlement.rollover)

        completed: list[Payout] = []
        try:
            for payout in transfers:
                await self._pay(leaderboard, payout)
                completed.append(payout)
        except TransferFailedError as exc:
            stuck = await self._reverse(leaderboard, completed)
            if stuck:
                raise self._close_partial(leaderboard, settlement, stuck, transfers) from exc
            raise

        leaderboard.entries.clear()
        leaderboard.prize_pool = 0
        logger.info(
            f"Round settled: leaderboard={leaderboard.leaderboard_id}, "
            f"prize_pool_before={settlement.prize_pool_before}, "
            f"winners={len(settlement.payouts)}, total_paid={settlement.total_paid}"
        )
        return settlement

    async def _reverse(self, leaderboard: Leaderboard, completed: list[Payout]) -> list[Payout]:
        """Undo ``completed`` newest first; return the payouts that could not be undone.

        Reversal stops at the first failure, so everything older than it is
        still paid as well.
        """
        for index in range(len(completed) - 1, -1, -1):
            payout = completed[index]
            if payout.amount == 0:
                continue
            try:
                await self.ledger.transfer(
                    payout.destination,
                    leaderboard.config.token_pool,
                    payout.amount,
                    authority=leaderboard.leaderboard_id,
                )
            except TransferError:
                logger.exception(
                    f"Failed to reverse settlement payout: leaderboard={leaderboard.leaderboard_id}, "
                    f"destination={payout.destination}, amount={payout.amount}"
                )
                return completed[: index + 1]
        return []

    def _close_partial(
        self,
        leaderboard: Leaderboard,
        settlement: Settlement,
        paid: list[Payout],
        transfers: list[Payout],
    ) -> SettlementIncompleteError:
        """Close the round over payouts that stuck, so a retry cannot pay them twice.

        Unpaid amounts stay in the prize pool for the next round.
        """
        unpaid = transfers[len(paid) :]
        paid_total = sum(payout.amount for payout in paid)
        leaderboard.entries.clear()
        leaderboard.prize_pool = settlement.prize_pool_before - paid_total
        logger.error(
            f"Round closed after partial settlement: leaderboard={leaderboard.leaderboard_id}, "
            f"paid={paid_total}, unpaid={len(unpaid)}, prize_pool={leaderboard.prize_pool}"
        )
        return SettlementIncompleteError(
            details={
                "paid": [asdict(payout) for payout in paid],
                "unpaid": [asdict(payout) for payout in unpaid],
                "prize_pool": leaderboard.prize_pool,
            }
        )


POLICIES: dict[str, type[PayoutPolicy]] = {
    ClaimPolicy.name: ClaimPolicy,
    SettlePolicy.name: SettlePolicy,
}


def policy_for(leaderboard: Leaderboard, ledger: LedgerPort) -> PayoutPolicy:
    return POLICIES[leaderboard.config.payout_policy](ledger)
