"""
Settlement Operations Module

Turns one verified result into wallet credits. Each non-zero reward
component becomes a ledger transaction plus an additive wallet credit, and
the result's distributed flag is flipped in the same database transaction.

Idempotency is enforced by the store:
- the flag is flipped with UPDATE ... WHERE reward_distributed = false
- a partial unique index allows one non-failed transaction per (result, type)

A second distribute() of the same result returns the receipt of the first
one without touching the ledger or the wallet.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from prizedesk.database.models import (
    Tournament, TournamentResult, TournamentStatus, WalletTransaction, TransactionType, TransactionStatus
)
from prizedesk.operations.base import OperationsBase
from prizedesk.utils.exceptions import NotEligibleForSettlement, LedgerWriteFailure
from prizedesk.utils.logger import setup_logger

logger = setup_logger(__name__)

PLACEMENT_TYPES = {
    1: (TransactionType.PRIZE_FIRST, "First Place"),
    2: (TransactionType.PRIZE_SECOND, "Second Place"),
}


@dataclass
class SettlementReceipt:
    """Outcome of settling one result"""
    result_id: int
    user_id: int
    amount: float
    transaction_ids: List[int] = field(default_factory=list)
    already_distributed: bool = False


@dataclass(frozen=True)
class RewardComponent:
    type: TransactionType
    amount: float
    description: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def reward_components(record: TournamentResult, tournament_title: str) -> List[RewardComponent]:
    """Ledger entries for a result: one per non-zero reward component"""
    components = []
    if record.placement_reward and record.placement_reward > 0:
        tx_type, label = PLACEMENT_TYPES.get(
            record.position, (TransactionType.PRIZE, f"{record.position_label} Place")
        )
        components.append(RewardComponent(
            tx_type, record.placement_reward, f"Prize money for {tournament_title} - {label}"
        ))
    if record.kill_reward and record.kill_reward > 0:
        components.append(RewardComponent(
            TransactionType.PRIZE_KILLS, record.kill_reward,
            f"Prize money for {tournament_title} - Kill Reward ({record.kills} kills)"
        ))
    return components


class SettlementOperations(OperationsBase):
    """
    Idempotent wallet settlement of a single verified result.

    Settlement always owns its database transaction: ledger rows, wallet
    credits, the tournament's running total and the distributed flag are
    committed together or not at all.
    """

    def __init__(self, database, config_service=None):
        super().__init__(database, config_service)
        self.logger = logger

    async def distribute(self, result_id: int, admin_id: Optional[int] = None) -> SettlementReceipt:
        """
        Credit the rewards of a verified result to the player's wallet.

        Returns:
            SettlementReceipt with the created transaction ids and credited amount.
            For an already distributed result, the earlier receipt with
            already_distributed=True.

        Raises:
            ResultNotFoundError: Unknown result
            NotEligibleForSettlement: Result not verified or tournament cancelled
            LedgerWriteFailure: Ledger or wallet write failed; nothing was persisted
        """
        async with self.db.get_session() as s:
            record = await self._load_result(s, result_id)
            if record.reward_distributed:
                self.logger.info(f"Result {result_id} already distributed, returning existing receipt")
                return await self._existing_receipt(s, result_id)

            if not record.result_verified:
                raise NotEligibleForSettlement(result_id, "result has not been verified")

            tournament = await self._load_tournament(s, record.tournament_id)
            if tournament.status == TournamentStatus.CANCELLED:
                raise NotEligibleForSettlement(result_id, "tournament was cancelled")

            # Plain values survive the rollback that expires ORM state
            user_id = record.user_id
            tournament_id = tournament.id
            amount = record.total_reward or 0.0
            components = reward_components(record, tournament.title)

            try:
                transaction_ids, balance = await self._write_ledger(s, record, components)

                flipped = await s.execute(
                    update(TournamentResult)
                    .where(TournamentResult.id == result_id, TournamentResult.reward_distributed == False)
                    .values(reward_distributed=True, reward_distributed_at=_utcnow(), total_reward=amount)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount != 1:
                    # Another settlement won the race; discard this attempt
                    await s.rollback()
                    self.logger.warning(f"Result {result_id} was distributed concurrently, rolled back duplicate credit")
                    return await self._existing_receipt(s, result_id)

                await s.execute(
                    update(Tournament)
                    .where(Tournament.id == tournament_id)
                    .values(total_distributed=Tournament.total_distributed + amount)
                    .execution_options(synchronize_session=False)
                )

                await self._create_audit_log(
                    s, admin_id, "reward_settle", "result", result_id,
                    {'user_id': user_id, 'amount': amount, 'transaction_ids': transaction_ids,
                     'balance_after': balance}
                )
                await s.commit()

            except (SQLAlchemyError, LookupError) as e:
                await s.rollback()
                self.logger.error(f"Ledger write failed for result {result_id} (user {user_id}): {e}")
                await self._record_failed_transactions(user_id, tournament_id, result_id, components)
                raise LedgerWriteFailure(result_id, str(e)) from e

        self.logger.info(
            f"Distributed {amount} to user {user_id} for result {result_id} "
            f"({len(transaction_ids)} transaction(s))"
        )
        return SettlementReceipt(
            result_id=result_id,
            user_id=user_id,
            amount=amount,
            transaction_ids=transaction_ids,
        )

    async def _write_ledger(
        self,
        session: AsyncSession,
        record: TournamentResult,
        components: List[RewardComponent]
    ) -> Tuple[List[int], Optional[float]]:
        """Add one pending transaction per component, credit the wallet, then complete it"""
        transaction_ids = []
        balance = None
        for component in components:
            transaction = WalletTransaction(
                user_id=record.user_id,
                tournament_id=record.tournament_id,
                result_id=record.id,
                amount=component.amount,
                type=component.type,
                status=TransactionStatus.PENDING,
                description=component.description,
            )
            session.add(transaction)
            await session.flush()

            balance = await self.db.credit_wallet(session, record.user_id, component.amount)
            transaction.status = TransactionStatus.COMPLETED
            transaction.balance_after = balance
            transaction_ids.append(transaction.id)
        await session.flush()
        return transaction_ids, balance

    async def _existing_receipt(self, session: AsyncSession, result_id: int) -> SettlementReceipt:
        row = await session.execute(
            select(TournamentResult.user_id, TournamentResult.total_reward)
            .where(TournamentResult.id == result_id)
        )
        user_id, total_reward = row.one()
        transactions = await session.execute(
            select(WalletTransaction.id)
            .where(
                WalletTransaction.result_id == result_id,
                WalletTransaction.status != TransactionStatus.FAILED
            )
            .order_by(WalletTransaction.id)
        )
        return SettlementReceipt(
            result_id=result_id,
            user_id=user_id,
            amount=total_reward or 0.0,
            transaction_ids=list(transactions.scalars().all()),
            already_distributed=True,
        )

    async def _record_failed_transactions(
        self,
        user_id: int,
        tournament_id: int,
        result_id: int,
        components: List[RewardComponent]
    ) -> None:
        """Keep an audit trail of the failed attempt; failed rows never count as paid"""
        if not components:
            return
        try:
            async with self.db.get_session() as s:
                for component in components:
                    s.add(WalletTransaction(
                        user_id=user_id,
                        tournament_id=tournament_id,
                        result_id=result_id,
                        amount=component.amount,
                        type=component.type,
                        status=TransactionStatus.FAILED,
                        description=component.description,
                    ))
                await s.commit()
        except SQLAlchemyError as e:
            self.logger.error(f"Could not record failed transactions for result {result_id}: {e}")
