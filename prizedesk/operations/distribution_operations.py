"""
Distribution Operations Module

Batch settlement of a tournament: every verified, undistributed result is
settled one after another through SettlementOperations. A failure for one
participant is reported and the batch moves on to the next.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from prizedesk.database.models import TournamentResult
from prizedesk.operations.base import OperationsBase
from prizedesk.operations.settlement_operations import SettlementOperations
from prizedesk.utils.exceptions import PrizeDeskError
from prizedesk.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ParticipantPayout:
    """Per-participant line of a distribution report"""
    result_id: int
    registration_id: int
    user_id: int
    display_name: str
    amount: float = 0.0
    transaction_ids: List[int] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None


@dataclass
class DistributionReport:
    tournament_id: int
    total_distributed: float = 0.0
    entries: List[ParticipantPayout] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ParticipantPayout]:
        return [e for e in self.entries if e.success]

    @property
    def failed(self) -> List[ParticipantPayout]:
        return [e for e in self.entries if not e.success]


class DistributionOperations(OperationsBase):
    """Distributes all pending rewards of a tournament"""

    def __init__(self, database, config_service=None, settlement_ops: Optional[SettlementOperations] = None):
        super().__init__(database, config_service)
        self.settlement_ops = settlement_ops or SettlementOperations(database, config_service)
        self.logger = logger

    async def get_pending_results(self, tournament_id: int) -> List[TournamentResult]:
        """Verified, undistributed results in settlement order"""
        async with self.db.get_session() as s:
            await self._load_tournament(s, tournament_id)
            result = await s.execute(
                select(TournamentResult)
                .options(selectinload(TournamentResult.registration))
                .where(
                    TournamentResult.tournament_id == tournament_id,
                    TournamentResult.result_verified == True,
                    TournamentResult.reward_distributed == False
                )
                .order_by(TournamentResult.id)
            )
            return result.scalars().all()

    async def distribute_all(self, tournament_id: int, admin_id: Optional[int] = None) -> DistributionReport:
        """
        Settle every verified, undistributed result of a tournament.

        Participants are processed sequentially in result order. Engine
        errors for one participant (ledger failures, ineligibility) become a
        failed report entry; anything unexpected propagates.

        Returns:
            DistributionReport whose total_distributed only counts successful payouts
        """
        pending = await self.get_pending_results(tournament_id)
        report = DistributionReport(tournament_id=tournament_id)

        self.logger.info(f"Distributing rewards for tournament {tournament_id}: {len(pending)} pending result(s)")

        for record in pending:
            entry = ParticipantPayout(
                result_id=record.id,
                registration_id=record.registration_id,
                user_id=record.user_id,
                display_name=record.registration.display_name if record.registration else str(record.user_id),
            )
            try:
                receipt = await self.settlement_ops.distribute(record.id, admin_id=admin_id)
            except PrizeDeskError as e:
                entry.success = False
                entry.error = e.user_message
                self.logger.error(f"Distribution failed for result {record.id} (user {record.user_id}): {e}")
            else:
                entry.amount = receipt.amount
                entry.transaction_ids = receipt.transaction_ids
                if not receipt.already_distributed:
                    report.total_distributed += receipt.amount
            report.entries.append(entry)

        await self._finish_batch(report, admin_id)

        self.logger.info(
            f"Tournament {tournament_id} distribution complete: {report.total_distributed} paid, "
            f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    async def _finish_batch(self, report: DistributionReport, admin_id: Optional[int]) -> None:
        """Stamp prizes_distributed_at once nothing is left to pay, and audit the batch"""
        async with self.db.get_session() as s:
            tournament = await self._load_tournament(s, report.tournament_id)

            remaining = await s.execute(
                select(func.count(TournamentResult.id)).where(
                    TournamentResult.tournament_id == report.tournament_id,
                    TournamentResult.result_verified == True,
                    TournamentResult.reward_distributed == False
                )
            )
            if remaining.scalar() == 0 and report.entries and tournament.prizes_distributed_at is None:
                tournament.prizes_distributed_at = datetime.now(timezone.utc).replace(tzinfo=None)

            await self._create_audit_log(
                s, admin_id, "rewards_distribute_all", "tournament", report.tournament_id,
                {'total_distributed': report.total_distributed,
                 'succeeded': [e.result_id for e in report.succeeded],
                 'failed': {e.result_id: e.error for e in report.failed}}
            )
            await s.commit()
