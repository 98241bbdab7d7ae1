"""
Verification Operations Module

State machine of a result record:

    UNSUBMITTED -> SUBMITTED -> VERIFIED -> DISTRIBUTED

Players submit kills, position and a screenshot; admins verify with the
final numbers, which snapshots the rewards. VERIFIED may be re-entered any
number of times until the rewards are distributed.
"""

from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prizedesk.database.models import TournamentResult, Registration, ResultState
from prizedesk.operations.base import OperationsBase, apply_reward_snapshot
from prizedesk.utils.exceptions import (
    PrizeDeskError, ValidationError, TournamentNotStarted, ImmutableAfterSettlement, ResultStateError
)
from prizedesk.utils.logger import setup_logger
from prizedesk.utils.reward_rules import validate_result_inputs

logger = setup_logger(__name__)

SUBMITTABLE_STATES = (ResultState.UNSUBMITTED, ResultState.SUBMITTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VerificationOperations(OperationsBase):
    """Player submissions and admin verification of result records"""

    def __init__(self, database, config_service=None):
        super().__init__(database, config_service)
        self.logger = logger

    async def submit_result(
        self,
        tournament_id: int,
        user_id: int,
        kills: int,
        position: Optional[int] = None,
        screenshot_url: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> TournamentResult:
        """
        Record a player's own result submission.

        Raises:
            ValidationError: Malformed kills/position, or the user is not registered
            ResultStateError: The result was already verified
            ImmutableAfterSettlement: The result was already distributed
        """
        inputs = validate_result_inputs(kills, position)

        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)

            result = await s.execute(
                select(Registration)
                .options(selectinload(Registration.result))
                .where(Registration.tournament_id == tournament_id, Registration.user_id == user_id)
            )
            registration = result.scalar_one_or_none()
            if not registration:
                raise ValidationError('user_id', f"user {user_id} is not registered for tournament {tournament_id}")

            record = registration.result
            if record is None:
                record = TournamentResult(
                    tournament_id=tournament_id,
                    registration_id=registration.id,
                    user_id=user_id,
                )
                s.add(record)
            elif record.state == ResultState.DISTRIBUTED:
                raise ImmutableAfterSettlement(record.id)
            elif record.state not in SUBMITTABLE_STATES:
                raise ResultStateError(record.id, record.state.value, 'submit')

            record.kills = inputs.kills
            record.position = inputs.position
            if screenshot_url:
                record.screenshot_url = screenshot_url.strip()
            record.result_submitted = True
            record.result_submitted_at = _utcnow()

            apply_reward_snapshot(record, tournament, self._get_policy())
            await s.flush()

            if not session:
                await s.commit()

            self.logger.info(
                f"User {user_id} submitted result {record.id} for tournament {tournament_id}: "
                f"{inputs.kills} kills, position {inputs.position}"
            )
            return record

    async def verify_result(
        self,
        result_id: int,
        admin_id: int,
        kills: int,
        position: Optional[int],
        notes: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> TournamentResult:
        """
        Verify a result with the admin's final kills and position.

        Inputs are validated before the record is touched, so a rejected
        verification leaves every field as it was. Verifying an already
        verified record overwrites its reward snapshot.

        Raises:
            ValidationError: Negative kills or non-positive position
            TournamentNotStarted: Tournament still in a pre-start status
            ImmutableAfterSettlement: Rewards already distributed
        """
        try:
            inputs = validate_result_inputs(kills, position)

            async with self._get_session_context(session) as s:
                record = await self._load_result(s, result_id)
                if record.reward_distributed:
                    raise ImmutableAfterSettlement(result_id)

                tournament = await self._load_tournament(s, record.tournament_id)
                policy = self._get_policy()
                status = tournament.status.value if tournament.status else None
                if status in policy.pre_start_statuses:
                    raise TournamentNotStarted(tournament.id, status)

                reverify = record.result_verified
                record.kills = inputs.kills
                record.position = inputs.position
                if notes is not None:
                    record.verification_notes = notes.strip() or None
                breakdown = apply_reward_snapshot(record, tournament, policy)
                record.result_verified = True
                record.result_verified_at = _utcnow()
                record.verified_by = admin_id

                await self._create_audit_log(
                    s, admin_id, "result_reverify" if reverify else "result_verify", "result", result_id,
                    {'kills': inputs.kills, 'position': inputs.position,
                     'placement_reward': breakdown.placement_reward,
                     'kill_reward': breakdown.kill_reward,
                     'total_reward': breakdown.total_reward},
                    notes
                )

                if not session:
                    await s.commit()

                self.logger.info(
                    f"Admin {admin_id} verified result {result_id}: {inputs.kills} kills, "
                    f"position {inputs.position}, total reward {breakdown.total_reward}"
                )
                return record

        except PrizeDeskError as e:
            self.logger.warning(f"Verification of result {result_id} rejected: {e}")
            raise

    async def get_verification_queue(self, tournament_id: int) -> List[TournamentResult]:
        """Submitted results still waiting for an admin, oldest submission first"""
        async with self.db.get_session() as s:
            await self._load_tournament(s, tournament_id)
            result = await s.execute(
                select(TournamentResult)
                .options(selectinload(TournamentResult.registration))
                .where(
                    TournamentResult.tournament_id == tournament_id,
                    TournamentResult.result_submitted == True,
                    TournamentResult.result_verified == False
                )
                .order_by(TournamentResult.result_submitted_at, TournamentResult.id)
            )
            return result.scalars().all()
