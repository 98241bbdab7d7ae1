"""
Result Operations Module

The result record store: exactly one result row per registration per
tournament, with derived reward columns recomputed on every edit.

Key functionality:
- get_results(): Complete per-tournament result list, backfilling missing rows
- upsert_field(): Single-field admin edits guarded by settlement immutability
- get_result_image_url(): Screenshot lookup for the verify & edit view
"""

from typing import Optional, List, Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from prizedesk.database.models import TournamentResult
from prizedesk.operations.base import OperationsBase, apply_reward_snapshot
from prizedesk.utils.exceptions import (
    PrizeDeskError, ValidationError, ImmutableAfterSettlement, ResultNotFoundError
)
from prizedesk.utils.logger import setup_logger
from prizedesk.utils.reward_rules import validate_result_inputs

logger = setup_logger(__name__)

EDITABLE_FIELDS = ('kills', 'position', 'screenshot_url', 'verification_notes')

# Fields that stay editable after rewards were paid out
POST_SETTLEMENT_FIELDS = ('verification_notes',)


class ResultOperations(OperationsBase):
    """Business logic for tournament result records"""

    def __init__(self, database, config_service=None):
        super().__init__(database, config_service)
        self.logger = logger

    async def get_results(self, tournament_id: int, session: Optional[AsyncSession] = None) -> List[TournamentResult]:
        """
        Return one result record per registered participant.

        Registrations without a result row get a zero-valued one persisted
        here, so the admin view is always complete. Records are ordered by
        finishing position (unplaced last), then by registration.
        """
        async with self._get_session_context(session) as s:
            await self._load_tournament(s, tournament_id)
            registrations = await self.db.list_registrations(tournament_id, session=s)

            existing = await s.execute(
                select(TournamentResult.registration_id).where(TournamentResult.tournament_id == tournament_id)
            )
            known = set(existing.scalars().all())

            created = 0
            for registration in registrations:
                if registration.id in known:
                    continue
                s.add(TournamentResult(
                    tournament_id=tournament_id,
                    registration_id=registration.id,
                    user_id=registration.user_id,
                    kills=0,
                    kill_reward=0.0,
                    placement_reward=0.0,
                    total_reward=0.0,
                ))
                created += 1

            if created:
                await s.flush()
                if not session:
                    await s.commit()
                self.logger.info(f"Created {created} missing result record(s) for tournament {tournament_id}")

            result = await s.execute(
                select(TournamentResult)
                .options(selectinload(TournamentResult.registration))
                .where(TournamentResult.tournament_id == tournament_id)
            )
            records = result.scalars().all()

        return sorted(
            records,
            key=lambda r: (r.position is None, r.position or 0, r.registration_id)
        )

    async def get_result(self, result_id: int, session: Optional[AsyncSession] = None) -> TournamentResult:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(TournamentResult)
                .options(selectinload(TournamentResult.registration))
                .where(TournamentResult.id == result_id)
            )
            record = result.scalar_one_or_none()
            if not record:
                raise ResultNotFoundError(result_id)
            return record

    async def upsert_field(
        self,
        result_id: int,
        field: str,
        value: Any,
        admin_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> TournamentResult:
        """
        Edit one field of a result record and recompute its rewards.

        Args:
            result_id: Result record to edit
            field: One of kills, position, screenshot_url, verification_notes
            value: New value (None clears position, screenshot and notes)
            admin_id: Discord ID of the editing admin
            session: Optional session to participate in a caller's transaction

        Raises:
            ValidationError: Unknown field or malformed value
            ImmutableAfterSettlement: Anything but notes edited after distribution
        """
        if field not in EDITABLE_FIELDS:
            raise ValidationError('field', f"must be one of: {', '.join(EDITABLE_FIELDS)}")

        try:
            async with self._get_session_context(session) as s:
                record = await self._load_result(s, result_id)

                if record.reward_distributed and field not in POST_SETTLEMENT_FIELDS:
                    raise ImmutableAfterSettlement(result_id, field)

                value = self._validate_field(record, field, value)
                old_value = getattr(record, field)
                setattr(record, field, value)

                if not record.reward_distributed:
                    tournament = await self._load_tournament(s, record.tournament_id)
                    apply_reward_snapshot(record, tournament, self._get_policy())

                await self._create_audit_log(
                    s, admin_id, "result_edit", "result", result_id,
                    {'field': field, 'old_value': old_value, 'new_value': value,
                     'total_reward': record.total_reward}
                )

                if not session:
                    await s.commit()

                self.logger.info(f"Result {result_id}: {field} {old_value!r} -> {value!r} (total {record.total_reward})")
                return record

        except PrizeDeskError as e:
            self.logger.warning(f"Rejected edit of result {result_id}.{field}: {e}")
            raise

    async def get_result_image_url(self, result_id: int) -> Optional[str]:
        return await self.db.get_result_image_url(result_id)

    @staticmethod
    def _validate_field(record: TournamentResult, field: str, value: Any) -> Any:
        if field == 'kills':
            return validate_result_inputs(value, record.position).kills
        if field == 'position':
            return validate_result_inputs(record.kills or 0, value).position
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(field, 'must be text')
        value = value.strip()
        return value or None
