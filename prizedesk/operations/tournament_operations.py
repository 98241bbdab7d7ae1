"""
Tournament Operations Module

Business logic for the tournament side of the reward engine: creating
tournaments, registering participants, moving tournaments through their
statuses and managing the reward configuration.

Key functionality:
- create_tournament(): Validated economics with auto-calculated rewards
- register_participant(): Registration plus its zero-valued result record
- update_economics(): Economics edits that refresh only auto reward values
- configure_rewards(): Manual overrides, checked against the prize pool
- reset_auto_rewards(): Explicit reset of manual overrides
- get_prize_summary(): Prize pool, suggestions and payout progress
"""

from dataclasses import dataclass, replace
from typing import Optional, Dict, Iterable
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from prizedesk.config import Config
from prizedesk.database.models import (
    Tournament, TournamentStatus, MatchType, Registration, TournamentResult, User
)
from prizedesk.operations.base import OperationsBase, apply_reward_snapshot
from prizedesk.utils.exceptions import ValidationError, TournamentNotFoundError
from prizedesk.utils.logger import setup_logger
from prizedesk.utils.reward_rules import (
    AutoReward, ManualReward, TournamentEconomics, apply_suggestions, compute_prize_pool,
    effective_first_place_prize, effective_kill_reward, effective_position_table,
    suggest_rewards, team_size_for, validate_economics, validate_position_table, validate_reward_budget
)

logger = setup_logger(__name__)

REWARD_FIELDS = ('first_place_prize', 'kill_reward_per_kill')


@dataclass
class PrizeSummary:
    """Prize pool overview of a tournament"""
    tournament_id: int
    title: str
    status: str
    entry_fee: float
    commission_percentage: float
    prize_pool: float
    total_players: int
    registered_players: int
    estimated_total_kills: int
    suggested_first_prize: float
    suggested_kill_reward: float
    first_place_prize: float
    first_place_prize_manual: bool
    kill_reward_per_kill: float
    kill_reward_manual: bool
    position_rewards: Dict[int, float]
    verified_rewards: float
    total_distributed: float

    @property
    def remaining_budget(self) -> float:
        return max(0.0, self.prize_pool - self.total_distributed)


def _parse_match_type(match_type) -> MatchType:
    if isinstance(match_type, MatchType):
        return match_type
    try:
        return MatchType(str(match_type).strip().lower())
    except ValueError:
        # Unrecognized match types count as squads
        return MatchType.SQUAD


def _parse_status(status) -> TournamentStatus:
    if isinstance(status, TournamentStatus):
        return status
    try:
        return TournamentStatus(str(status).strip().lower())
    except ValueError:
        valid = ', '.join(s.value for s in TournamentStatus)
        raise ValidationError('status', f"must be one of: {valid}")


class TournamentOperations(OperationsBase):
    """
    Business logic for tournaments and their reward configuration.

    Auto reward values are recomputed whenever economics change; manual
    values are only ever replaced by configure_rewards() or cleared by
    reset_auto_rewards().
    """

    def __init__(self, database, config_service=None):
        super().__init__(database, config_service)
        self.logger = logger

    async def create_tournament(
        self,
        title: str,
        entry_fee: float,
        max_teams: int,
        match_type: str = Config.DEFAULT_MATCH_TYPE,
        commission_percentage: Optional[float] = None,
        status: str = TournamentStatus.UPCOMING.value,
        position_rewards: Optional[Dict[int, float]] = None,
        admin_id: Optional[int] = None,
        session: Optional[AsyncSession] = None
    ) -> Tournament:
        """
        Create a tournament with auto-calculated reward suggestions.

        Raises:
            ValidationError: If economics or the position table are malformed
            BudgetExceededError: If the position table plus kill rewards overrun the pool
        """
        if not title or not title.strip():
            raise ValidationError('title', 'must not be empty')
        if commission_percentage is None:
            commission_percentage = Config.DEFAULT_COMMISSION_PERCENTAGE
        validate_economics(entry_fee, max_teams, commission_percentage)
        table = validate_position_table(position_rewards)
        parsed_type = _parse_match_type(match_type)
        parsed_status = _parse_status(status)

        policy = self._get_policy()
        economics = apply_suggestions(
            TournamentEconomics(
                entry_fee=entry_fee,
                max_teams=max_teams,
                match_type=parsed_type.value,
                commission_percentage=commission_percentage,
                position_rewards=table,
            ),
            policy,
        )
        if table:
            validate_reward_budget(economics, policy)

        async with self._get_session_context(session) as s:
            tournament = Tournament(
                title=title.strip(),
                entry_fee=entry_fee,
                max_teams=max_teams,
                match_type=parsed_type,
                status=parsed_status,
                company_commission_percentage=commission_percentage,
                position_reward_table={str(k): v for k, v in table.items()},
                created_by=admin_id,
            )
            tournament.apply_economics(economics)
            s.add(tournament)
            await s.flush()

            await self._create_audit_log(
                s, admin_id, "tournament_create", "tournament", tournament.id,
                {'title': tournament.title, 'entry_fee': entry_fee, 'max_teams': max_teams,
                 'match_type': parsed_type.value, 'commission_percentage': commission_percentage}
            )

            if not session:
                await s.commit()

            self.logger.info(
                f"Created tournament {tournament.id} '{tournament.title}' "
                f"(prize pool {compute_prize_pool(economics):.2f})"
            )
            return tournament

    async def register_participant(
        self,
        tournament_id: int,
        user_id: int,
        display_name: Optional[str] = None,
        team_name: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Registration:
        """
        Register a user and create the zero-valued result record that belongs to it.

        Idempotent: returns the existing registration for an already registered user.
        """
        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)
            user = await s.get(User, user_id)
            if not user:
                raise ValidationError('user_id', f"user {user_id} does not exist")

            existing = await s.execute(
                select(Registration).where(
                    Registration.tournament_id == tournament_id,
                    Registration.user_id == user_id
                )
            )
            registration = existing.scalar_one_or_none()
            if registration:
                self.logger.debug(f"User {user_id} already registered for tournament {tournament_id}")
                return registration

            if tournament.status in (TournamentStatus.COMPLETED, TournamentStatus.CANCELLED):
                raise ValidationError('tournament', f"registration is closed ({tournament.status.value})")

            count = await s.execute(
                select(func.count(Registration.id)).where(Registration.tournament_id == tournament_id)
            )
            capacity = tournament.max_teams * team_size_for(tournament.match_type.value)
            if count.scalar() >= capacity:
                raise ValidationError('tournament', f"tournament is full ({capacity} players)")

            registration = Registration(
                tournament_id=tournament_id,
                user_id=user_id,
                display_name=display_name or user.username,
                team_name=team_name,
            )
            s.add(registration)
            await s.flush()

            s.add(TournamentResult(
                tournament_id=tournament_id,
                registration_id=registration.id,
                user_id=user_id,
                kills=0,
                kill_reward=0.0,
                placement_reward=0.0,
                total_reward=0.0,
            ))

            if not session:
                await s.commit()

            self.logger.info(f"Registered user {user_id} for tournament {tournament_id} (registration {registration.id})")
            return registration

    async def update_status(
        self,
        tournament_id: int,
        status: str,
        admin_id: Optional[int] = None,
        reason: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Tournament:
        """Move a tournament to a new status"""
        new_status = _parse_status(status)

        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)
            old_status = tournament.status
            tournament.status = new_status

            await self._create_audit_log(
                s, admin_id, "tournament_status", "tournament", tournament_id,
                {'old_status': old_status.value if old_status else None, 'new_status': new_status.value},
                reason
            )

            if not session:
                await s.commit()

            self.logger.info(f"Tournament {tournament_id} status {old_status.value if old_status else None} -> {new_status.value}")
            return tournament

    async def update_economics(
        self,
        tournament_id: int,
        admin_id: Optional[int] = None,
        entry_fee: Optional[float] = None,
        max_teams: Optional[int] = None,
        match_type: Optional[str] = None,
        commission_percentage: Optional[float] = None,
        session: Optional[AsyncSession] = None
    ) -> Tournament:
        """
        Edit entry fee, capacity, match type or commission.

        Auto reward values are recomputed; manual ones are kept but must still
        fit the new prize pool, otherwise nothing is persisted.
        """
        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)

            new_fee = tournament.entry_fee if entry_fee is None else entry_fee
            new_teams = tournament.max_teams if max_teams is None else max_teams
            new_commission = tournament.company_commission_percentage if commission_percentage is None else commission_percentage
            new_type = tournament.match_type if match_type is None else _parse_match_type(match_type)
            validate_economics(new_fee, new_teams, new_commission)

            policy = self._get_policy()
            economics = apply_suggestions(
                replace(
                    tournament.to_economics(),
                    entry_fee=new_fee,
                    max_teams=new_teams,
                    match_type=new_type.value,
                    commission_percentage=new_commission,
                ),
                policy,
            )
            if self._has_manual_configuration(economics):
                validate_reward_budget(economics, policy)

            tournament.entry_fee = new_fee
            tournament.max_teams = new_teams
            tournament.match_type = new_type
            tournament.company_commission_percentage = new_commission
            tournament.apply_economics(economics)
            refreshed = await self._refresh_result_rewards(s, tournament)

            await self._create_audit_log(
                s, admin_id, "tournament_economics", "tournament", tournament_id,
                {'entry_fee': new_fee, 'max_teams': new_teams, 'match_type': new_type.value,
                 'commission_percentage': new_commission, 'results_refreshed': refreshed}
            )

            if not session:
                await s.commit()

            self.logger.info(f"Updated economics of tournament {tournament_id} ({refreshed} result(s) refreshed)")
            return tournament

    async def configure_rewards(
        self,
        tournament_id: int,
        admin_id: Optional[int] = None,
        first_place_prize: Optional[float] = None,
        kill_reward_per_kill: Optional[float] = None,
        position_rewards: Optional[Dict[int, float]] = None,
        reason: Optional[str] = None,
        session: Optional[AsyncSession] = None
    ) -> Tournament:
        """
        Pin reward values manually.

        Values passed here become ManualReward and survive later economics
        edits. The configuration is checked against the prize pool before
        anything is written.

        Raises:
            ValidationError: Negative values or a malformed position table
            BudgetExceededError: Planned payout exceeds the prize pool
        """
        if first_place_prize is None and kill_reward_per_kill is None and position_rewards is None:
            raise ValidationError('rewards', 'nothing to configure')

        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)
            policy = self._get_policy()
            economics = tournament.to_economics()

            table = validate_position_table(position_rewards) if position_rewards is not None else None
            validate_reward_budget(
                economics, policy,
                planned_first_prize=first_place_prize,
                kill_reward_per_kill=kill_reward_per_kill,
                position_table=table,
            )

            if first_place_prize is not None:
                economics.first_place_prize = ManualReward(float(first_place_prize))
            if kill_reward_per_kill is not None:
                economics.kill_reward_per_kill = ManualReward(float(kill_reward_per_kill))
            if table is not None:
                economics.position_rewards = table
                tournament.position_reward_table = {str(k): v for k, v in table.items()}

            tournament.apply_economics(economics)
            refreshed = await self._refresh_result_rewards(s, tournament)

            await self._create_audit_log(
                s, admin_id, "rewards_configure", "tournament", tournament_id,
                {'first_place_prize': first_place_prize, 'kill_reward_per_kill': kill_reward_per_kill,
                 'position_rewards': table, 'results_refreshed': refreshed},
                reason
            )

            if not session:
                await s.commit()

            self.logger.info(f"Manual rewards configured for tournament {tournament_id} by admin {admin_id}")
            return tournament

    async def reset_auto_rewards(
        self,
        tournament_id: int,
        admin_id: Optional[int] = None,
        fields: Iterable[str] = REWARD_FIELDS,
        session: Optional[AsyncSession] = None
    ) -> Tournament:
        """
        Clear manual overrides and recompute the selected reward values.

        The recomputed values must fit the prize pool next to whatever stays
        manual, otherwise nothing is persisted.
        """
        fields = tuple(fields)
        unknown = [f for f in fields if f not in REWARD_FIELDS]
        if unknown:
            raise ValidationError('fields', f"unknown reward field(s): {', '.join(unknown)}")

        async with self._get_session_context(session) as s:
            tournament = await self._load_tournament(s, tournament_id)
            policy = self._get_policy()
            economics = tournament.to_economics()

            for name in fields:
                setattr(economics, name, AutoReward(getattr(economics, name).amount))
            economics = apply_suggestions(economics, policy)
            if self._has_manual_configuration(economics):
                validate_reward_budget(economics, policy)

            tournament.apply_economics(economics)
            refreshed = await self._refresh_result_rewards(s, tournament)

            await self._create_audit_log(
                s, admin_id, "rewards_reset", "tournament", tournament_id,
                {'fields': list(fields), 'results_refreshed': refreshed}
            )

            if not session:
                await s.commit()

            self.logger.info(f"Reset {', '.join(fields)} to auto for tournament {tournament_id}")
            return tournament

    async def get_prize_summary(self, tournament_id: int) -> PrizeSummary:
        """Prize pool, suggestions, effective configuration and payout progress"""
        async with self.db.get_session() as s:
            tournament = await self._load_tournament(s, tournament_id)
            policy = self._get_policy()
            economics = tournament.to_economics()
            suggestion = suggest_rewards(economics, policy)

            registered = await s.execute(
                select(func.count(Registration.id)).where(Registration.tournament_id == tournament_id)
            )
            verified = await s.execute(
                select(func.coalesce(func.sum(TournamentResult.total_reward), 0.0)).where(
                    TournamentResult.tournament_id == tournament_id,
                    TournamentResult.result_verified == True
                )
            )

            return PrizeSummary(
                tournament_id=tournament.id,
                title=tournament.title,
                status=tournament.status.value,
                entry_fee=tournament.entry_fee,
                commission_percentage=tournament.company_commission_percentage,
                prize_pool=suggestion.prize_pool,
                total_players=suggestion.total_players,
                registered_players=registered.scalar(),
                estimated_total_kills=suggestion.estimated_total_kills,
                suggested_first_prize=suggestion.suggested_first_prize,
                suggested_kill_reward=suggestion.suggested_kill_reward,
                first_place_prize=effective_first_place_prize(economics, policy),
                first_place_prize_manual=economics.first_place_prize.is_manual,
                kill_reward_per_kill=effective_kill_reward(economics, policy),
                kill_reward_manual=economics.kill_reward_per_kill.is_manual,
                position_rewards=effective_position_table(economics, policy),
                verified_rewards=float(verified.scalar() or 0.0),
                total_distributed=tournament.total_distributed or 0.0,
            )

    async def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = await self.db.get_tournament(tournament_id)
        if not tournament:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    @staticmethod
    def _has_manual_configuration(economics: TournamentEconomics) -> bool:
        return bool(
            economics.position_rewards
            or economics.first_place_prize.is_manual
            or economics.kill_reward_per_kill.is_manual
        )

    async def _refresh_result_rewards(self, session: AsyncSession, tournament: Tournament) -> int:
        """Recompute reward snapshots of every undistributed result of the tournament"""
        policy = self._get_policy()
        result = await session.execute(
            select(TournamentResult).where(
                TournamentResult.tournament_id == tournament.id,
                TournamentResult.reward_distributed == False
            )
        )
        records = result.scalars().all()
        for record in records:
            apply_reward_snapshot(record, tournament, policy)
        return len(records)
