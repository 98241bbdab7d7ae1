"""
Shared plumbing for the operations modules: session scoping, audit logging,
tournament/result loading and reward snapshots.
"""

import json
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession

from prizedesk.database.models import AdminAuditLog, Tournament, TournamentResult
from prizedesk.utils.exceptions import TournamentNotFoundError, ResultNotFoundError
from prizedesk.utils.reward_rules import RewardPolicy, RewardBreakdown, ResultInputs, compute_reward


def apply_reward_snapshot(result: TournamentResult, tournament: Tournament, policy: RewardPolicy) -> RewardBreakdown:
    """Recompute the derived reward columns of a result from its kills/position."""
    breakdown = compute_reward(
        ResultInputs(kills=result.kills or 0, position=result.position),
        tournament.to_economics(),
        policy,
    )
    result.placement_reward = breakdown.placement_reward
    result.kill_reward = breakdown.kill_reward
    result.total_reward = breakdown.total_reward
    return breakdown


class OperationsBase:
    """Common helpers for the prize desk operations classes"""

    def __init__(self, database, config_service=None):
        """Initialize with database and optional config service instances"""
        self.db = database
        self.config_service = config_service

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise creates and manages a new session.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.db.get_session() as new_session:
                yield new_session

    def _get_policy(self) -> RewardPolicy:
        if self.config_service is not None:
            return self.config_service.get_reward_policy()
        return RewardPolicy()

    async def _load_tournament(self, session: AsyncSession, tournament_id: int) -> Tournament:
        tournament = await session.get(Tournament, tournament_id)
        if not tournament:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    async def _load_result(self, session: AsyncSession, result_id: int) -> TournamentResult:
        result = await session.get(TournamentResult, result_id)
        if not result:
            raise ResultNotFoundError(result_id)
        return result

    async def _create_audit_log(
        self,
        session: AsyncSession,
        admin_id: Optional[int],
        action_type: str,
        target_type: Optional[str] = None,
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None
    ) -> None:
        """
        Add an audit log entry to the session for an administrative action.

        Args:
            session: Database session the audited change is written in
            admin_id: Discord ID of the acting admin (None for system actions)
            action_type: Type of action (e.g., "result_verify", "reward_settle")
            target_type: Type of target (e.g., "result", "tournament")
            target_id: ID of target entity
            details: Additional details as JSON
            reason: Admin-provided reason for action
        """
        session.add(AdminAuditLog(
            admin_id=admin_id,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            details=json.dumps(details or {}, default=str),
            reason=reason
        ))
