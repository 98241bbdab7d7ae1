"""
Shared fixtures: every test gets a fresh in-memory SQLite database.
"""

import pytest
import pytest_asyncio

from prizedesk.database.database import Database
from prizedesk.database.models import TournamentStatus
from prizedesk.operations.distribution_operations import DistributionOperations
from prizedesk.operations.result_operations import ResultOperations
from prizedesk.operations.settlement_operations import SettlementOperations
from prizedesk.operations.tournament_operations import TournamentOperations
from prizedesk.operations.verification_operations import VerificationOperations
from prizedesk.services.configuration import ConfigurationService

ADMIN_ID = 111111111111111111


@pytest_asyncio.fixture
async def db():
    database = Database('sqlite+aiosqlite:///:memory:')
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def config_service(db):
    service = ConfigurationService(db.session_factory)
    await service.load_all()
    return service


@pytest.fixture
def tournament_ops(db, config_service):
    return TournamentOperations(db, config_service)


@pytest.fixture
def result_ops(db, config_service):
    return ResultOperations(db, config_service)


@pytest.fixture
def verification_ops(db, config_service):
    return VerificationOperations(db, config_service)


@pytest.fixture
def settlement_ops(db, config_service):
    return SettlementOperations(db, config_service)


@pytest.fixture
def distribution_ops(db, config_service, settlement_ops):
    return DistributionOperations(db, config_service, settlement_ops)


@pytest_asyncio.fixture
async def players(db):
    """Three users with empty wallets"""
    return [await db.create_user(f"player{i}", discord_id=1000 + i) for i in range(1, 4)]


@pytest_asyncio.fixture
async def live_tournament(tournament_ops, players):
    """
    Squad tournament: 10 entry x 25 teams x 4 players, 10% commission -> prize pool 900.

    Rewards pinned to 10% of the pool for first place and 5 per kill.
    """
    tournament = await tournament_ops.create_tournament(
        title="Sunday Squad Cup",
        entry_fee=10,
        max_teams=25,
        match_type="squad",
        commission_percentage=10,
        status=TournamentStatus.LIVE.value,
        admin_id=ADMIN_ID,
    )
    await tournament_ops.configure_rewards(
        tournament.id,
        admin_id=ADMIN_ID,
        kill_reward_per_kill=5,
        position_rewards={1: 10},
    )
    for player in players:
        await tournament_ops.register_participant(tournament.id, player.id)
    return tournament


@pytest_asyncio.fixture
async def results(result_ops, live_tournament):
    """Result records of live_tournament in registration order"""
    records = await result_ops.get_results(live_tournament.id)
    return sorted(records, key=lambda r: r.registration_id)
