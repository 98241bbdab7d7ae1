import json

import pytest
from sqlalchemy import select

from prizedesk.database.models import AdminAuditLog
from prizedesk.services.configuration import ConfigurationService
from prizedesk.utils.exceptions import ValidationError
from prizedesk.utils.reward_rules import RewardPolicy
from tests.conftest import ADMIN_ID


async def test_defaults_without_stored_values(config_service):
    assert config_service.list_all() == {}
    assert config_service.get_reward_policy() == RewardPolicy()


async def test_set_reward_split_changes_policy(config_service, db):
    await config_service.set('rewards.kill_share', 0.7, ADMIN_ID)
    await config_service.set('rewards.first_place_share', 0.3, ADMIN_ID)

    policy = config_service.get_reward_policy()
    assert policy.first_place_share == 0.3
    assert policy.kill_share == 0.7
    assert config_service.get_by_category('rewards') == {'first_place_share': 0.3, 'kill_share': 0.7}

    # A fresh service sees the persisted values
    reloaded = ConfigurationService(db.session_factory)
    await reloaded.load_all()
    assert reloaded.get('rewards.kill_share') == 0.7


async def test_policy_flows_into_new_tournaments(config_service, tournament_ops):
    await config_service.set('rewards.kill_share', 0.8, ADMIN_ID)
    await config_service.set('rewards.first_place_share', 0.2, ADMIN_ID)

    tournament = await tournament_ops.create_tournament(title="Cup", entry_fee=10, max_teams=25)

    assert tournament.first_place_prize == pytest.approx(180)
    assert tournament.kill_reward_per_kill == pytest.approx(9)


async def test_invalid_split_rejected_before_write(config_service):
    with pytest.raises(ValidationError):
        await config_service.set('rewards.kill_share', 0.95, ADMIN_ID)

    assert config_service.get('rewards.kill_share') is None
    assert config_service.get_reward_policy().kill_share == RewardPolicy().kill_share


@pytest.mark.parametrize("key,value", [
    ('rewards.currency_decimals', "two"),
    ('rewards.pre_start_statuses', "upcoming"),
    ('rewards.kill_estimate_ratio', 0),
])
async def test_malformed_reward_values(config_service, key, value):
    with pytest.raises(ValidationError):
        await config_service.set(key, value, ADMIN_ID)


async def test_set_writes_audit_log(config_service, db):
    await config_service.set('rewards.budget_epsilon', 0.5, ADMIN_ID)
    await config_service.set('rewards.budget_epsilon', 1.0, ADMIN_ID)

    async with db.get_session() as session:
        result = await session.execute(
            select(AdminAuditLog).where(AdminAuditLog.action_type == 'config_set').order_by(AdminAuditLog.id)
        )
        entries = result.scalars().all()

    assert len(entries) == 2
    details = json.loads(entries[1].details)
    assert details == {'key': 'rewards.budget_epsilon', 'old_value': 0.5, 'new_value': 1.0}
    assert entries[1].admin_id == ADMIN_ID


async def test_non_reward_keys_are_stored_verbatim(config_service):
    await config_service.set('desk.announcement_channel', {"id": 1234}, ADMIN_ID)
    assert config_service.get('desk.announcement_channel') == {"id": 1234}
