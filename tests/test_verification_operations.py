import pytest
from sqlalchemy import select, func

from prizedesk.database.models import AdminAuditLog, ResultState
from prizedesk.utils.exceptions import (
    ValidationError, TournamentNotStarted, ImmutableAfterSettlement, ResultStateError
)
from tests.conftest import ADMIN_ID


async def test_verify_snapshots_rewards(verification_ops, results):
    record = await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1, notes="clean game")

    assert record.state == ResultState.VERIFIED
    assert record.placement_reward == 90
    assert record.kill_reward == 20
    assert record.total_reward == 110
    assert record.verified_by == ADMIN_ID
    assert record.result_verified_at is not None
    assert record.verification_notes == "clean game"


async def test_reverify_overwrites_snapshot(verification_ops, db, results):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    record = await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=2, position=3)

    # Position 3 is not in the table: kills only
    assert record.placement_reward == 0
    assert record.total_reward == 10

    async with db.get_session() as session:
        result = await session.execute(
            select(AdminAuditLog.action_type)
            .where(AdminAuditLog.target_type == "result", AdminAuditLog.target_id == results[0].id)
            .order_by(AdminAuditLog.id)
        )
        actions = result.scalars().all()
    assert actions == ["result_verify", "result_reverify"]


async def test_verify_before_start_leaves_record_untouched(verification_ops, tournament_ops, result_ops, results, live_tournament):
    await tournament_ops.update_status(live_tournament.id, "upcoming", admin_id=ADMIN_ID)

    with pytest.raises(TournamentNotStarted):
        await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)

    record = await result_ops.get_result(results[0].id)
    assert record.kills == 0
    assert record.position is None
    assert record.total_reward == 0
    assert not record.result_verified


@pytest.mark.parametrize("kills,position", [(-1, 1), (3, 0), (3, -1)])
async def test_invalid_verification_changes_nothing(verification_ops, result_ops, results, kills, position):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)

    with pytest.raises(ValidationError):
        await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=kills, position=position)

    record = await result_ops.get_result(results[0].id)
    assert record.kills == 4
    assert record.position == 1
    assert record.total_reward == 110


async def test_verify_after_distribution_rejected(verification_ops, settlement_ops, result_ops, results):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    with pytest.raises(ImmutableAfterSettlement):
        await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=9, position=1)

    record = await result_ops.get_result(results[0].id)
    assert record.kills == 4
    assert record.total_reward == 110


async def test_submit_result(verification_ops, live_tournament, players):
    record = await verification_ops.submit_result(
        live_tournament.id, players[1].id, kills=3, position=2, screenshot_url="https://cdn.example/p2.png"
    )

    assert record.state == ResultState.SUBMITTED
    assert record.kills == 3
    assert record.kill_reward == 15
    assert record.screenshot_url == "https://cdn.example/p2.png"
    assert record.result_submitted_at is not None


async def test_resubmission_allowed_until_verified(verification_ops, live_tournament, players):
    await verification_ops.submit_result(live_tournament.id, players[0].id, kills=3)
    record = await verification_ops.submit_result(live_tournament.id, players[0].id, kills=5, position=1)

    assert record.kills == 5
    assert record.total_reward == 115

    await verification_ops.verify_result(record.id, ADMIN_ID, kills=5, position=1)
    with pytest.raises(ResultStateError):
        await verification_ops.submit_result(live_tournament.id, players[0].id, kills=8)


async def test_submit_requires_registration(verification_ops, live_tournament, db):
    outsider = await db.create_user("outsider", discord_id=2001)
    with pytest.raises(ValidationError):
        await verification_ops.submit_result(live_tournament.id, outsider.id, kills=1)


async def test_verification_queue(verification_ops, live_tournament, players, db):
    first = await verification_ops.submit_result(live_tournament.id, players[1].id, kills=1)
    second = await verification_ops.submit_result(live_tournament.id, players[2].id, kills=2)

    queue = await verification_ops.get_verification_queue(live_tournament.id)
    assert {r.id for r in queue} == {first.id, second.id}

    await verification_ops.verify_result(first.id, ADMIN_ID, kills=1, position=None)
    queue = await verification_ops.get_verification_queue(live_tournament.id)
    assert [r.id for r in queue] == [second.id]

    async with db.get_session() as session:
        count = await session.execute(select(func.count(AdminAuditLog.id)).where(AdminAuditLog.action_type == "result_verify"))
        verified = count.scalar()
    assert verified == 1


async def test_verification_joins_caller_transaction(verification_ops, tournament_ops, result_ops, results, live_tournament, db):
    async with db.transaction() as session:
        await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1, session=session)
        await tournament_ops.update_status(live_tournament.id, "completed", admin_id=ADMIN_ID, session=session)

    record = await result_ops.get_result(results[0].id)
    assert record.result_verified
    assert (await db.get_tournament(live_tournament.id)).status.value == "completed"


async def test_failed_transaction_rolls_back_verification(verification_ops, result_ops, results, db):
    with pytest.raises(RuntimeError):
        async with db.transaction() as session:
            await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1, session=session)
            raise RuntimeError("admin aborted")

    record = await result_ops.get_result(results[0].id)
    assert not record.result_verified
    assert record.total_reward == 0
