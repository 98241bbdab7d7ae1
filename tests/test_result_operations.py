import pytest
from sqlalchemy import delete, select

from prizedesk.database.models import TournamentResult, AdminAuditLog
from prizedesk.utils.exceptions import ValidationError, ImmutableAfterSettlement, ResultNotFoundError
from tests.conftest import ADMIN_ID


async def test_results_start_zero_valued(results):
    assert len(results) == 3
    for record in results:
        assert record.kills == 0
        assert record.position is None
        assert record.total_reward == 0
        assert not record.reward_distributed


async def test_edits_keep_total_equal_to_components(result_ops, results):
    record_id = results[0].id

    record = await result_ops.upsert_field(record_id, 'position', 1, admin_id=ADMIN_ID)
    assert record.placement_reward == 90
    assert record.total_reward == 90

    record = await result_ops.upsert_field(record_id, 'kills', 3, admin_id=ADMIN_ID)
    assert record.kill_reward == 15
    assert record.total_reward == record.placement_reward + record.kill_reward == 105

    record = await result_ops.upsert_field(record_id, 'position', None, admin_id=ADMIN_ID)
    assert record.placement_reward == 0
    assert record.total_reward == 15


async def test_edit_writes_audit_log(result_ops, results, db):
    await result_ops.upsert_field(results[1].id, 'kills', 2, admin_id=ADMIN_ID)

    async with db.get_session() as session:
        result = await session.execute(select(AdminAuditLog).where(AdminAuditLog.action_type == "result_edit"))
        entry = result.scalar_one()
    assert entry.target_id == results[1].id
    assert entry.admin_id == ADMIN_ID


@pytest.mark.parametrize("field,value", [
    ('kills', -1),
    ('kills', "many"),
    ('position', 0),
    ('total_reward', 500),
    ('screenshot_url', 42),
])
async def test_invalid_edits_rejected(result_ops, results, field, value):
    with pytest.raises(ValidationError):
        await result_ops.upsert_field(results[0].id, field, value, admin_id=ADMIN_ID)

    record = await result_ops.get_result(results[0].id)
    assert record.kills == 0
    assert record.total_reward == 0


async def test_text_fields_are_stripped(result_ops, results):
    record = await result_ops.upsert_field(results[0].id, 'screenshot_url', "  https://cdn.example/shot.png ")
    assert record.screenshot_url == "https://cdn.example/shot.png"
    assert await result_ops.get_result_image_url(results[0].id) == "https://cdn.example/shot.png"


async def test_distributed_result_is_immutable(result_ops, verification_ops, settlement_ops, results):
    record_id = results[0].id
    await verification_ops.verify_result(record_id, ADMIN_ID, kills=4, position=1)
    await settlement_ops.distribute(record_id, admin_id=ADMIN_ID)

    for field, value in (('kills', 10), ('position', 2), ('screenshot_url', "https://cdn.example/x.png")):
        with pytest.raises(ImmutableAfterSettlement):
            await result_ops.upsert_field(record_id, field, value, admin_id=ADMIN_ID)

    record = await result_ops.get_result(record_id)
    assert record.kills == 4
    assert record.position == 1
    assert record.total_reward == 110
    assert record.screenshot_url is None


async def test_notes_editable_after_distribution(result_ops, verification_ops, settlement_ops, results):
    record_id = results[0].id
    await verification_ops.verify_result(record_id, ADMIN_ID, kills=4, position=1)
    await settlement_ops.distribute(record_id, admin_id=ADMIN_ID)

    record = await result_ops.upsert_field(record_id, 'verification_notes', "paid out manually checked", admin_id=ADMIN_ID)

    assert record.verification_notes == "paid out manually checked"
    assert record.total_reward == 110


async def test_missing_records_are_backfilled(result_ops, results, live_tournament, db):
    missing = results[1]
    async with db.get_session() as session:
        await session.execute(delete(TournamentResult).where(TournamentResult.id == missing.id))
        await session.commit()

    records = await result_ops.get_results(live_tournament.id)

    assert len(records) == 3
    backfilled = next(r for r in records if r.registration_id == missing.registration_id)
    assert backfilled.id != missing.id
    assert backfilled.total_reward == 0
    assert backfilled.registration.display_name == "player2"


async def test_results_ordered_by_position(result_ops, results, live_tournament):
    await result_ops.upsert_field(results[2].id, 'position', 1)
    await result_ops.upsert_field(results[0].id, 'position', 2)

    ordered = await result_ops.get_results(live_tournament.id)

    assert [r.id for r in ordered] == [results[2].id, results[0].id, results[1].id]


async def test_unknown_result(result_ops):
    with pytest.raises(ResultNotFoundError):
        await result_ops.upsert_field(999, 'kills', 1)
