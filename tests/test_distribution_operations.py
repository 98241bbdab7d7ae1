from sqlalchemy.exc import OperationalError

from prizedesk.database.models import TransactionStatus
from tests.conftest import ADMIN_ID


async def verify_all(verification_ops, results):
    """First place with 4 kills, then 3 kills and 2 kills unplaced: 110 / 15 / 10"""
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    await verification_ops.verify_result(results[1].id, ADMIN_ID, kills=3, position=None)
    await verification_ops.verify_result(results[2].id, ADMIN_ID, kills=2, position=None)


def fail_credits_for(db, monkeypatch, user_id):
    """Make wallet credits for one user fail the way a broken disk would"""
    original = db.credit_wallet

    async def credit_wallet(session, target_user_id, amount):
        if target_user_id == user_id:
            raise OperationalError("UPDATE users", {}, Exception("disk I/O error"))
        return await original(session, target_user_id, amount)

    monkeypatch.setattr(db, "credit_wallet", credit_wallet)


async def test_distribute_all_pays_every_verified_result(distribution_ops, verification_ops, db, results, players, live_tournament):
    await verify_all(verification_ops, results)

    report = await distribution_ops.distribute_all(live_tournament.id, admin_id=ADMIN_ID)

    assert report.total_distributed == 135
    assert len(report.succeeded) == 3
    assert report.failed == []
    assert [e.amount for e in report.entries] == [110, 15, 10]
    assert [await db.get_wallet_balance(p.id) for p in players] == [110, 15, 10]

    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.prizes_distributed_at is not None
    assert tournament.total_distributed == 135


async def test_unverified_results_are_skipped(distribution_ops, verification_ops, db, results, live_tournament):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)

    report = await distribution_ops.distribute_all(live_tournament.id)

    assert [e.result_id for e in report.entries] == [results[0].id]
    assert report.total_distributed == 110
    # Nothing verified is left, so the batch counts as complete
    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.prizes_distributed_at is not None


async def test_partial_failure_reported_per_participant(distribution_ops, verification_ops, db, results, players, live_tournament, monkeypatch):
    await verify_all(verification_ops, results)
    fail_credits_for(db, monkeypatch, players[1].id)

    report = await distribution_ops.distribute_all(live_tournament.id, admin_id=ADMIN_ID)

    assert [e.result_id for e in report.succeeded] == [results[0].id, results[2].id]
    assert [e.result_id for e in report.failed] == [results[1].id]
    assert report.failed[0].error
    assert report.total_distributed == 120

    assert await db.get_wallet_balance(players[1].id) == 0
    failed_rows = await db.list_wallet_transactions(user_id=players[1].id)
    assert [t.status for t in failed_rows] == [TransactionStatus.FAILED]
    assert failed_rows[0].amount == 15

    pending = await distribution_ops.get_pending_results(live_tournament.id)
    assert [r.id for r in pending] == [results[1].id]
    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.prizes_distributed_at is None


async def test_retry_pays_only_the_failed_participant(distribution_ops, verification_ops, db, results, players, live_tournament, monkeypatch):
    await verify_all(verification_ops, results)
    fail_credits_for(db, monkeypatch, players[1].id)
    await distribution_ops.distribute_all(live_tournament.id, admin_id=ADMIN_ID)
    monkeypatch.undo()

    retry = await distribution_ops.distribute_all(live_tournament.id, admin_id=ADMIN_ID)

    assert [e.result_id for e in retry.entries] == [results[1].id]
    assert retry.total_distributed == 15
    assert [await db.get_wallet_balance(p.id) for p in players] == [110, 15, 10]

    paid = await db.list_wallet_transactions(user_id=players[1].id, include_failed=False)
    assert len(paid) == 1
    assert paid[0].status == TransactionStatus.COMPLETED

    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.total_distributed == 135
    assert tournament.prizes_distributed_at is not None


async def test_nothing_pending(distribution_ops, live_tournament, db):
    report = await distribution_ops.distribute_all(live_tournament.id)

    assert report.entries == []
    assert report.total_distributed == 0
    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.prizes_distributed_at is None
