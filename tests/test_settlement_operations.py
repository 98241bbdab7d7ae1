import pytest
from sqlalchemy.exc import OperationalError

from prizedesk.database.models import TransactionType, TransactionStatus
from prizedesk.utils.exceptions import NotEligibleForSettlement, ResultNotFoundError, LedgerWriteFailure
from tests.conftest import ADMIN_ID


async def test_distribute_credits_wallet_per_component(verification_ops, settlement_ops, db, results, players):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)

    receipt = await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    assert receipt.amount == 110
    assert receipt.user_id == players[0].id
    assert not receipt.already_distributed
    assert len(receipt.transaction_ids) == 2
    assert await db.get_wallet_balance(players[0].id) == 110

    transactions = await db.list_wallet_transactions(user_id=players[0].id)
    assert [t.type for t in transactions] == [TransactionType.PRIZE_FIRST, TransactionType.PRIZE_KILLS]
    assert [t.amount for t in transactions] == [90, 20]
    assert all(t.status == TransactionStatus.COMPLETED for t in transactions)
    assert transactions[0].description == "Prize money for Sunday Squad Cup - First Place"
    assert transactions[1].description == "Prize money for Sunday Squad Cup - Kill Reward (4 kills)"
    assert transactions[-1].balance_after == 110


async def test_second_distribute_is_a_no_op(verification_ops, settlement_ops, db, results, players):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    first = await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    second = await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    assert second.already_distributed
    assert second.transaction_ids == first.transaction_ids
    assert second.amount == first.amount
    assert await db.get_wallet_balance(players[0].id) == 110
    assert len(await db.list_wallet_transactions(user_id=players[0].id)) == 2


async def test_tournament_total_tracks_settlements(verification_ops, settlement_ops, db, results, live_tournament):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    await verification_ops.verify_result(results[1].id, ADMIN_ID, kills=3, position=2)

    await settlement_ops.distribute(results[0].id)
    await settlement_ops.distribute(results[1].id)
    await settlement_ops.distribute(results[1].id)

    tournament = await db.get_tournament(live_tournament.id)
    assert tournament.total_distributed == 125


async def test_placement_outside_top_two_uses_generic_type(tournament_ops, verification_ops, settlement_ops, db, results, live_tournament, players):
    await tournament_ops.configure_rewards(live_tournament.id, admin_id=ADMIN_ID, position_rewards={1: 5, 2: 3, 3: 2})
    await verification_ops.verify_result(results[2].id, ADMIN_ID, kills=0, position=3)

    receipt = await settlement_ops.distribute(results[2].id)

    assert receipt.amount == 18
    transactions = await db.list_wallet_transactions(user_id=players[2].id)
    assert [t.type for t in transactions] == [TransactionType.PRIZE]
    assert transactions[0].description == "Prize money for Sunday Squad Cup - 3rd Place"


async def test_unverified_result_not_eligible(settlement_ops, db, results, players):
    with pytest.raises(NotEligibleForSettlement):
        await settlement_ops.distribute(results[0].id)
    assert await db.get_wallet_balance(players[0].id) == 0


async def test_cancelled_tournament_not_eligible(verification_ops, tournament_ops, settlement_ops, db, results, live_tournament, players):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    await tournament_ops.update_status(live_tournament.id, "cancelled", admin_id=ADMIN_ID)

    with pytest.raises(NotEligibleForSettlement):
        await settlement_ops.distribute(results[0].id)
    assert await db.get_wallet_balance(players[0].id) == 0


async def test_zero_reward_is_settled_without_transactions(verification_ops, settlement_ops, result_ops, db, results, players):
    await verification_ops.verify_result(results[1].id, ADMIN_ID, kills=0, position=None)

    receipt = await settlement_ops.distribute(results[1].id)

    assert receipt.amount == 0
    assert receipt.transaction_ids == []
    assert await db.list_wallet_transactions(user_id=players[1].id) == []
    record = await result_ops.get_result(results[1].id)
    assert record.reward_distributed


async def test_unknown_result(settlement_ops):
    with pytest.raises(ResultNotFoundError):
        await settlement_ops.distribute(999)


async def test_failure_after_first_credit_rolls_back_whole_settlement(verification_ops, settlement_ops, result_ops, db, results, players, live_tournament, monkeypatch):
    await verification_ops.verify_result(results[0].id, ADMIN_ID, kills=4, position=1)
    original = db.credit_wallet
    calls = []

    async def credit_wallet(session, user_id, amount):
        calls.append(amount)
        if len(calls) == 2:
            raise OperationalError("UPDATE users", {}, Exception("disk I/O error"))
        return await original(session, user_id, amount)

    monkeypatch.setattr(db, "credit_wallet", credit_wallet)

    with pytest.raises(LedgerWriteFailure):
        await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    # The placement credit went through before the kill credit failed
    assert calls == [90, 20]
    assert await db.get_wallet_balance(players[0].id) == 0
    assert await db.list_wallet_transactions(user_id=players[0].id, include_failed=False) == []
    failed_rows = await db.list_wallet_transactions(user_id=players[0].id)
    assert [(t.amount, t.status) for t in failed_rows] == [(90, TransactionStatus.FAILED), (20, TransactionStatus.FAILED)]

    record = await result_ops.get_result(results[0].id)
    assert not record.reward_distributed
    assert (await db.get_tournament(live_tournament.id)).total_distributed == 0

    monkeypatch.undo()
    receipt = await settlement_ops.distribute(results[0].id, admin_id=ADMIN_ID)

    assert receipt.amount == 110
    assert not receipt.already_distributed
    assert await db.get_wallet_balance(players[0].id) == 110
