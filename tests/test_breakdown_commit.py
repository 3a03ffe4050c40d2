from decimal import Decimal

import pytest
from sqlalchemy import select

from cxdesk import models
from cxdesk.core.errors import (
    BreakdownValidationError,
    CommitFailedError,
    InvalidSessionTransitionError,
    MovementValidationError,
    NotAuthorizedForSessionError,
)
from cxdesk.services import breakdown_validator, session_state
from cxdesk.services.breakdown_validator import (
    BreakdownEntry,
    BreakdownLine,
    commit_breakdowns,
    create_swap,
    create_transfer,
    uncommit_breakdowns,
    validate_breakdown_sums,
)
from tests.factories import open_session, seed_order, stack_for

IN = models.BreakdownDirection.INBOUND
OUT = models.BreakdownDirection.OUTBOUND


def _entry(stack, count, direction):
    return BreakdownEntry(
        float_stack_id=stack.id,
        denomination_id=stack.denomination_id,
        count=Decimal(str(count)),
        direction=direction,
    )


def _swap(db, seed, session, entries, *, inbound_sum="500", outbound_sum="500"):
    return create_swap(
        db=db,
        ctx=seed.ctx,
        session_id=session.id,
        inbound_repository_id=seed.till.id,
        outbound_repository_id=seed.vault.id,
        ticker="USD",
        inbound_sum=inbound_sum,
        outbound_sum=outbound_sum,
        entries=entries,
    )


def _fail_on_call(monkeypatch, failing_call):
    original = breakdown_validator._insert_breakdown
    calls = {"n": 0}

    def flaky(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == failing_call:
            raise RuntimeError("connection dropped")
        return original(*args, **kwargs)

    monkeypatch.setattr(breakdown_validator, "_insert_breakdown", flaky)


def test_sums_match_when_count_times_value_equals_declared():
    totals = validate_breakdown_sums(
        [BreakdownLine(Decimal("5"), Decimal("100"), IN)], inbound_sum="500", outbound_sum="0"
    )

    assert totals == {IN: Decimal("500")}


def test_sum_mismatch_reports_direction_expected_and_actual():
    with pytest.raises(BreakdownValidationError) as excinfo:
        validate_breakdown_sums(
            [BreakdownLine(Decimal("4"), Decimal("100"), IN)], inbound_sum="500", outbound_sum="0"
        )

    assert excinfo.value.context() == {"direction": "INBOUND", "expected": "500", "actual": "400"}


def test_fractional_denominations_sum_exactly():
    lines = [BreakdownLine(Decimal("3"), Decimal("0.1"), OUT)]

    assert validate_breakdown_sums(lines, inbound_sum="0", outbound_sum="0.3") == {
        OUT: Decimal("0.3")
    }


def test_requested_directions_must_all_balance():
    with pytest.raises(BreakdownValidationError) as excinfo:
        validate_breakdown_sums(
            [BreakdownLine(Decimal("5"), Decimal("100"), IN)],
            inbound_sum="500",
            outbound_sum="500",
            directions=(IN, OUT),
        )

    assert excinfo.value.context()["direction"] == "OUTBOUND"


@pytest.mark.parametrize("count", ["0", "-1", "NaN"])
def test_non_positive_counts_are_rejected(count):
    with pytest.raises(BreakdownValidationError) as excinfo:
        validate_breakdown_sums(
            [BreakdownLine(Decimal(count), Decimal("100"), IN)], inbound_sum="0", outbound_sum="0"
        )

    assert excinfo.value.context()["reason"] == "invalid_count"


def test_swap_moves_close_counts_and_records_breakdowns(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)

    swap = _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])

    db.refresh(till_100)
    db.refresh(vault_100)
    assert till_100.close_count == 5
    assert vault_100.close_count == -5
    assert swap.swap_value == "500"
    assert swap.inbound_ticker == swap.outbound_ticker == "USD"

    rows = breakdown_validator.list_breakdowns(
        db=db, ctx=seed.ctx, parent_type="CURRENCY_SWAP", parent_id=swap.id
    )
    assert [(r.float_stack_id, r.count, r.direction) for r in rows] == [
        (till_100.id, "5", IN),
        (vault_100.id, "5", OUT),
    ]
    assert all(r.status == models.BreakdownStatus.COMMITTED for r in rows)
    assert db.query(models.Activity).filter(models.Activity.event == "SWAP_CREATED").count() == 1


def test_swap_with_wrong_sum_mutates_nothing(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)

    with pytest.raises(BreakdownValidationError):
        _swap(db, seed, session, [_entry(till_100, 4, IN), _entry(vault_100, 5, OUT)])

    db.refresh(till_100)
    db.refresh(vault_100)
    assert till_100.close_count == 0
    assert vault_100.close_count == 0
    assert db.query(models.CurrencySwap).count() == 0
    assert db.query(models.Breakdown).count() == 0


def test_swap_failure_mid_commit_rolls_everything_back(db, seed, monkeypatch):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    _fail_on_call(monkeypatch, 2)

    with pytest.raises(CommitFailedError):
        _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])

    db.refresh(till_100)
    db.refresh(vault_100)
    assert till_100.close_count == 0
    assert vault_100.close_count == 0
    assert db.query(models.CurrencySwap).count() == 0
    assert db.query(models.Breakdown).count() == 0
    assert db.query(models.Activity).filter(models.Activity.event == "SWAP_CREATED").count() == 0


def test_swap_rejects_stack_from_wrong_repository(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)

    with pytest.raises(BreakdownValidationError) as excinfo:
        _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(till_100, 5, OUT)])

    assert excinfo.value.context()["reason"] == "float_stack_repository_mismatch"


def test_swap_rejects_denomination_that_does_not_match_stack(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_20 = stack_for(db, session.id, seed.vault, seed.usd, 20)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    forged = BreakdownEntry(
        float_stack_id=vault_100.id,
        denomination_id=vault_20.denomination_id,
        count=Decimal("5"),
        direction=OUT,
    )

    with pytest.raises(BreakdownValidationError) as excinfo:
        _swap(db, seed, session, [_entry(till_100, 5, IN), forged])

    assert excinfo.value.context()["reason"] == "denomination_mismatch"


def test_swap_requires_non_zero_sums(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)

    with pytest.raises(MovementValidationError) as excinfo:
        _swap(db, seed, session, [_entry(till_100, 5, IN)], outbound_sum="0")

    assert excinfo.value.context()["field"] == "outbound_sum"


def test_swap_requires_open_float(db, seed):
    session = session_state.create_session(db=db, ctx=seed.ctx).session
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)

    with pytest.raises(InvalidSessionTransitionError) as excinfo:
        _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])

    assert excinfo.value.context()["action"] == "CREATE_MOVEMENT"


def test_swap_requires_session_authorization(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)

    with pytest.raises(NotAuthorizedForSessionError):
        create_swap(
            db=db,
            ctx=seed.other_ctx,
            session_id=session.id,
            inbound_repository_id=seed.till.id,
            outbound_repository_id=seed.vault.id,
            ticker="USD",
            inbound_sum="500",
            outbound_sum="500",
            entries=[_entry(till_100, 5, IN)],
        )


def test_transfer_moves_float_between_repositories(db, seed):
    session = open_session(db, seed)
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)
    till_5 = stack_for(db, session.id, seed.till, seed.usd, 5)
    vault_20 = stack_for(db, session.id, seed.vault, seed.usd, 20)

    transfer = create_transfer(
        db=db,
        ctx=seed.ctx,
        session_id=session.id,
        inbound_repository_id=seed.till.id,
        outbound_repository_id=seed.vault.id,
        ticker="USD",
        inbound_sum="45",
        outbound_sum="40",
        entries=[_entry(till_20, 2, IN), _entry(till_5, 1, IN), _entry(vault_20, 2, OUT)],
        notes="top up front till",
    )

    for stack in (till_20, till_5, vault_20):
        db.refresh(stack)
    assert (till_20.close_count, till_5.close_count, vault_20.close_count) == (2, 1, -2)
    assert transfer.notes == "top up front till"
    listed = breakdown_validator.list_transfers(db=db, ctx=seed.ctx, session_id=session.id)
    assert [t.id for t in listed] == [transfer.id]
    grouped = breakdown_validator.breakdowns_by_parent(
        db, models.BreakableType.FLOAT_TRANSFER, [transfer.id]
    )
    assert len(grouped[transfer.id]) == 3


def _committed(db, parent_type, parent_id):
    return (
        db.query(models.Breakdown)
        .filter(models.Breakdown.breakable_type == parent_type)
        .filter(models.Breakdown.breakable_id == parent_id)
        .filter(models.Breakdown.status == models.BreakdownStatus.COMMITTED)
        .all()
    )


def test_recommitting_a_swap_replaces_its_breakdowns(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    entries = [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)]
    swap = _swap(db, seed, session, entries)

    result = commit_breakdowns(
        db=db, ctx=seed.ctx, parent_type="CURRENCY_SWAP", parent_id=swap.id, entries=entries
    )

    db.refresh(till_100)
    db.refresh(vault_100)
    assert till_100.close_count == 5
    assert vault_100.close_count == -5
    committed = _committed(db, models.BreakableType.CURRENCY_SWAP, swap.id)
    assert sorted(r.id for r in committed) == sorted(result.breakdown_ids)
    assert db.query(models.Breakdown).filter(
        models.Breakdown.status == models.BreakdownStatus.CANCELLED
    ).count() == 2


def test_recommit_only_replaces_the_directions_it_carries(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    swap = _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])

    commit_breakdowns(
        db=db,
        ctx=seed.ctx,
        parent_type="CURRENCY_SWAP",
        parent_id=swap.id,
        entries=[_entry(till_100, 4, IN), _entry(till_20, 5, IN)],
    )

    for stack in (till_100, till_20, vault_100):
        db.refresh(stack)
    assert (till_100.close_count, till_20.close_count, vault_100.close_count) == (4, 5, -5)
    committed = _committed(db, models.BreakableType.CURRENCY_SWAP, swap.id)
    assert sorted((r.float_stack_id, r.direction) for r in committed) == sorted(
        [(till_100.id, IN), (till_20.id, IN), (vault_100.id, OUT)]
    )


def test_recommitting_an_order_does_not_double_spend(db, seed):
    session = open_session(db, seed)
    order = seed_order(
        db, session, inbound_ticker="USD", inbound_sum="40", inbound_repository_id=seed.till.id
    )
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)

    for _ in range(2):
        commit_breakdowns(
            db=db,
            ctx=seed.ctx,
            parent_type="ORDER",
            parent_id=order.id,
            entries=[_entry(till_20, 2, IN)],
        )

    db.refresh(till_20)
    assert till_20.spent_during_session == "-2"
    assert len(_committed(db, models.BreakableType.ORDER, order.id)) == 1


def test_failed_recommit_keeps_the_swap_and_its_movement(db, seed, monkeypatch):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    swap = _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])
    swap_id = swap.id
    _fail_on_call(monkeypatch, 1)

    with pytest.raises(CommitFailedError):
        commit_breakdowns(
            db=db,
            ctx=seed.ctx,
            parent_type="CURRENCY_SWAP",
            parent_id=swap_id,
            entries=[_entry(till_100, 5, IN)],
        )

    assert db.get(models.CurrencySwap, swap_id) is not None
    db.refresh(till_100)
    db.refresh(vault_100)
    assert till_100.close_count == 5
    assert vault_100.close_count == -5
    assert len(_committed(db, models.BreakableType.CURRENCY_SWAP, swap_id)) == 2
    orphans = (
        db.query(models.Breakdown)
        .filter(models.Breakdown.breakable_type == models.BreakableType.CURRENCY_SWAP)
        .filter(models.Breakdown.breakable_id.notin_(select(models.CurrencySwap.id)))
        .count()
    )
    assert orphans == 0


def test_failed_first_commit_removes_an_empty_swap(db, seed, monkeypatch):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    swap = models.CurrencySwap(
        organization_id=seed.org.id,
        session_id=session.id,
        user_id=seed.user.id,
        currency_id=seed.usd.id,
        inbound_repository_id=seed.till.id,
        outbound_repository_id=seed.vault.id,
        inbound_ticker="USD",
        outbound_ticker="USD",
        inbound_sum="500",
        outbound_sum="500",
        swap_value="500",
    )
    db.add(swap)
    db.commit()
    swap_id = swap.id
    _fail_on_call(monkeypatch, 1)

    with pytest.raises(CommitFailedError):
        commit_breakdowns(
            db=db,
            ctx=seed.ctx,
            parent_type="CURRENCY_SWAP",
            parent_id=swap_id,
            entries=[_entry(till_100, 5, IN)],
        )

    assert db.get(models.CurrencySwap, swap_id) is None
    db.refresh(till_100)
    assert till_100.close_count == 0
    assert db.query(models.Breakdown).count() == 0


@pytest.mark.parametrize(
    "status", [models.SessionStatus.FLOAT_CLOSE_COMPLETE, models.SessionStatus.CLOSED]
)
def test_commit_and_uncommit_leave_closed_sessions_alone(db, seed, status):
    session = open_session(db, seed)
    order = seed_order(
        db, session, inbound_ticker="USD", inbound_sum="40", inbound_repository_id=seed.till.id
    )
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)
    entries = [_entry(till_20, 2, IN)]
    commit_breakdowns(
        db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id, entries=entries
    )
    session.status = status
    db.commit()

    with pytest.raises(InvalidSessionTransitionError) as excinfo:
        commit_breakdowns(
            db=db,
            ctx=seed.ctx,
            parent_type="ORDER",
            parent_id=order.id,
            entries=entries,
        )
    assert excinfo.value.context()["action"] == "COMMIT_BREAKDOWNS"

    with pytest.raises(InvalidSessionTransitionError) as excinfo:
        uncommit_breakdowns(db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id)
    assert excinfo.value.context()["action"] == "UNCOMMIT_BREAKDOWNS"

    db.refresh(till_20)
    assert till_20.spent_during_session == "-2"
    assert len(_committed(db, models.BreakableType.ORDER, order.id)) == 1


def test_commit_requires_at_least_one_entry(db, seed):
    session = open_session(db, seed)
    order = seed_order(db, session, inbound_ticker="USD", inbound_sum="40")

    with pytest.raises(BreakdownValidationError) as excinfo:
        commit_breakdowns(db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id, entries=[])

    assert excinfo.value.context()["reason"] == "empty"


def test_order_commit_and_uncommit_track_spend(db, seed):
    session = open_session(db, seed)
    order = seed_order(
        db,
        session,
        inbound_ticker="USD",
        inbound_sum="40",
        inbound_repository_id=seed.till.id,
        outbound_ticker="BTC",
        outbound_sum="0.3",
        outbound_repository_id=seed.wallet.id,
    )
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)
    wallet_tenth = stack_for(db, session.id, seed.wallet, seed.btc, 0.1)

    result = commit_breakdowns(
        db=db,
        ctx=seed.ctx,
        parent_type="ORDER",
        parent_id=order.id,
        entries=[_entry(till_20, 2, IN), _entry(wallet_tenth, 3, OUT)],
    )

    assert result.success is True
    assert len(result.breakdown_ids) == 2
    db.refresh(till_20)
    db.refresh(wallet_tenth)
    assert till_20.spent_during_session == "-2"
    assert wallet_tenth.spent_during_session == "3"
    assert till_20.close_count == 0

    reversed_ = uncommit_breakdowns(db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id)

    assert sorted(reversed_.breakdown_ids) == sorted(result.breakdown_ids)
    db.refresh(till_20)
    db.refresh(wallet_tenth)
    assert till_20.spent_during_session == "0"
    assert wallet_tenth.spent_during_session == "0"
    rows = breakdown_validator.list_breakdowns(
        db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id
    )
    assert all(r.status == models.BreakdownStatus.CANCELLED for r in rows)

    # Nothing left to reverse.
    again = uncommit_breakdowns(db=db, ctx=seed.ctx, parent_type="ORDER", parent_id=order.id)
    assert again.breakdown_ids == []


def test_order_commit_with_wrong_sum_keeps_the_order(db, seed):
    session = open_session(db, seed)
    order = seed_order(
        db, session, inbound_ticker="USD", inbound_sum="40", inbound_repository_id=seed.till.id
    )
    till_20 = stack_for(db, session.id, seed.till, seed.usd, 20)

    with pytest.raises(BreakdownValidationError):
        commit_breakdowns(
            db=db,
            ctx=seed.ctx,
            parent_type="ORDER",
            parent_id=order.id,
            entries=[_entry(till_20, 1, IN)],
        )

    assert db.get(models.Order, order.id) is not None
    db.refresh(till_20)
    assert till_20.spent_during_session == "0"


def test_only_orders_can_be_uncommitted(db, seed):
    session = open_session(db, seed)
    till_100 = stack_for(db, session.id, seed.till, seed.usd, 100)
    vault_100 = stack_for(db, session.id, seed.vault, seed.usd, 100)
    swap = _swap(db, seed, session, [_entry(till_100, 5, IN), _entry(vault_100, 5, OUT)])

    with pytest.raises(BreakdownValidationError) as excinfo:
        uncommit_breakdowns(db=db, ctx=seed.ctx, parent_type="CURRENCY_SWAP", parent_id=swap.id)

    assert excinfo.value.context()["reason"] == "unsupported_parent_type"
