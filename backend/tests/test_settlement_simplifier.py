from datetime import datetime, timedelta, timezone

from settleup.money import Money
from settleup.schemas import (
    UNKNOWN_MEMBER_NAME,
    Expense,
    Member,
    SettlementRecord,
    SettlementStatus,
    Split,
)
from settleup.services.balance_aggregator import aggregate_balances
from settleup.services.settlement_simplifier import simplify_settlements

MEMBERS = [Member(id="A", name="Alice"), Member(id="B", name="Bob"), Member(id="C", name="Carol")]
T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def expense(eid, paid_by, amount, splits):
    return Expense(
        id=eid, group_id="g1", amount=amount, paid_by=paid_by,
        splits=[Split(member_id=m, amount=a) for m, a in splits.items()],
    )


def record(rid, from_id, to_id, amount, status, minutes=0):
    return SettlementRecord(
        id=rid, group_id="g1", from_id=from_id, to_id=to_id, amount=amount,
        status=status, created_at=T0 + timedelta(minutes=minutes),
    )


def run(expenses, records, members=MEMBERS):
    settled = [r for r in records if r.status == SettlementStatus.SETTLED]
    return simplify_settlements(aggregate_balances(members, expenses, settled), records)


DINNER = [expense("e1", "A", 90, {"A": 30, "B": 30, "C": 30})]


def test_two_pending_instructions_for_equal_split():
    out = run(DINNER, [])
    assert [(i.from_member.id, i.to_member.id, i.amount, i.status) for i in out] == [
        ("B", "A", Money.of(30), SettlementStatus.PENDING),
        ("C", "A", Money.of(30), SettlementStatus.PENDING),
    ]
    assert all(i.synthetic and i.record_id is None for i in out)
    assert out[0].id == "g1-B-A-30.00"
    assert out[0].from_member.name == "Bob"


def test_settled_pair_is_reported_as_settled():
    out = run(DINNER, [record("r-settled-1", "B", "A", 30, SettlementStatus.SETTLED)])
    assert [(i.from_member.id, i.to_member.id, i.amount, i.status) for i in out] == [
        ("B", "A", Money.of(30), SettlementStatus.SETTLED),
        ("C", "A", Money.of(30), SettlementStatus.PENDING),
    ]
    settled = out[0]
    assert settled.synthetic is False
    assert settled.id == settled.record_id == "r-settled-1"


def test_partial_settlement_leaves_remaining_pending_only():
    out = run(DINNER, [record("r1", "B", "A", 10, SettlementStatus.SETTLED)])
    b_to_a = [i for i in out if i.from_member.id == "B"]
    assert len(b_to_a) == 1
    assert b_to_a[0].status == SettlementStatus.PENDING
    assert b_to_a[0].amount == Money.of(20)


def test_several_settled_records_sum_into_synthetic_settled_instruction():
    records = [
        record("r1", "B", "A", 10, SettlementStatus.SETTLED, minutes=1),
        record("r2", "B", "A", 20, SettlementStatus.SETTLED, minutes=2),
    ]
    out = run(DINNER, records)
    b_to_a = [i for i in out if i.from_member.id == "B"][0]
    assert b_to_a.status == SettlementStatus.SETTLED
    assert b_to_a.amount == Money.of(30)
    assert b_to_a.synthetic is True


def test_pending_instruction_mirrors_matching_pending_record():
    out = run(DINNER, [record("persisted-pending-record-0001", "C", "A", 30, SettlementStatus.PENDING)])
    c_to_a = [i for i in out if i.from_member.id == "C"][0]
    assert c_to_a.synthetic is False
    assert c_to_a.record_id == "persisted-pending-record-0001"
    assert c_to_a.status == SettlementStatus.PENDING


def test_pending_record_with_stale_amount_is_not_mirrored():
    out = run(DINNER, [record("old", "C", "A", 12, SettlementStatus.PENDING)])
    c_to_a = [i for i in out if i.from_member.id == "C"][0]
    assert c_to_a.synthetic is True
    assert c_to_a.amount == Money.of(30)


def test_no_cross_member_cancellation():
    expenses = [
        expense("e1", "B", 10, {"A": 10}),
        expense("e2", "C", 10, {"B": 10}),
    ]
    out = run(expenses, [])
    assert [(i.from_member.id, i.to_member.id) for i in out] == [("A", "B"), ("B", "C")]


def test_unknown_member_gets_placeholder_label():
    expenses = [expense("e1", "A", 60, {"A": 30, "X": 30})]
    out = run(expenses, [])
    assert len(out) == 1
    assert out[0].from_member.id == "X"
    assert out[0].from_member.name == UNKNOWN_MEMBER_NAME


def test_empty_roster_still_emits_with_placeholders():
    out = run([expense("e1", "A", 20, {"A": 10, "B": 10})], [], members=[])
    assert len(out) == 1
    assert out[0].from_member.name == UNKNOWN_MEMBER_NAME
    assert out[0].to_member.name == UNKNOWN_MEMBER_NAME


def test_no_debts_gives_empty_list():
    assert run([], []) == []


def test_output_is_stable_across_runs():
    records = [record("r1", "B", "A", 30, SettlementStatus.SETTLED)]
    assert run(DINNER, records) == run(DINNER, records)


def test_tolerance_boundary_on_settlement():
    exact = run(DINNER, [record("r1", "B", "A", "29.99", SettlementStatus.SETTLED)])
    assert [i.status for i in exact if i.from_member.id == "B"] == [SettlementStatus.SETTLED]

    short = run(DINNER, [record("r1", "B", "A", "29.98", SettlementStatus.SETTLED)])
    b_to_a = [i for i in short if i.from_member.id == "B"]
    assert [i.status for i in b_to_a] == [SettlementStatus.PENDING]
    assert b_to_a[0].amount == Money.of("0.02")
