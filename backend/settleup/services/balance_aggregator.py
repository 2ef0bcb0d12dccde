"""Turn expenses and settled records into per-direction balances for every member pair."""
import logging
from typing import Iterable, Optional

from settleup.exceptions import InvalidInput, UnknownMember
from settleup.money import Money, ZERO
from settleup.schemas import BalanceMap, Expense, Member, PairwiseBalance, SettlementRecord, SettlementStatus

logger = logging.getLogger(__name__)


def aggregate_balances(
    members: Optional[list[Member]],
    expenses: Iterable[Expense],
    settled_records: Iterable[SettlementRecord],
    group_id: Optional[str] = None,
) -> BalanceMap:
    """
    Returns a BalanceMap with one PairwiseBalance per ordered (debtor, creditor) pair.

    The two directions of a pair are kept apart; netting them is left to the caller.
    Members referenced by data but missing from the roster are reported as
    diagnostics and kept as extra pairs after the roster pairs.
    """
    if members is None:
        raise InvalidInput("members is required")
    expenses = list(expenses)
    settled_records = list(settled_records)

    if group_id is None:
        if expenses:
            group_id = expenses[0].group_id
        elif settled_records:
            group_id = settled_records[0].group_id

    roster = {m.id for m in members}
    gross: dict[tuple[str, str], Money] = {}
    settled: dict[tuple[str, str], Money] = {}
    for a in members:
        for b in members:
            if a.id != b.id:
                gross[(a.id, b.id)] = ZERO
                settled[(a.id, b.id)] = ZERO

    diagnostics: list[str] = []
    reported: set[str] = set()

    def check(member_id: str, expense_id: Optional[str] = None, record_id: Optional[str] = None):
        if member_id in roster or member_id in reported:
            return
        reported.add(member_id)
        err = UnknownMember(member_id, expense_id=expense_id, record_id=record_id)
        logger.warning(str(err))
        diagnostics.append(str(err))

    def pair_key(key: tuple[str, str]) -> tuple[str, str]:
        if key not in gross:
            gross[key] = ZERO
            settled[key] = ZERO
        return key

    for expense in expenses:
        payer = expense.paid_by
        check(payer, expense_id=expense.id)
        split_total = sum((s.amount for s in expense.splits), ZERO)
        if not split_total.effectively_equals(expense.amount):
            msg = f"Expense {expense.id} splits total {split_total} but amount is {expense.amount}"
            logger.warning(msg)
            diagnostics.append(msg)
        for split in expense.splits:
            if split.member_id == payer or not split.amount.exceeds_tolerance():
                continue
            check(split.member_id, expense_id=expense.id)
            key = pair_key((split.member_id, payer))
            gross[key] = gross[key] + split.amount

    for record in settled_records:
        if record.status != SettlementStatus.SETTLED:
            logger.debug(f"Ignoring {record.status.value} record {record.id} during aggregation")
            continue
        if group_id is not None and record.group_id != group_id:
            logger.debug(f"Ignoring record {record.id} from group {record.group_id}")
            continue
        if record.from_id == record.to_id:
            continue
        check(record.from_id, record_id=record.id)
        check(record.to_id, record_id=record.id)
        key = pair_key((record.from_id, record.to_id))
        settled[key] = settled[key] + record.amount

    pairs: dict[tuple[str, str], PairwiseBalance] = {}
    for key, owed in gross.items():
        remaining = owed - settled[key]
        if not remaining.exceeds_tolerance():
            remaining = ZERO
        pairs[key] = PairwiseBalance(
            from_id=key[0],
            to_id=key[1],
            gross_owed=owed,
            settled=settled[key],
            outstanding=remaining,
        )

    return BalanceMap(group_id=group_id, members=list(members), pairs=pairs, diagnostics=diagnostics)
