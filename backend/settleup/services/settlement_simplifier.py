"""Reduce pairwise balances to one status-tagged payment instruction per pair.

This is deliberately per-pair: A owes B and B owes C stay two instructions.
"""
import logging
from typing import Iterable, Optional

from settleup.money import Money, ZERO
from settleup.schemas import (
    UNKNOWN_MEMBER_NAME,
    BalanceMap,
    Member,
    SettlementInstruction,
    SettlementRecord,
    SettlementStatus,
)

logger = logging.getLogger(__name__)


def synthetic_instruction_id(group_id: Optional[str], from_id: str, to_id: str, amount: Money) -> str:
    return f"{group_id}-{from_id}-{to_id}-{amount}"


def _member(balance_map: BalanceMap, member_id: str) -> Member:
    for m in balance_map.members:
        if m.id == member_id:
            return m
    return Member(id=member_id, name=UNKNOWN_MEMBER_NAME)


def _find_record(records: list[SettlementRecord], amount: Money) -> Optional[SettlementRecord]:
    # latest matching record wins
    for record in reversed(records):
        if record.amount.effectively_equals(amount):
            return record
    return None


def simplify_settlements(
    balance_map: BalanceMap,
    settlement_records: Iterable[SettlementRecord],
) -> list[SettlementInstruction]:
    """
    balance_map: output of aggregate_balances.
    settlement_records: full history for the group, pending and settled.
    Returns instructions in pair order; never raises for bad data.
    """
    group_id = balance_map.group_id
    pending_by_pair: dict[tuple[str, str], list[SettlementRecord]] = {}
    settled_by_pair: dict[tuple[str, str], list[SettlementRecord]] = {}
    settled_total: dict[tuple[str, str], Money] = {}
    history_pairs: list[tuple[str, str]] = []

    ordered = sorted(
        settlement_records,
        key=lambda r: (r.created_at is not None, r.created_at.timestamp() if r.created_at else 0),
    )
    for record in ordered:
        if group_id is not None and record.group_id != group_id:
            continue
        key = (record.from_id, record.to_id)
        if key not in balance_map.pairs and key not in history_pairs and record.from_id != record.to_id:
            history_pairs.append(key)
        if record.status == SettlementStatus.SETTLED:
            settled_by_pair.setdefault(key, []).append(record)
            settled_total[key] = settled_total.get(key, ZERO) + record.amount
        else:
            pending_by_pair.setdefault(key, []).append(record)

    out: list[SettlementInstruction] = []
    seen: set[tuple[str, str, int, SettlementStatus]] = set()

    for key in list(balance_map.pairs) + history_pairs:
        from_id, to_id = key
        outstanding = balance_map.outstanding(from_id, to_id)
        paid = settled_total.get(key, ZERO)

        if outstanding.exceeds_tolerance():
            status, amount = SettlementStatus.PENDING, outstanding
            record = _find_record(pending_by_pair.get(key, []), amount)
        elif paid.exceeds_tolerance():
            status, amount = SettlementStatus.SETTLED, paid
            record = _find_record(settled_by_pair.get(key, []), amount)
        else:
            continue

        amount = amount.round_to(2)
        dedup_key = (from_id, to_id, amount.cents, status)
        if dedup_key in seen:
            logger.debug(f"Dropping duplicate {status.value} instruction {from_id}->{to_id} {amount}")
            continue
        seen.add(dedup_key)

        if record is not None:
            instruction_id, synthetic, record_id = record.id, False, record.id
        else:
            instruction_id = synthetic_instruction_id(group_id, from_id, to_id, amount)
            synthetic, record_id = True, None

        out.append(SettlementInstruction(
            id=instruction_id,
            group_id=group_id,
            from_member=_member(balance_map, from_id),
            to_member=_member(balance_map, to_id),
            amount=amount,
            status=status,
            synthetic=synthetic,
            record_id=record_id,
        ))
    return out
