"""Settle-up operations: compute a group's instructions, request and mark settlements."""
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

from settleup.exceptions import Conflict, NotFound
from settleup.schemas import BalanceMap, SettlementInstruction, SettlementRecord, SettlementStatus
from settleup.services.balance_aggregator import aggregate_balances
from settleup.services.settlement_simplifier import simplify_settlements
from settleup.services.store import Store

logger = logging.getLogger(__name__)

SETTLE_MAX_ATTEMPTS = int(os.getenv("SETTLE_MAX_ATTEMPTS", "3"))


def _load(store: Store, group_id: str) -> tuple[BalanceMap, list[SettlementRecord]]:
    members = store.get_members(group_id)
    expenses = store.get_expenses(group_id)
    records = store.get_settlement_records(group_id)
    settled = [r for r in records if r.status == SettlementStatus.SETTLED]
    return aggregate_balances(members, expenses, settled, group_id=group_id), records


def compute_group_settlements(store: Store, group_id: str) -> tuple[BalanceMap, list[SettlementInstruction]]:
    balance_map, records = _load(store, group_id)
    return balance_map, simplify_settlements(balance_map, records)


def _guard_key(kind: str, group_id: str, from_id: str, to_id: str, balance_map: BalanceMap) -> str:
    pair = balance_map.pairs.get((from_id, to_id))
    settled_cents = pair.settled.cents if pair else 0
    return f"{kind}:{group_id}:{from_id}:{to_id}:{settled_cents}"


def _pending_for_pair(records: list[SettlementRecord], from_id: str, to_id: str) -> list[SettlementRecord]:
    return [
        r for r in records
        if r.status == SettlementStatus.PENDING and r.from_id == from_id and r.to_id == to_id
    ]


def request_settlement(store: Store, group_id: str, from_id: str, to_id: str) -> SettlementRecord:
    """
    Create (or return the existing) pending record for what from_id currently owes to_id.

    An existing pending record is brought up to the current outstanding amount.
    Raises NotFound when nothing is owed.
    """
    for _ in range(SETTLE_MAX_ATTEMPTS):
        balance_map, records = _load(store, group_id)
        outstanding = balance_map.outstanding(from_id, to_id)
        if not outstanding.exceeds_tolerance():
            raise NotFound(f"{from_id} owes nothing to {to_id} in group {group_id}")

        pending = _pending_for_pair(records, from_id, to_id)
        if pending:
            current = pending[0]
            if current.amount.effectively_equals(outstanding):
                return current
            try:
                refreshed = store.write_settlement_record(
                    current.model_copy(update={"amount": outstanding}),
                    expected_status=SettlementStatus.PENDING,
                    expected_version=current.version,
                )
            except Conflict:
                logger.info(f"Settlement request {current.id} changed while refreshing its amount")
                continue
            logger.info(f"Refreshed settlement request {current.id}: {current.amount} -> {outstanding}")
            return refreshed

        record = SettlementRecord(
            id=uuid.uuid4().hex,
            group_id=group_id,
            from_id=from_id,
            to_id=to_id,
            amount=outstanding,
            status=SettlementStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            guard_key=_guard_key("pending", group_id, from_id, to_id, balance_map),
        )
        try:
            created = store.write_settlement_record(record)
        except Conflict:
            # Another request for the same pair landed first; pick it up on the next read.
            logger.info(f"Concurrent settlement request for {from_id}->{to_id} in group {group_id}")
            continue
        logger.info(f"Requested settlement {created.id}: {from_id}->{to_id} {outstanding}")
        return created
    raise Conflict(f"Could not record a settlement request for {from_id}->{to_id}")


def mark_settled(
    store: Store,
    group_id: str,
    from_id: str,
    to_id: str,
    settled_by: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> SettlementRecord:
    """
    Transition the pair's pending record to settled, or record a new settled
    payment when the pair's debt was only ever computed.

    Raises NotFound when nothing is owed (a pending record is left as it is), and
    Conflict when another writer settled the pair first.
    """
    attempts = max_attempts or SETTLE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        balance_map, records = _load(store, group_id)
        outstanding = balance_map.outstanding(from_id, to_id)
        pending = _pending_for_pair(records, from_id, to_id)
        now = datetime.now(timezone.utc)

        if not outstanding.exceeds_tolerance():
            raise NotFound(f"{from_id} owes nothing to {to_id} in group {group_id}")

        if pending:
            current = pending[0]
            settled = current.model_copy(update={
                "status": SettlementStatus.SETTLED,
                "amount": outstanding,
                "settled_at": now,
                "settled_by": settled_by,
            })
            try:
                record = store.write_settlement_record(
                    settled,
                    expected_status=SettlementStatus.PENDING,
                    expected_version=current.version,
                )
            except Conflict:
                latest = store.get_settlement_record(current.id)
                if latest is None or latest.status == SettlementStatus.SETTLED:
                    raise Conflict(f"Settlement {current.id} was already settled")
                logger.info(f"Settlement {current.id} changed underneath us, attempt {attempt}/{attempts}")
                continue
            logger.info(f"Marked settlement {record.id} settled: {from_id}->{to_id} {record.amount}")
            return record

        record = SettlementRecord(
            id=uuid.uuid4().hex,
            group_id=group_id,
            from_id=from_id,
            to_id=to_id,
            amount=outstanding,
            status=SettlementStatus.SETTLED,
            created_at=now,
            settled_at=now,
            settled_by=settled_by,
            guard_key=_guard_key("settled", group_id, from_id, to_id, balance_map),
        )
        try:
            created = store.write_settlement_record(record)
        except Conflict:
            raise Conflict(f"Payment from {from_id} to {to_id} was already settled")
        logger.info(f"Recorded settled payment {created.id}: {from_id}->{to_id} {outstanding}")
        return created

    raise Conflict(f"Gave up settling {from_id}->{to_id} after {attempts} attempts")

