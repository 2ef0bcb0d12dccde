"""Keeps a group's settlements view current by recomputing on every store change."""
import logging
from typing import Callable, Optional

from settleup.exceptions import SettlementError
from settleup.schemas import BalanceMap, SettlementInstruction, SettlementStatus
from settleup.services.settle import compute_group_settlements
from settleup.services.store import Store

logger = logging.getLogger(__name__)


class SettlementView:
    """
    Reducer-style view: each change notification triggers a full, fresh
    computation that replaces the previous state. Nothing is patched in place.
    """

    def __init__(self, store: Store, group_id: str):
        self.store = store
        self.group_id = group_id
        self.balances: Optional[BalanceMap] = None
        self.instructions: list[SettlementInstruction] = []
        self.error: Optional[SettlementError] = None
        self.revision = 0
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> "SettlementView":
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.group_id, self.on_change)
        self.on_change(self.group_id)
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_change(self, group_id: str) -> None:
        if group_id != self.group_id:
            return
        try:
            balances, instructions = compute_group_settlements(self.store, group_id)
        except SettlementError as exc:
            logger.warning(f"Settlement recomputation failed for group {group_id}: {exc}")
            self.balances, self.instructions, self.error = None, [], exc
        else:
            self.balances, self.instructions, self.error = balances, instructions, None
        self.revision += 1

    @property
    def pending(self) -> list[SettlementInstruction]:
        return [i for i in self.instructions if i.status == SettlementStatus.PENDING]
