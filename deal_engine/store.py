"""
Repositories

Interfaces to the backend that owns deals and approval rows, plus an
in-memory implementation used by the API and the tests.

Approval transitions go through compare_and_set so that two concurrent
reviews of one row cannot both succeed. Deal status changes made by
reviews go through compare_and_set_status for the same reason.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime

from .errors import ApprovalNotFound, DealNotFound
from .models import Approval, Deal


class DealRepository(ABC):
    @abstractmethod
    def get(self, deal_id: int) -> Deal:
        """Return the deal or raise DealNotFound."""

    @abstractmethod
    def save(self, deal: Deal) -> Deal:
        pass

    @abstractmethod
    def update_status(self, deal_id: int, status: str, changed_at: datetime) -> Deal:
        pass

    @abstractmethod
    def compare_and_set_status(self, deal_id: int, expected_status: str, status: str, changed_at: datetime) -> bool:
        """Change the status only if it is still expected_status."""


class ApprovalRepository(ABC):
    @abstractmethod
    def list_for_deal(self, deal_id: int) -> list[Approval]:
        """Current-round approvals for a deal, ordered by stage."""

    @abstractmethod
    def get(self, approval_id: int) -> Approval:
        """Return the approval or raise ApprovalNotFound."""

    @abstractmethod
    def add_many(self, approvals: list[Approval]) -> list[Approval]:
        """Store new approvals and return them with ids assigned."""

    @abstractmethod
    def compare_and_set(self, approval_id: int, expected_status: str, approval: Approval) -> bool:
        """Replace the row only if its status is still expected_status."""

    @abstractmethod
    def supersede_for_deal(self, deal_id: int) -> int:
        """Retire the deal's current round. Returns the number of rows retired."""


class InMemoryDealRepository(DealRepository):
    def __init__(self, deals=None):
        self._lock = threading.Lock()
        self._deals: dict[int, Deal] = {}
        for deal in deals or ():
            self._deals[deal.id] = replace(deal)

    def get(self, deal_id: int) -> Deal:
        with self._lock:
            if deal_id not in self._deals:
                raise DealNotFound(f"Deal {deal_id} not found")
            return replace(self._deals[deal_id])

    def save(self, deal: Deal) -> Deal:
        with self._lock:
            self._deals[deal.id] = replace(deal)
            return replace(deal)

    def update_status(self, deal_id: int, status: str, changed_at: datetime) -> Deal:
        with self._lock:
            if deal_id not in self._deals:
                raise DealNotFound(f"Deal {deal_id} not found")
            deal = replace(self._deals[deal_id], status=status, last_status_change=changed_at)
            self._deals[deal_id] = deal
            return replace(deal)

    def compare_and_set_status(self, deal_id: int, expected_status: str, status: str, changed_at: datetime) -> bool:
        with self._lock:
            if deal_id not in self._deals:
                raise DealNotFound(f"Deal {deal_id} not found")
            if self._deals[deal_id].status != expected_status:
                return False
            self._deals[deal_id] = replace(self._deals[deal_id], status=status, last_status_change=changed_at)
            return True


class InMemoryApprovalRepository(ApprovalRepository):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict[int, Approval] = {}
        self._superseded: dict[int, Approval] = {}
        self._next_id = 1

    def list_for_deal(self, deal_id: int) -> list[Approval]:
        with self._lock:
            rows = [replace(row) for row in self._rows.values() if row.deal_id == deal_id]
        return sorted(rows, key=lambda row: (row.approval_stage, row.id))

    def history_for_deal(self, deal_id: int) -> list[Approval]:
        """Rows from superseded rounds, oldest first."""
        with self._lock:
            rows = [replace(row) for row in self._superseded.values() if row.deal_id == deal_id]
        return sorted(rows, key=lambda row: (row.workflow_round, row.approval_stage, row.id))

    def get(self, approval_id: int) -> Approval:
        with self._lock:
            row = self._rows.get(approval_id)
            if row is None:
                raise ApprovalNotFound(f"Approval {approval_id} not found")
            return replace(row)

    def add_many(self, approvals: list[Approval]) -> list[Approval]:
        stored = []
        with self._lock:
            for approval in approvals:
                row = replace(approval, id=self._next_id)
                self._next_id += 1
                self._rows[row.id] = row
                stored.append(replace(row))
        return stored

    def compare_and_set(self, approval_id: int, expected_status: str, approval: Approval) -> bool:
        with self._lock:
            current = self._rows.get(approval_id)
            if current is None:
                raise ApprovalNotFound(f"Approval {approval_id} not found")
            if current.status != expected_status:
                return False
            self._rows[approval_id] = replace(approval, id=approval_id)
            return True

    def supersede_for_deal(self, deal_id: int) -> int:
        with self._lock:
            ids = [row_id for row_id, row in self._rows.items() if row.deal_id == deal_id]
            for row_id in ids:
                self._superseded[row_id] = self._rows.pop(row_id)
            return len(ids)
