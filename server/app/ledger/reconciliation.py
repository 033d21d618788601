"""Replay the transaction log and compare it with the stored allocations."""
from dataclasses import dataclass
import logging

from sqlalchemy.orm import Session

from app.models import ProjectInventory, Transaction

from .service import ACTION_BORROW


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationDrift:
    project_id: int
    item_id: int
    expected_quantity: int
    recorded_quantity: int

    @property
    def delta(self) -> int:
        return self.recorded_quantity - self.expected_quantity


def replay_allocations(db: Session, tenant_id: int) -> dict[tuple[int, int], int]:
    """Fold the tenant's log into the balance each (project, item) pair should hold."""
    rows = (
        db.query(Transaction.project_id, Transaction.item_id, Transaction.action, Transaction.quantity)
        .filter(Transaction.tenant_id == tenant_id)
        .order_by(Transaction.date.asc(), Transaction.id.asc())
        .all()
    )
    balances: dict[tuple[int, int], int] = {}
    for project_id, item_id, action, quantity in rows:
        key = (project_id, item_id)
        signed = quantity if action == ACTION_BORROW else -quantity
        balances[key] = balances.get(key, 0) + signed
    return balances


def _recorded_allocations(db: Session, tenant_id: int) -> dict[tuple[int, int], ProjectInventory]:
    rows = db.query(ProjectInventory).filter(ProjectInventory.tenant_id == tenant_id).all()
    return {(row.project_id, row.item_id): row for row in rows}


def find_allocation_drift(db: Session, tenant_id: int) -> list[AllocationDrift]:
    expected = replay_allocations(db, tenant_id)
    recorded = _recorded_allocations(db, tenant_id)

    drift: list[AllocationDrift] = []
    for key in sorted(set(expected) | set(recorded)):
        expected_qty = expected.get(key, 0)
        recorded_qty = recorded[key].quantity if key in recorded else 0
        if expected_qty != recorded_qty:
            drift.append(
                AllocationDrift(
                    project_id=key[0],
                    item_id=key[1],
                    expected_quantity=expected_qty,
                    recorded_quantity=recorded_qty,
                )
            )
    if drift:
        logger.warning("Allocation drift detected: tenant_id=%s pairs=%s", tenant_id, len(drift))
    return drift


def rebuild_allocations(db: Session, tenant_id: int) -> int:
    """Rewrite ProjectInventory from the log. Item pool quantities are left untouched."""
    recorded = _recorded_allocations(db, tenant_id)
    changed = 0
    for entry in find_allocation_drift(db, tenant_id):
        key = (entry.project_id, entry.item_id)
        row = recorded.get(key)
        if entry.expected_quantity < 0:
            logger.warning(
                "Log replays to a negative balance: tenant_id=%s project_id=%s item_id=%s balance=%s",
                tenant_id,
                entry.project_id,
                entry.item_id,
                entry.expected_quantity,
            )
        if entry.expected_quantity <= 0:
            if row is None:
                continue
            db.delete(row)
        elif row is None:
            db.add(
                ProjectInventory(
                    tenant_id=tenant_id,
                    project_id=entry.project_id,
                    item_id=entry.item_id,
                    quantity=entry.expected_quantity,
                )
            )
        else:
            row.quantity = entry.expected_quantity
        changed += 1
    return changed
