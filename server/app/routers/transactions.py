from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.auth import get_current_user, require_admin
from app.db import get_db
from app.ledger import schemas
from app.ledger.reconciliation import find_allocation_drift, rebuild_allocations
from app.ledger.service import (
    AllocationNotFoundError,
    ItemNotFoundError,
    LedgerError,
    LedgerResult,
    ProjectNotFoundError,
    borrow_item,
    get_transaction,
    list_transactions,
    return_item,
)
from app.models import Transaction, User
from app.projects.service import client_summary


router = APIRouter(prefix="/api/transactions", tags=["transactions"])

NOT_FOUND_ERRORS = (ProjectNotFoundError, ItemNotFoundError, AllocationNotFoundError)


def _to_response(txn: Transaction) -> schemas.TransactionResponse:
    return schemas.TransactionResponse(
        transaction_id=txn.id,
        item_id=txn.item_id,
        project_id=txn.project_id,
        user_id=txn.user_id,
        quantity=txn.quantity,
        action=txn.action,
        date=txn.date,
        item=schemas.ItemSummary(name=txn.item.name, description=txn.item.description) if txn.item else None,
        project=(
            schemas.ProjectSummary(project_name=txn.project.name, description=txn.project.description)
            if txn.project
            else None
        ),
    )


def _mutation_response(result: LedgerResult, message: str) -> schemas.LedgerMutationResponse:
    project = result.project
    supervisor = project.supervisor
    return schemas.LedgerMutationResponse(
        message=message,
        transaction=_to_response(result.transaction),
        item=schemas.PoolState(item_id=result.item.id, name=result.item.name, quantity=result.item.quantity),
        allocation=schemas.AllocationState(
            project_id=result.allocation.project_id,
            item_id=result.allocation.item_id,
            quantity=result.allocation.quantity,
        ),
        project=schemas.ProjectDetail(
            project_id=project.id,
            project_name=project.name,
            start_date=project.start_date,
            end_date=project.end_date,
            client=client_summary(project.client),
            supervisor=(
                {"user_id": supervisor.id, "full_name": supervisor.full_name, "email": supervisor.email}
                if supervisor
                else None
            ),
        ),
    )


def _apply(operation, db: Session, payload: schemas.TransactionRequest, current_user: User) -> LedgerResult:
    try:
        result = operation(
            db,
            tenant_id=current_user.tenant_id,
            user_id=current_user.id,
            item_id=payload.item_id,
            project_id=payload.project_id,
            quantity=payload.quantity,
        )
        db.commit()
    except NOT_FOUND_ERRORS as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    except LedgerError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception:
        db.rollback()
        raise
    return result


@router.post("/borrow", response_model=schemas.LedgerMutationResponse, status_code=status.HTTP_201_CREATED)
def borrow(
    payload: schemas.TransactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = _apply(borrow_item, db, payload, current_user)
    return _mutation_response(result, "Transaction complete, item borrowed successfully.")


@router.post("/return", response_model=schemas.LedgerMutationResponse, status_code=status.HTTP_201_CREATED)
def return_(
    payload: schemas.TransactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = _apply(return_item, db, payload, current_user)
    return _mutation_response(result, "Transaction complete, item returned successfully.")


@router.get("", response_model=schemas.TransactionListResponse)
def list_all_transactions(
    project_id: Optional[int] = None,
    item_id: Optional[int] = None,
    action: Optional[Literal["borrow", "return"]] = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transactions = list_transactions(
        db,
        tenant_id=current_user.tenant_id,
        project_id=project_id,
        item_id=item_id,
        action=action,
        offset=offset,
        limit=limit,
    )
    if not transactions:
        raise HTTPException(status_code=404, detail="No transactions found.")
    return schemas.TransactionListResponse(
        message="Transactions retrieved successfully.",
        offset=offset,
        limit=limit,
        transactions=[_to_response(txn) for txn in transactions],
    )


@router.get("/reconciliation", response_model=schemas.ReconciliationResponse)
def reconcile(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    drift = find_allocation_drift(db, current_user.tenant_id)
    return schemas.ReconciliationResponse(
        message="Allocations match the transaction log." if not drift else "Allocations drifted from the transaction log.",
        consistent=not drift,
        drift=[
            schemas.AllocationDriftResponse(
                project_id=entry.project_id,
                item_id=entry.item_id,
                expected_quantity=entry.expected_quantity,
                recorded_quantity=entry.recorded_quantity,
                delta=entry.delta,
            )
            for entry in drift
        ],
    )


@router.post("/reconciliation/rebuild", response_model=schemas.RebuildResponse)
def rebuild(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    try:
        changed = rebuild_allocations(db, current_user.tenant_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return schemas.RebuildResponse(message="Allocations rebuilt from the transaction log.", rows_changed=changed)


@router.get("/{transaction_id}", response_model=schemas.TransactionDetailResponse)
def get_transaction_details(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    txn = get_transaction(db, tenant_id=current_user.tenant_id, transaction_id=transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail=f"Transaction with ID {transaction_id} not found.")
    return schemas.TransactionDetailResponse(
        message="Transaction details retrieved successfully.",
        transaction=_to_response(txn),
    )
