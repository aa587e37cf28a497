"""
Transaction API endpoints.

The API layer is thin: it handles HTTP concerns (status codes,
response formatting) and delegates all business logic to the
LedgerService.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from finance_tracker.api.deps import error_status, get_current_user_id
from finance_tracker.models.base import get_db
from finance_tracker.models.enums import TransactionStatus, TransactionType
from finance_tracker.services.ledger_service import LedgerService
from finance_tracker.schemas.transaction import (
    TransactionCreate,
    TransactionFilters,
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionResponse, status_code=201)
def create_transaction(
    request: TransactionCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Record a transaction.

    For a transfer the outgoing record is returned; the incoming
    one on the destination account is linked through
    linked_transaction_id.
    """
    service = LedgerService(db)
    try:
        txn = service.create_transaction(user_id, request)
        db.commit()
        return txn
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    account_id: int | None = None,
    type: TransactionType | None = None,
    category: str | None = None,
    status: TransactionStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    sort_by: str = "date",
    sort_order: str = "desc",
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    filters = TransactionFilters(
        account_id=account_id,
        transaction_type=type,
        category=category,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        return service.list_transactions(
            user_id, filters, page, limit, sort_by, sort_order
        )
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = LedgerService(db)
    try:
        return service.get_transaction(user_id, transaction_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: int,
    request: TransactionUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Partially update a transaction and repair the affected balances."""
    service = LedgerService(db)
    try:
        txn = service.update_transaction(user_id, transaction_id, request)
        db.commit()
        return txn
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Delete a transaction, and its other half if it is a transfer."""
    service = LedgerService(db)
    try:
        service.delete_transaction(user_id, transaction_id)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))
