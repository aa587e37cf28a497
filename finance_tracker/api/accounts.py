"""
Account API endpoints.

Balances are read-only here. They change only through
transactions, and can be checked or rebuilt from the ledger.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from finance_tracker.api.deps import error_status, get_current_user_id
from finance_tracker.models.base import get_db
from finance_tracker.services.account_service import AccountService
from finance_tracker.services.ledger_service import LedgerService
from finance_tracker.schemas.account import (
    AccountCreate,
    AccountListResponse,
    AccountResponse,
    AccountUpdate,
    BalanceVerification,
)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.post("", response_model=AccountResponse, status_code=201)
def create_account(
    request: AccountCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Open a new account.

    A non-zero opening_balance is recorded as an "Opening Balance"
    transaction dated today.
    """
    service = AccountService(db)
    try:
        account = service.create_account(user_id, request)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("", response_model=AccountListResponse)
def list_accounts(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return AccountService(db).list_accounts(user_id)


@router.post("/rebuild", response_model=dict[int, float])
def rebuild_accounts(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Replay every account's chain from zero and store the results."""
    service = LedgerService(db)
    try:
        balances = service.rebuild_user_accounts(user_id)
        db.commit()
        return balances
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get account details."""
    service = AccountService(db)
    try:
        return service.get_account(user_id, account_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.patch("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: int,
    request: AccountUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = AccountService(db)
    try:
        account = service.update_account(user_id, account_id, request)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.delete("/{account_id}", response_model=AccountResponse)
def deactivate_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Soft-delete an account. Its transactions are kept."""
    service = AccountService(db)
    try:
        account = service.deactivate_account(user_id, account_id)
        db.commit()
        return account
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/{account_id}/verify", response_model=BalanceVerification)
def verify_account(
    account_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Replay the account's chain without writing anything.

    Reports the stored and replayed balances and every transaction
    whose stored running balance is off.
    """
    service = LedgerService(db)
    try:
        return service.verify_account(user_id, account_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))
