"""
User API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from finance_tracker.api.deps import error_status, get_current_user_id
from finance_tracker.models.base import get_db
from finance_tracker.services.account_service import AccountService
from finance_tracker.schemas.account import UserCreate, UserResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    request: UserCreate,
    db: Session = Depends(get_db),
):
    """Create a new user."""
    service = AccountService(db)
    try:
        user = service.create_user(request)
        db.commit()
        return user
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/me", response_model=UserResponse)
def get_me(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return AccountService(db).get_user(user_id)
