"""
Shared dependencies for the API routers.
"""

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from finance_tracker.exceptions import NotFoundError
from finance_tracker.models.base import get_db
from finance_tracker.models.user import User


def get_current_user_id(
    x_user_id: int = Header(...),
    db: Session = Depends(get_db),
) -> int:
    """
    Identify the caller from the X-User-Id header.

    Authentication happens in front of this service; here we only
    check that the user exists and is active.
    """
    user = db.get(User, x_user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user.id


def error_status(error: ValueError) -> int:
    """Missing or foreign records are 404, every other business error is 400."""
    if isinstance(error, NotFoundError):
        return 404
    return 400
