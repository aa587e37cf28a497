"""
Category API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from finance_tracker.api.deps import error_status, get_current_user_id
from finance_tracker.models.base import get_db
from finance_tracker.services.category_service import CategoryService
from finance_tracker.schemas.account import (
    CategoryListResponse,
    CustomCategoryCreate,
    CustomCategoryResponse,
)

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=CategoryListResponse)
def list_categories(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Built-in and custom category names, per type."""
    return CategoryService(db).list_categories(user_id)


@router.post("", response_model=CustomCategoryResponse, status_code=201)
def create_category(
    request: CustomCategoryCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = CategoryService(db)
    try:
        category = service.create_custom_category(user_id, request)
        db.commit()
        return category
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))
