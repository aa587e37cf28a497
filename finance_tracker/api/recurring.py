"""
Recurring transaction API endpoints.

Templates, execution of occurrences, and read-only loan
projections. Static paths are registered before /{template_id}.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from finance_tracker.api.deps import error_status, get_current_user_id
from finance_tracker.calculators.recurrence import format_due_date, is_overdue
from finance_tracker.models.base import get_db
from finance_tracker.services.recurring_service import RecurringService
from finance_tracker.schemas.recurring import (
    ExecuteRequest,
    ExecuteResponse,
    LoanPreviewResponse,
    LoanProjectionResponse,
    OccurrenceResponse,
    RecurringCreate,
    RecurringResponse,
    RecurringUpdate,
    SkipDateRequest,
)

router = APIRouter(prefix="/recurring-transactions", tags=["Recurring"])


@router.post("", response_model=RecurringResponse, status_code=201)
def create_template(
    request: RecurringCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = RecurringService(db)
    try:
        template = service.create_template(user_id, request)
        db.commit()
        return template
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("", response_model=list[RecurringResponse])
def list_templates(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Active templates, soonest due first."""
    return RecurringService(db).list_templates(user_id)


@router.get("/occurrences", response_model=list[OccurrenceResponse])
def list_occurrences(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Outstanding occurrences across all templates.

    can_execute is true for everything due today or earlier, and for
    a template's first future occurrence when nothing older of that
    template is still outstanding.
    """
    today = date.today()
    occurrences = RecurringService(db).upcoming_occurrences(user_id, today)
    return [
        OccurrenceResponse(
            recurring_id=o.recurring_id,
            due_date=o.due_date,
            can_execute=o.can_execute,
            is_overdue=is_overdue(o.due_date, today),
            label=format_due_date(o.due_date, today),
        )
        for o in occurrences
    ]


@router.get("/executed-dates", response_model=dict[int, list[date]])
def executed_dates(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    executed = RecurringService(db).executed_dates_by_template(user_id)
    return {
        template_id: sorted(dates)
        for template_id, dates in executed.items()
    }


@router.get("/{template_id}", response_model=RecurringResponse)
def get_template(
    template_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = RecurringService(db)
    try:
        return service.get_template(user_id, template_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.patch("/{template_id}", response_model=RecurringResponse)
def update_template(
    template_id: int,
    request: RecurringUpdate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = RecurringService(db)
    try:
        template = service.update_template(user_id, template_id, request)
        db.commit()
        return template
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Deactivate a template. Transactions it created are kept."""
    service = RecurringService(db)
    try:
        service.delete_template(user_id, template_id)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.post("/{template_id}/execute", response_model=ExecuteResponse)
def execute_template(
    template_id: int,
    request: ExecuteRequest | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Turn one occurrence into ledger transactions and advance the schedule."""
    service = RecurringService(db)
    try:
        created, template = service.execute(user_id, template_id, request)
        db.commit()
        return ExecuteResponse(
            transactions=created,
            recurring_transaction=template,
        )
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.post("/{template_id}/skip-date", response_model=RecurringResponse)
def skip_date(
    template_id: int,
    request: SkipDateRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = RecurringService(db)
    try:
        template = service.skip_occurrence(user_id, template_id, request.date)
        db.commit()
        return template
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/{template_id}/loan-preview", response_model=LoanPreviewResponse)
def loan_preview(
    template_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Principal and interest of the next loan payment."""
    service = RecurringService(db)
    try:
        return service.loan_payment_preview(user_id, template_id)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))


@router.get("/{template_id}/projection", response_model=LoanProjectionResponse)
def loan_projection(
    template_id: int,
    months: int = 12,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    service = RecurringService(db)
    try:
        return service.loan_projection(user_id, template_id, months)
    except ValueError as e:
        raise HTTPException(status_code=error_status(e), detail=str(e))
