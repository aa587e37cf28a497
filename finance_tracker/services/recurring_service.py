"""
Recurring service: templates, execution and loan projections.

Executing a template turns one occurrence into ledger transactions
through the LedgerService, then moves the template's next_due_date
cursor. Every created record carries recurring_id and
recurring_due_date, so executed occurrences can be looked up by date
instead of guessed from last_executed_at.

Loan templates do not store their split. The principal and interest
parts of each payment come from the amortization schedule when the
payment is executed.
"""

import logging
from dataclasses import asdict
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_tracker.calculators.amortization import (
    amortization_schedule,
    current_balance,
    next_payment_breakdown,
    payments_elapsed,
)
from finance_tracker.calculators.recurrence import (
    Occurrence,
    generate_occurrences,
    initial_next_due_date,
    is_occurrence,
    mark_execute_eligibility,
    next_due_date,
    validate_frequency,
)
from finance_tracker.categories import LOAN_PRINCIPAL_CATEGORY
from finance_tracker.exceptions import (
    ConsistencyError,
    InvalidInputError,
    NotFoundError,
)
from finance_tracker.models.enums import (
    SplitType,
    TransactionStatus,
    TransactionType,
)
from finance_tracker.models.recurring_transaction import (
    LoanDetails,
    RecurringSkipDate,
    RecurringSplit,
    RecurringTransaction,
)
from finance_tracker.models.transaction import Transaction
from finance_tracker.schemas.recurring import (
    ExecuteRequest,
    RecurringCreate,
    RecurringUpdate,
)
from finance_tracker.schemas.transaction import TransactionCreate
from finance_tracker.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

# Split parts must add up to the template amount within a cent.
SPLIT_SUM_TOLERANCE = 0.01

MAX_PROJECTION_MONTHS = 360


class RecurringService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)

    # --- Validation ---

    def _validate_splits(
        self, user_id: int, account_id: int, amount: float, splits: list
    ) -> None:
        total = sum(part.amount for part in splits)
        if abs(total - amount) > SPLIT_SUM_TOLERANCE:
            raise InvalidInputError(
                f"Split amounts add up to {total:.2f}, "
                f"template amount is {amount:.2f}"
            )
        for part in splits:
            if SplitType(part.split_type) == SplitType.TRANSFER:
                self.ledger_service.validate_transfer_accounts(
                    user_id, account_id, part.to_account_id
                )
            else:
                self.ledger_service.validate_category(
                    user_id, TransactionType.EXPENSE, part.category
                )

    def _validate_target(
        self,
        user_id: int,
        transaction_type: TransactionType,
        account_id: int,
        to_account_id: int | None,
        category: str,
        is_loan: bool,
        has_splits: bool,
    ) -> None:
        self.ledger_service.get_account(user_id, account_id)

        if is_loan:
            if to_account_id is None:
                raise ConsistencyError(
                    "Loan payment requires the loan account in to_account_id"
                )
            self.ledger_service.validate_transfer_accounts(
                user_id, account_id, to_account_id
            )
            # The template category is used for the interest part.
            self.ledger_service.validate_category(
                user_id, TransactionType.EXPENSE, category
            )
            return

        if transaction_type == TransactionType.TRANSFER:
            self.ledger_service.validate_transfer_accounts(
                user_id, account_id, to_account_id
            )
        elif to_account_id is not None:
            raise InvalidInputError("Only transfers take a destination account")

        if not has_splits:
            self.ledger_service.validate_category(
                user_id, transaction_type, category
            )

    @staticmethod
    def _build_splits(splits: list) -> list[RecurringSplit]:
        return [
            RecurringSplit(
                position=position,
                split_type=SplitType(part.split_type),
                amount=part.amount,
                category=part.category,
                description=part.description,
                to_account_id=getattr(part, "to_account_id", None),
            )
            for position, part in enumerate(splits)
        ]

    # --- Templates ---

    def create_template(
        self, user_id: int, request: RecurringCreate
    ) -> RecurringTransaction:
        """
        Create a recurring template.

        Its first due date is its start date, even when that lies in
        the past.
        """
        is_loan = request.loan_details is not None
        splits = request.splits or []
        if is_loan and splits:
            raise InvalidInputError(
                "Loan payments derive their split; do not send splits"
            )

        validate_frequency(request.frequency, request.interval, request.interval_unit)
        self._validate_target(
            user_id,
            request.transaction_type,
            request.account_id,
            request.to_account_id,
            request.category,
            is_loan,
            bool(splits),
        )
        if splits:
            self._validate_splits(user_id, request.account_id, request.amount, splits)

        template = RecurringTransaction(
            user_id=user_id,
            transaction_type=request.transaction_type,
            amount=request.amount,
            currency=request.currency,
            account_id=request.account_id,
            to_account_id=request.to_account_id,
            category=request.category,
            subcategory=request.subcategory,
            description=request.description,
            notes=request.notes,
            frequency=request.frequency,
            interval=request.interval,
            interval_unit=request.interval_unit,
            start_date=request.start_date,
            next_due_date=initial_next_due_date(request.start_date),
            end_date=request.end_date,
            is_active=True,
            is_split=is_loan or bool(splits),
            splits=self._build_splits(splits),
        )
        if is_loan:
            details = request.loan_details
            template.loan_details = LoanDetails(
                original_amount=details.original_amount,
                interest_rate=details.interest_rate,
                term_months=details.term_months,
                start_date=details.start_date,
                current_balance=details.current_balance,
            )

        self.db.add(template)
        self.db.flush()

        logger.info(
            "Created %s recurring template %s for user %s, first due %s",
            template.frequency.value, template.id, user_id, template.next_due_date,
        )
        return template

    def get_template(
        self, user_id: int, template_id: int, active_only: bool = True
    ) -> RecurringTransaction:
        template = self.db.get(RecurringTransaction, template_id)
        if not template or template.user_id != user_id:
            raise NotFoundError(f"Recurring transaction {template_id} not found")
        if active_only and not template.is_active:
            raise NotFoundError(f"Recurring transaction {template_id} not found")
        return template

    def list_templates(self, user_id: int) -> list[RecurringTransaction]:
        """Active templates, soonest due first."""
        return list(self.db.execute(
            select(RecurringTransaction)
            .where(
                RecurringTransaction.user_id == user_id,
                RecurringTransaction.is_active.is_(True),
            )
            .order_by(RecurringTransaction.next_due_date, RecurringTransaction.id)
        ).scalars().all())

    def update_template(
        self, user_id: int, template_id: int, request: RecurringUpdate
    ) -> RecurringTransaction:
        template = self.get_template(user_id, template_id)
        updates = request.model_dump(exclude_unset=True)
        is_loan = template.loan_details is not None

        if "splits" in updates and is_loan:
            raise InvalidInputError(
                "Loan payments derive their split; do not send splits"
            )

        new_type = updates.get("transaction_type") or template.transaction_type
        new_account_id = updates.get("account_id") or template.account_id
        new_to_account_id = (
            updates["to_account_id"] if "to_account_id" in updates
            else template.to_account_id
        )
        new_category = updates.get("category") or template.category
        new_amount = updates.get("amount") or template.amount
        if "splits" in updates:
            splits = request.splits or []
        else:
            splits = None

        has_splits = bool(splits) if splits is not None else bool(template.splits)
        if {"transaction_type", "account_id", "to_account_id", "category", "splits"} & updates.keys():
            self._validate_target(
                user_id, new_type, new_account_id, new_to_account_id,
                new_category, is_loan, has_splits,
            )
        if splits:
            self._validate_splits(user_id, new_account_id, new_amount, splits)
        elif splits is None and template.splits and {"amount", "account_id"} & updates.keys():
            # Stored parts are checked against the new source account too.
            self._validate_splits(user_id, new_account_id, new_amount, template.splits)

        if updates.get("end_date") is not None and updates["end_date"] < template.start_date:
            raise InvalidInputError(
                f"end_date {updates['end_date']} is before start_date {template.start_date}"
            )

        schedule_changed = {"frequency", "interval", "interval_unit"} & updates.keys()
        frequency = updates.get("frequency") or template.frequency
        interval = updates.get("interval") or template.interval
        interval_unit = updates.get("interval_unit") or template.interval_unit
        if schedule_changed:
            validate_frequency(frequency, interval, interval_unit)

        for field in (
            "transaction_type", "amount", "currency", "account_id", "category",
            "description",
        ):
            if updates.get(field) is not None:
                setattr(template, field, updates[field])
        for field in ("to_account_id", "subcategory", "notes", "end_date"):
            if field in updates:
                setattr(template, field, updates[field])

        if schedule_changed:
            template.frequency = frequency
            template.interval = interval
            template.interval_unit = interval_unit
            template.next_due_date = next_due_date(
                template.next_due_date, frequency, interval, interval_unit
            )
        if updates.get("next_due_date") is not None:
            template.next_due_date = updates["next_due_date"]

        if splits is not None:
            template.splits.clear()
            self.db.flush()
            template.splits.extend(self._build_splits(splits))
            template.is_split = bool(splits)

        self.db.flush()
        logger.info(
            "Updated recurring template %s (%s)",
            template.id, ", ".join(sorted(updates)),
        )
        return template

    def delete_template(self, user_id: int, template_id: int) -> None:
        """Deactivate a template. Transactions it created stay untouched."""
        template = self.get_template(user_id, template_id)
        template.is_active = False
        self.db.flush()
        logger.info("Deactivated recurring template %s", template_id)

    # --- Execution ---

    def _occurrence_executed(self, template_id: int, due_date: date) -> bool:
        found = self.db.execute(
            select(Transaction.id)
            .where(
                Transaction.recurring_id == template_id,
                Transaction.status == TransactionStatus.COMPLETED,
                func.coalesce(Transaction.recurring_due_date, Transaction.date) == due_date,
            )
            .limit(1)
        ).scalar_one_or_none()
        return found is not None

    def _create(
        self,
        user_id: int,
        template: RecurringTransaction,
        due_date: date,
        request: TransactionCreate,
    ) -> list[Transaction]:
        txn = self.ledger_service.create_transaction(
            user_id, request,
            recurring_id=template.id,
            recurring_due_date=due_date,
        )
        records = [txn]
        if txn.linked_transaction_id is not None:
            records.append(self.db.get(Transaction, txn.linked_transaction_id))
        return records

    def execute(
        self,
        user_id: int,
        template_id: int,
        request: ExecuteRequest | None = None,
    ) -> tuple[list[Transaction], RecurringTransaction]:
        """
        Execute one occurrence of a template.

        Returns every ledger record created (both halves of each
        transfer) and the updated template. The cursor only moves when
        the executed occurrence is the current next_due_date or a later
        one; executing an older outstanding occurrence leaves it alone.
        A due_date other than the cursor must be one of the template's
        scheduled dates.
        """
        request = request or ExecuteRequest()
        template = self.get_template(user_id, template_id)
        due_date = request.due_date or template.next_due_date
        transaction_date = request.transaction_date or date.today()

        if due_date in template.skipped_dates:
            raise ConsistencyError(f"Occurrence {due_date} was skipped")
        if template.end_date is not None and due_date > template.end_date:
            raise InvalidInputError(
                f"{due_date} is after the end date {template.end_date} of "
                f"recurring transaction {template.id}"
            )
        if due_date != template.next_due_date and not is_occurrence(
            due_date,
            template.start_date,
            template.frequency,
            template.interval,
            template.interval_unit,
        ):
            raise InvalidInputError(
                f"{due_date} is not an occurrence of recurring transaction {template.id}"
            )
        if self._occurrence_executed(template.id, due_date):
            raise ConsistencyError(f"Occurrence {due_date} was already executed")

        with self.ledger_service.balances.unit_of_work():
            if template.loan_details is not None:
                created = self._execute_loan(
                    user_id, template, due_date, transaction_date, request
                )
            elif template.is_split:
                created = self._execute_splits(
                    user_id, template, due_date, transaction_date, request
                )
            else:
                created = self._create(user_id, template, due_date, TransactionCreate(
                    transaction_type=template.transaction_type,
                    amount=request.amount or template.amount,
                    currency=template.currency,
                    account_id=template.account_id,
                    to_account_id=template.to_account_id,
                    category=template.category,
                    subcategory=template.subcategory,
                    description=request.description or template.description,
                    notes=request.notes if request.notes is not None else template.notes,
                    date=transaction_date,
                ))

            if due_date >= template.next_due_date:
                template.next_due_date = next_due_date(
                    due_date,
                    template.frequency,
                    template.interval,
                    template.interval_unit,
                )
            template.last_executed_at = datetime.utcnow()
            self.db.flush()

        logger.info(
            "Executed recurring template %s for %s: %d record(s), next due %s",
            template.id, due_date, len(created), template.next_due_date,
        )
        return created, template

    def _execute_splits(
        self,
        user_id: int,
        template: RecurringTransaction,
        due_date: date,
        transaction_date: date,
        request: ExecuteRequest,
    ) -> list[Transaction]:
        """One ledger record per part, created in position order."""
        if not template.splits:
            raise ConsistencyError(
                f"Recurring transaction {template.id} is split but has no parts"
            )
        if request.amount is not None:
            raise InvalidInputError("Split payments cannot override the amount")

        created = []
        for part in template.splits:
            is_transfer = part.split_type == SplitType.TRANSFER
            created.extend(self._create(user_id, template, due_date, TransactionCreate(
                transaction_type=(
                    TransactionType.TRANSFER if is_transfer
                    else TransactionType.EXPENSE
                ),
                amount=part.amount,
                currency=template.currency,
                account_id=template.account_id,
                to_account_id=part.to_account_id if is_transfer else None,
                category=part.category,
                description=(
                    part.description
                    or f"{request.description or template.description} - {part.category}"
                ),
                notes=request.notes if request.notes is not None else template.notes,
                date=transaction_date,
            )))
        return created

    def _execute_loan(
        self,
        user_id: int,
        template: RecurringTransaction,
        due_date: date,
        transaction_date: date,
        request: ExecuteRequest,
    ) -> list[Transaction]:
        """
        Pay the next loan installment.

        The principal is transferred to the loan account and the
        interest is booked as an expense in the template's category.
        Either amount can be overridden; a zero part is not recorded.
        The cached outstanding balance drops by the principal paid.
        """
        loan = template.loan_details
        if template.to_account_id is None:
            raise ConsistencyError(
                f"Loan payment {template.id} has no loan account"
            )

        breakdown = next_payment_breakdown(loan, template.last_executed_at)
        principal = (
            request.principal_amount if request.principal_amount is not None
            else breakdown.principal
        )
        interest = (
            request.interest_amount if request.interest_amount is not None
            else breakdown.interest
        )
        if principal <= 0 and interest <= 0:
            raise InvalidInputError("Loan payment has nothing left to pay")

        description = request.description or template.description
        notes = request.notes if request.notes is not None else template.notes
        created = []
        if principal > 0:
            created.extend(self._create(user_id, template, due_date, TransactionCreate(
                transaction_type=TransactionType.TRANSFER,
                amount=principal,
                currency=template.currency,
                account_id=template.account_id,
                to_account_id=template.to_account_id,
                category=LOAN_PRINCIPAL_CATEGORY,
                description=f"{description} - Principal",
                notes=notes,
                date=transaction_date,
            )))
        if interest > 0:
            created.extend(self._create(user_id, template, due_date, TransactionCreate(
                transaction_type=TransactionType.EXPENSE,
                amount=interest,
                currency=template.currency,
                account_id=template.account_id,
                category=template.category,
                subcategory=template.subcategory,
                description=f"{description} - Interest",
                notes=notes,
                date=transaction_date,
            )))

        outstanding = loan.current_balance
        if outstanding is None:
            made = (
                payments_elapsed(loan.start_date, template.last_executed_at)
                if template.last_executed_at else 0
            )
            outstanding = current_balance(
                loan.original_amount, loan.interest_rate, loan.term_months, made
            )
        loan.current_balance = max(0.0, outstanding - principal)
        return created

    def skip_occurrence(
        self, user_id: int, template_id: int, skip_date: date
    ) -> RecurringTransaction:
        """Drop one occurrence from the schedule. Skipping twice is a no-op."""
        template = self.get_template(user_id, template_id)
        if skip_date in template.skipped_dates:
            return template

        template.skip_dates.append(RecurringSkipDate(skip_date=skip_date))
        self.db.flush()
        logger.info("Skipped %s for recurring template %s", skip_date, template_id)
        return template

    # --- Schedule queries ---

    def executed_dates_by_template(self, user_id: int) -> dict[int, set[date]]:
        """
        Occurrence dates already executed, per template.

        Uses recurring_due_date and falls back to the transaction date
        for records that were created without one.
        """
        occurrence_date = func.coalesce(
            Transaction.recurring_due_date, Transaction.date
        )
        rows = self.db.execute(
            select(Transaction.recurring_id, occurrence_date)
            .where(
                Transaction.user_id == user_id,
                Transaction.recurring_id.is_not(None),
                Transaction.status == TransactionStatus.COMPLETED,
            )
            .distinct()
        ).all()

        executed: dict[int, set[date]] = {}
        for recurring_id, occurred_on in rows:
            executed.setdefault(recurring_id, set()).add(occurred_on)
        return executed

    def upcoming_occurrences(
        self, user_id: int, today: date | None = None
    ) -> list[Occurrence]:
        """Every not-yet-executed occurrence of the user's active templates."""
        today = today or date.today()
        executed = self.executed_dates_by_template(user_id)

        pending = []
        for template in self.list_templates(user_id):
            done = executed.get(template.id, set())
            for due in generate_occurrences(
                template.start_date,
                template.frequency,
                template.interval,
                template.interval_unit,
                template.end_date,
                template.last_executed_at,
                template.skipped_dates,
                today=today,
            ):
                if due not in done:
                    pending.append(Occurrence(recurring_id=template.id, due_date=due))

        return mark_execute_eligibility(pending, today)

    # --- Loan projections ---

    def _get_loan(self, user_id: int, template_id: int):
        template = self.get_template(user_id, template_id)
        if template.loan_details is None:
            raise ConsistencyError(
                f"Recurring transaction {template_id} is not a loan payment"
            )
        return template, template.loan_details

    def loan_payment_preview(self, user_id: int, template_id: int) -> dict:
        """The next payment's split, plus progress through the term."""
        template, loan = self._get_loan(user_id, template_id)

        breakdown = next_payment_breakdown(loan, template.last_executed_at)
        made = payments_elapsed(
            loan.start_date, template.last_executed_at or date.today()
        )
        return {
            "breakdown": asdict(breakdown),
            "payments_made": made,
            "total_payments": loan.term_months,
            "percent_complete": made / loan.term_months * 100,
        }

    def loan_projection(
        self, user_id: int, template_id: int, months: int = 12
    ) -> dict:
        """
        The next ``months`` rows of the amortization schedule.

        Includes totals for that window and the loan's overall status.
        """
        if not 1 <= months <= MAX_PROJECTION_MONTHS:
            raise InvalidInputError(
                f"months must be between 1 and {MAX_PROJECTION_MONTHS}"
            )
        template, loan = self._get_loan(user_id, template_id)

        schedule = amortization_schedule(
            loan.original_amount, loan.interest_rate,
            loan.term_months, loan.start_date,
        )
        made = payments_elapsed(
            loan.start_date, template.last_executed_at or date.today()
        )
        window = schedule[made:made + months]

        total_principal = sum(row.principal for row in window)
        total_interest = sum(row.interest for row in window)
        total_payments = sum(row.total_payment for row in window)

        outstanding = (
            loan.current_balance if loan.current_balance is not None
            else loan.original_amount
        )
        total_paid = loan.original_amount - outstanding

        return {
            "projections": [asdict(row) for row in window],
            "summary": {
                "total_principal": total_principal,
                "total_interest": total_interest,
                "total_payments": total_payments,
                "average_monthly_payment": (
                    total_payments / len(window) if window else 0.0
                ),
            },
            "loan_status": {
                "original_amount": loan.original_amount,
                "current_balance": outstanding,
                "total_paid": total_paid,
                "percent_complete": total_paid / loan.original_amount * 100,
                "payments_made": made,
                "remaining_payments": max(0, loan.term_months - made),
                "total_payments": loan.term_months,
            },
        }
