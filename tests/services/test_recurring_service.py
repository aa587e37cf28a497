"""
Tests for the RecurringService.

Tests cover:
- Template creation and validation
- Executing plain, split and loan templates
- The next_due_date cursor
- Skipped and already-executed occurrences
- Upcoming occurrences and execute eligibility
- Loan previews and projections
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from finance_tracker.calculators.amortization import monthly_payment
from finance_tracker.exceptions import (
    ConsistencyError,
    InvalidInputError,
    NotFoundError,
)
from finance_tracker.models.account import Account
from finance_tracker.models.enums import (
    AccountType,
    Frequency,
    IntervalUnit,
    TransactionType,
)
from finance_tracker.models.transaction import Transaction
from finance_tracker.schemas.recurring import (
    ExecuteRequest,
    ExpenseSplit,
    LoanDetailsCreate,
    RecurringCreate,
    RecurringUpdate,
    TransferSplit,
)
from finance_tracker.services.recurring_service import RecurringService


def template_request(account, **overrides):
    fields = dict(
        transaction_type=TransactionType.EXPENSE,
        amount=1200,
        account_id=account.id,
        category="Housing",
        description="Rent",
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 1),
    )
    fields.update(overrides)
    return RecurringCreate(**fields)


def balance_of(db, account):
    db.expire_all()
    return db.get(Account, account.id).balance


@pytest.fixture
def mortgage_account(make_account):
    return make_account("Mortgage", AccountType.MORTGAGE)


@pytest.fixture
def loan_template(db_session, user, checking, mortgage_account):
    template = RecurringService(db_session).create_template(user.id, template_request(
        checking,
        transaction_type=TransactionType.TRANSFER,
        amount=1438.92,
        to_account_id=mortgage_account.id,
        description="Mortgage",
        start_date=date.today(),
        loan_details=LoanDetailsCreate(
            original_amount=240000,
            interest_rate=6,
            term_months=360,
            start_date=date.today(),
        ),
    ))
    db_session.commit()
    return template


# --- Template Tests ---

class TestTemplates:

    def test_first_due_date_is_start_date(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        assert template.next_due_date == date(2024, 1, 1)
        assert template.is_active is True
        assert template.is_split is False

    def test_custom_frequency_needs_interval(self, db_session, user, checking):
        service = RecurringService(db_session)
        with pytest.raises(InvalidInputError):
            service.create_template(user.id, template_request(
                checking, frequency=Frequency.CUSTOM,
            ))

    def test_split_parts_must_add_up(self, db_session, user, checking, savings):
        service = RecurringService(db_session)
        with pytest.raises(InvalidInputError):
            service.create_template(user.id, template_request(checking, splits=[
                ExpenseSplit(amount=1000, category="Housing"),
                TransferSplit(amount=100, to_account_id=savings.id),
            ]))

    def test_split_part_category_validated(self, db_session, user, checking):
        service = RecurringService(db_session)
        with pytest.raises(InvalidInputError):
            service.create_template(user.id, template_request(checking, splits=[
                ExpenseSplit(amount=1200, category="Yachts"),
            ]))

    def test_loan_requires_loan_account(self, db_session, user, checking):
        service = RecurringService(db_session)
        with pytest.raises(ConsistencyError):
            service.create_template(user.id, template_request(
                checking,
                loan_details=LoanDetailsCreate(
                    original_amount=10000, interest_rate=5,
                    term_months=24, start_date=date(2024, 1, 1),
                ),
            ))

    def test_loan_rejects_explicit_splits(self, db_session, user, checking, mortgage_account):
        service = RecurringService(db_session)
        with pytest.raises(InvalidInputError):
            service.create_template(user.id, template_request(
                checking,
                to_account_id=mortgage_account.id,
                splits=[ExpenseSplit(amount=1200, category="Housing")],
                loan_details=LoanDetailsCreate(
                    original_amount=10000, interest_rate=5,
                    term_months=24, start_date=date(2024, 1, 1),
                ),
            ))

    def test_other_user_cannot_see_template(self, db_session, user, other_user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        with pytest.raises(NotFoundError):
            service.get_template(other_user.id, template.id)

    def test_frequency_change_moves_cursor(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        service.update_template(user.id, template.id, RecurringUpdate(frequency=Frequency.WEEKLY))
        db_session.commit()

        assert template.next_due_date == date(2024, 1, 8)

    def test_explicit_next_due_date_wins(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        service.update_template(user.id, template.id, RecurringUpdate(
            frequency=Frequency.CUSTOM,
            interval=10,
            interval_unit=IntervalUnit.DAYS,
            next_due_date=date(2024, 2, 15),
        ))
        db_session.commit()

        assert template.next_due_date == date(2024, 2, 15)
        assert template.interval == 10

    def test_replacing_splits(self, db_session, user, checking, savings):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking, splits=[
            ExpenseSplit(amount=1200, category="Housing"),
        ]))
        db_session.commit()

        service.update_template(user.id, template.id, RecurringUpdate(splits=[
            ExpenseSplit(amount=700, category="Housing"),
            TransferSplit(amount=500, to_account_id=savings.id),
        ]))
        db_session.commit()

        assert [part.amount for part in template.splits] == [700, 500]
        assert template.splits[1].to_account_id == savings.id

    def test_amount_change_checked_against_splits(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking, splits=[
            ExpenseSplit(amount=1200, category="Housing"),
        ]))
        db_session.commit()

        with pytest.raises(InvalidInputError):
            service.update_template(user.id, template.id, RecurringUpdate(amount=1300))

    def test_account_change_checked_against_stored_splits(
        self, db_session, user, checking, savings
    ):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(
            checking,
            amount=1100,
            splits=[
                ExpenseSplit(amount=1000, category="Housing"),
                TransferSplit(amount=100, to_account_id=savings.id),
            ],
        ))
        db_session.commit()

        with pytest.raises(ConsistencyError):
            service.update_template(user.id, template.id, RecurringUpdate(account_id=savings.id))
        db_session.rollback()

        assert template.account_id == checking.id
        created, _ = service.execute(user.id, template.id)
        assert len(created) == 3

    def test_end_date_before_start_rejected(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        with pytest.raises(InvalidInputError):
            service.update_template(user.id, template.id, RecurringUpdate(
                end_date=date(2023, 12, 1),
            ))
        db_session.rollback()

        assert template.end_date is None

    def test_delete_keeps_transactions(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.execute(user.id, template.id)
        db_session.commit()

        service.delete_template(user.id, template.id)
        db_session.commit()

        assert service.list_templates(user.id) == []
        with pytest.raises(NotFoundError):
            service.get_template(user.id, template.id)
        count = db_session.execute(
            select(func.count(Transaction.id)).where(Transaction.recurring_id == template.id)
        ).scalar_one()
        assert count == 1


# --- Execution Tests ---

class TestExecute:

    def test_plain_execution(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        created, template = service.execute(user.id, template.id, ExecuteRequest(
            transaction_date=date(2024, 1, 2),
        ))
        db_session.commit()

        assert len(created) == 1
        txn = created[0]
        assert txn.recurring_id == template.id
        assert txn.recurring_due_date == date(2024, 1, 1)
        assert txn.date == date(2024, 1, 2)
        assert template.next_due_date == date(2024, 2, 1)
        assert template.last_executed_at is not None
        assert balance_of(db_session, checking) == -1200

    def test_amount_override(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        created, _ = service.execute(user.id, template.id, ExecuteRequest(amount=1250))
        db_session.commit()

        assert created[0].amount == 1250

    def test_same_occurrence_twice_rejected(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.execute(user.id, template.id)
        db_session.commit()

        with pytest.raises(ConsistencyError):
            service.execute(user.id, template.id, ExecuteRequest(due_date=date(2024, 1, 1)))

    def test_older_occurrence_leaves_cursor(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.execute(user.id, template.id, ExecuteRequest(due_date=date(2024, 3, 1)))
        db_session.commit()
        assert template.next_due_date == date(2024, 4, 1)

        service.execute(user.id, template.id, ExecuteRequest(due_date=date(2024, 1, 1)))
        db_session.commit()

        assert template.next_due_date == date(2024, 4, 1)

    @pytest.mark.parametrize("due_date", [
        date(2024, 3, 17),
        date(2023, 12, 1),
        date(2024, 7, 1),
    ])
    def test_unscheduled_due_date_rejected(self, db_session, user, checking, due_date):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(
            checking, end_date=date(2024, 6, 1),
        ))
        db_session.commit()

        with pytest.raises(InvalidInputError):
            service.execute(user.id, template.id, ExecuteRequest(due_date=due_date))
        db_session.rollback()

        assert template.next_due_date == date(2024, 1, 1)
        count = db_session.execute(
            select(func.count(Transaction.id)).where(Transaction.recurring_id == template.id)
        ).scalar_one()
        assert count == 0

    def test_cursor_set_off_schedule_can_be_executed(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.update_template(user.id, template.id, RecurringUpdate(
            next_due_date=date(2024, 1, 15),
        ))
        db_session.commit()

        created, template = service.execute(user.id, template.id)
        db_session.commit()

        assert created[0].recurring_due_date == date(2024, 1, 15)
        assert template.next_due_date == date(2024, 2, 15)

    def test_skipped_occurrence_rejected(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.skip_occurrence(user.id, template.id, date(2024, 1, 1))
        db_session.commit()

        with pytest.raises(ConsistencyError):
            service.execute(user.id, template.id)

    def test_skip_is_idempotent(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.skip_occurrence(user.id, template.id, date(2024, 2, 1))
        service.skip_occurrence(user.id, template.id, date(2024, 2, 1))
        db_session.commit()

        assert template.skipped_dates == {date(2024, 2, 1)}
        assert len(template.skip_dates) == 1

    def test_transfer_template_creates_pair(self, db_session, user, checking, savings):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(
            checking,
            transaction_type=TransactionType.TRANSFER,
            amount=300,
            to_account_id=savings.id,
            category="Account Transfer",
            description="Save",
        ))
        db_session.commit()

        created, _ = service.execute(user.id, template.id)
        db_session.commit()

        assert [t.transfer_direction for t in created] == ["out", "in"]
        assert all(t.recurring_due_date == date(2024, 1, 1) for t in created)
        assert balance_of(db_session, savings) == 300

    def test_split_execution(self, db_session, user, checking, savings):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking, splits=[
            ExpenseSplit(amount=900, category="Housing"),
            TransferSplit(amount=300, to_account_id=savings.id, description="Rainy day"),
        ]))
        db_session.commit()

        created, _ = service.execute(user.id, template.id)
        db_session.commit()

        assert len(created) == 3
        assert created[0].description == "Rent - Housing"
        assert created[1].description == "Rainy day"
        assert balance_of(db_session, checking) == -1200
        assert balance_of(db_session, savings) == 300

    def test_split_amount_override_rejected(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking, splits=[
            ExpenseSplit(amount=1200, category="Housing"),
        ]))
        db_session.commit()

        with pytest.raises(InvalidInputError):
            service.execute(user.id, template.id, ExecuteRequest(amount=10))

    def test_loan_payment_splits_principal_and_interest(
        self, db_session, user, checking, mortgage_account, loan_template
    ):
        service = RecurringService(db_session)
        created, template = service.execute(user.id, loan_template.id)
        db_session.commit()

        principal, mirror, interest = created
        assert principal.transaction_type == TransactionType.TRANSFER
        assert principal.category == "Loan Principal"
        assert principal.description == "Mortgage - Principal"
        assert principal.amount == pytest.approx(238.92, abs=0.01)
        assert mirror.account_id == mortgage_account.id
        assert interest.transaction_type == TransactionType.EXPENSE
        assert interest.category == "Housing"
        assert interest.description == "Mortgage - Interest"
        assert interest.amount == pytest.approx(1200)
        assert principal.amount + interest.amount == pytest.approx(
            monthly_payment(240000, 6, 360)
        )

        assert template.loan_details.current_balance == pytest.approx(239761.08, abs=0.01)
        assert balance_of(db_session, checking) == pytest.approx(-1438.92, abs=0.01)
        assert balance_of(db_session, mortgage_account) == pytest.approx(238.92, abs=0.01)

    def test_loan_payment_overrides(self, db_session, user, loan_template):
        service = RecurringService(db_session)
        created, template = service.execute(user.id, loan_template.id, ExecuteRequest(
            principal_amount=500, interest_amount=0,
        ))
        db_session.commit()

        assert len(created) == 2
        assert template.loan_details.current_balance == pytest.approx(239500)

    def test_second_loan_payment_uses_cached_balance(self, db_session, user, loan_template):
        service = RecurringService(db_session)
        service.execute(user.id, loan_template.id)
        created, template = service.execute(user.id, loan_template.id)
        db_session.commit()

        interest = created[-1]
        assert interest.amount == pytest.approx(239761.08 * 0.005, abs=0.01)
        assert template.loan_details.current_balance < 239761.08


# --- Schedule Tests ---

class TestSchedule:

    def test_executed_dates(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.execute(user.id, template.id)
        service.execute(user.id, template.id)
        db_session.commit()

        assert service.executed_dates_by_template(user.id) == {
            template.id: {date(2024, 1, 1), date(2024, 2, 1)},
        }

    def test_upcoming_occurrences(self, db_session, user, checking):
        service = RecurringService(db_session)
        rent = service.create_template(user.id, template_request(
            checking, end_date=date(2024, 6, 1),
        ))
        fee = service.create_template(user.id, template_request(
            checking,
            amount=15,
            category="Bills & Fees",
            description="Annual fee",
            frequency=Frequency.YEARLY,
            start_date=date(2024, 4, 15),
            end_date=date(2024, 4, 15),
        ))
        service.execute(user.id, rent.id)
        service.skip_occurrence(user.id, rent.id, date(2024, 2, 1))
        db_session.commit()

        upcoming = service.upcoming_occurrences(user.id, today=date(2024, 3, 15))

        assert [(o.recurring_id, o.due_date, o.can_execute) for o in upcoming] == [
            (rent.id, date(2024, 3, 1), True),
            (rent.id, date(2024, 4, 1), False),
            (fee.id, date(2024, 4, 15), True),
            (rent.id, date(2024, 5, 1), False),
            (rent.id, date(2024, 6, 1), False),
        ]

    def test_inactive_templates_have_no_occurrences(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        service.delete_template(user.id, template.id)
        db_session.commit()

        assert service.upcoming_occurrences(user.id, today=date(2024, 3, 15)) == []


# --- Loan Projection Tests ---

class TestLoanProjections:

    def test_preview_of_first_payment(self, db_session, user, loan_template):
        preview = RecurringService(db_session).loan_payment_preview(user.id, loan_template.id)

        assert preview["breakdown"]["payment_number"] == 1
        assert preview["breakdown"]["interest"] == pytest.approx(1200)
        assert preview["payments_made"] == 0
        assert preview["total_payments"] == 360
        assert preview["percent_complete"] == 0

    def test_projection_window(self, db_session, user, loan_template):
        projection = RecurringService(db_session).loan_projection(
            user.id, loan_template.id, months=12,
        )

        rows = projection["projections"]
        assert [row["payment_number"] for row in rows] == list(range(1, 13))
        assert projection["summary"]["total_payments"] == pytest.approx(
            12 * monthly_payment(240000, 6, 360)
        )
        assert projection["loan_status"]["current_balance"] == 240000
        assert projection["loan_status"]["remaining_payments"] == 360

    def test_projection_after_payment(self, db_session, user, loan_template):
        service = RecurringService(db_session)
        service.execute(user.id, loan_template.id)
        db_session.commit()

        status = service.loan_projection(user.id, loan_template.id)["loan_status"]

        assert status["total_paid"] == pytest.approx(238.92, abs=0.01)
        assert status["percent_complete"] > 0

    def test_projection_months_bounds(self, db_session, user, loan_template):
        with pytest.raises(InvalidInputError):
            RecurringService(db_session).loan_projection(user.id, loan_template.id, months=0)

    def test_projection_of_non_loan_rejected(self, db_session, user, checking):
        service = RecurringService(db_session)
        template = service.create_template(user.id, template_request(checking))
        db_session.commit()

        with pytest.raises(ConsistencyError):
            service.loan_projection(user.id, template.id)
