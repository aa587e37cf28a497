"""
Account service: users and their accounts.

Opening an account with a non-zero balance records an
"Opening Balance" transaction through the LedgerService, so the
account's balance is backed by its chain from the start. This
service never writes Account.balance itself.
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_tracker.categories import OPENING_BALANCE_CATEGORY
from finance_tracker.exceptions import InvalidInputError, NotFoundError
from finance_tracker.models.account import Account, ACCOUNT_TYPE_TO_CATEGORY
from finance_tracker.models.enums import TransactionType
from finance_tracker.models.user import User
from finance_tracker.schemas.account import (
    AccountCreate,
    AccountUpdate,
    UserCreate,
)
from finance_tracker.schemas.transaction import TransactionCreate
from finance_tracker.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class AccountService:

    def __init__(self, db: Session):
        self.db = db
        self.ledger_service = LedgerService(db)

    def create_user(self, request: UserCreate) -> User:
        """Create a new user."""
        existing = self.db.execute(
            select(User).where(User.email == request.email)
        ).scalar_one_or_none()

        if existing:
            raise InvalidInputError(
                f"User with email '{request.email}' already exists"
            )

        user = User(name=request.name, email=request.email)
        self.db.add(user)
        self.db.flush()
        logger.info("Created user %s", user.id)
        return user

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def create_account(self, user_id: int, request: AccountCreate) -> Account:
        """
        Open a new account for a user.

        A positive opening balance is recorded as income, a negative
        one (e.g. a credit card that already carries debt) as an
        expense, both dated today.
        """
        self.get_user(user_id)

        account = Account(
            user_id=user_id,
            name=request.name,
            account_type=request.account_type,
            account_category=ACCOUNT_TYPE_TO_CATEGORY[request.account_type],
            currency=request.currency,
            balance=0.0,
            institution=request.institution,
        )
        self.db.add(account)
        self.db.flush()

        if request.opening_balance:
            self.ledger_service.create_transaction(user_id, TransactionCreate(
                transaction_type=(
                    TransactionType.INCOME if request.opening_balance > 0
                    else TransactionType.EXPENSE
                ),
                amount=abs(request.opening_balance),
                currency=request.currency,
                account_id=account.id,
                category=OPENING_BALANCE_CATEGORY,
                description=f"Opening balance for {request.name}",
                date=date.today(),
            ))
            self.db.refresh(account)

        logger.info(
            "Opened %s account %s for user %s",
            account.account_type.value, account.id, user_id,
        )
        return account

    def get_account(self, user_id: int, account_id: int) -> Account:
        account = self.db.get(Account, account_id)
        if not account or account.user_id != user_id:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def list_accounts(self, user_id: int) -> dict:
        """Active accounts, ordered by category and name, plus the summed balance."""
        accounts = self.db.execute(
            select(Account)
            .where(Account.user_id == user_id, Account.is_active.is_(True))
            .order_by(Account.account_category, Account.name)
        ).scalars().all()

        return {
            "accounts": list(accounts),
            "total_balance": sum(a.balance for a in accounts),
        }

    def update_account(
        self, user_id: int, account_id: int, request: AccountUpdate
    ) -> Account:
        account = self.get_account(user_id, account_id)
        if not account.is_active:
            raise InvalidInputError(f"Account {account_id} is not active")

        updates = request.model_dump(exclude_unset=True)
        if updates.get("name"):
            account.name = updates["name"]
        if "institution" in updates:
            account.institution = updates["institution"]
        if updates.get("account_type"):
            account.account_type = updates["account_type"]
            account.account_category = ACCOUNT_TYPE_TO_CATEGORY[account.account_type]

        self.db.flush()
        return account

    def deactivate_account(self, user_id: int, account_id: int) -> Account:
        """
        Soft-delete an account.

        Its transactions stay in place and keep counting toward the
        other side of any transfer.
        """
        account = self.get_account(user_id, account_id)
        if not account.is_active:
            raise InvalidInputError(f"Account {account_id} is already inactive")

        account.is_active = False
        self.db.flush()
        logger.info("Deactivated account %s", account_id)
        return account
