"""
Ledger service: transaction CRUD and running balances.

This service keeps one rule true after every call: for each
account, the stored balance equals the running balance of the last
completed transaction in (date, created_at, id) order, and each
running balance equals the previous one plus the transaction's
signed_amount.

Two ways of restoring the rule after a write:
1. Incremental recompute, from one transaction forward. Used when
   the transaction kept its place in the chain.
2. Full rebuild of an account from zero. Used whenever a write may
   have moved or removed a link (date, account, type or status
   changes, and deletes).

No other service writes running_balance or Account.balance.
All writes happen inside BalanceService.unit_of_work(); the caller
controls the commit.
"""

import logging
import math
from datetime import date

from sqlalchemy import and_, or_, select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from finance_tracker.config import get_settings
from finance_tracker.exceptions import (
    ConsistencyError,
    InvalidInputError,
    NotFoundError,
    RecomputationError,
)
from finance_tracker.models.account import Account
from finance_tracker.models.enums import (
    CategoryType,
    TransactionStatus,
    TransactionType,
)
from finance_tracker.models.transaction import Transaction
from finance_tracker.schemas.transaction import (
    TransactionCreate,
    TransactionFilters,
    TransactionUpdate,
)
from finance_tracker.services.balance_service import BalanceService
from finance_tracker.services.category_service import CategoryService

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "date": Transaction.date,
    "amount": Transaction.amount,
    "created_at": Transaction.created_at,
    "description": Transaction.description,
    "category": Transaction.category,
}

# Fields whose change can move a balance.
BALANCE_FIELDS = {
    "amount", "account_id", "to_account_id",
    "transaction_type", "date", "status",
}

# Balance fields that can also move a record within its chain, or
# move it to another chain.
REORDERING_FIELDS = BALANCE_FIELDS - {"amount"}

# Differences below this are float noise, not drift.
BALANCE_TOLERANCE = 1e-6


CHAIN_ORDER = (Transaction.date, Transaction.created_at, Transaction.id)


def _before(txn: Transaction):
    """SQL clause: rows that come before ``txn`` in chain order."""
    return or_(
        Transaction.date < txn.date,
        and_(
            Transaction.date == txn.date,
            or_(
                Transaction.created_at < txn.created_at,
                and_(
                    Transaction.created_at == txn.created_at,
                    Transaction.id < txn.id,
                ),
            ),
        ),
    )


def signed_amount(
    transaction_type: TransactionType,
    amount: float,
    direction: str = "out",
) -> float:
    """Balance effect of a transaction: income adds, expense and outgoing transfers subtract."""
    if transaction_type == TransactionType.INCOME:
        return amount
    if transaction_type == TransactionType.EXPENSE:
        return -amount
    return amount if direction == "in" else -amount


class LedgerService:
    """
    All transaction writes pass through this service.

    The service takes a database session as a constructor
    argument, so the caller controls the transaction boundary.
    """

    def __init__(self, db: Session):
        self.db = db
        self.balances = BalanceService(db)
        self.categories = CategoryService(db)
        self.settings = get_settings()

    # --- Lookups and validation ---

    def get_account(
        self, user_id: int, account_id: int, require_active: bool = True
    ) -> Account:
        account = self.db.get(Account, account_id)
        if not account or account.user_id != user_id:
            raise NotFoundError(f"Account {account_id} not found")
        if require_active and not account.is_active:
            raise ConsistencyError(f"Account {account_id} is not active")
        return account

    def get_transaction(self, user_id: int, transaction_id: int) -> Transaction:
        txn = self.db.get(Transaction, transaction_id)
        if not txn or txn.user_id != user_id:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def _get_mirror(self, txn: Transaction) -> Transaction | None:
        if txn.linked_transaction_id is None:
            return None
        return self.db.get(Transaction, txn.linked_transaction_id)

    def validate_category(
        self,
        user_id: int,
        transaction_type: TransactionType,
        category: str,
    ) -> None:
        if transaction_type == TransactionType.TRANSFER:
            return
        category_type = CategoryType(transaction_type.value)
        if not self.categories.is_valid(user_id, category, category_type):
            raise InvalidInputError(
                f"Unknown {category_type.value} category '{category}'"
            )

    def validate_transfer_accounts(
        self, user_id: int, account_id: int, to_account_id: int | None
    ) -> Account:
        if to_account_id is None:
            raise ConsistencyError("Transfer requires a destination account")
        if to_account_id == account_id:
            raise ConsistencyError(
                "Transfer source and destination must be different accounts"
            )
        return self.get_account(user_id, to_account_id)

    # --- Create ---

    def create_transaction(
        self,
        user_id: int,
        request: TransactionCreate,
        recurring_id: int | None = None,
        recurring_due_date: date | None = None,
    ) -> Transaction:
        """
        Record a transaction and bring the affected chains up to date.

        A transfer creates two linked rows: the outgoing one on the
        source account (returned) and the incoming one on the
        destination. With currency_conversion the incoming row is
        written in the target currency and amount.
        """
        account = self.get_account(user_id, request.account_id)
        self.validate_category(user_id, request.transaction_type, request.category)

        destination = None
        if request.transaction_type == TransactionType.TRANSFER:
            destination = self.validate_transfer_accounts(
                user_id, account.id, request.to_account_id
            )
        elif request.to_account_id is not None:
            raise InvalidInputError("Only transfers take a destination account")

        conversion = request.currency_conversion
        conversion_fields = {}
        if conversion is not None:
            conversion_fields = {
                "conversion_from_currency": conversion.from_currency,
                "conversion_to_currency": conversion.to_currency,
                "conversion_from_amount": conversion.from_amount,
                "conversion_to_amount": conversion.to_amount,
                "conversion_rate": conversion.exchange_rate,
                "conversion_date": conversion.conversion_date,
            }

        with self.balances.unit_of_work():
            self.balances.lock_accounts(
                [account.id, destination.id if destination else None]
            )

            txn = Transaction(
                user_id=user_id,
                transaction_type=request.transaction_type,
                status=request.status,
                amount=request.amount,
                signed_amount=signed_amount(
                    request.transaction_type, request.amount
                ),
                currency=request.currency,
                account_id=account.id,
                to_account_id=destination.id if destination else None,
                category=request.category,
                subcategory=request.subcategory,
                description=request.description,
                notes=request.notes,
                date=request.date,
                recurring_id=recurring_id,
                recurring_due_date=recurring_due_date,
                **conversion_fields,
            )
            self.db.add(txn)
            self.db.flush()
            created = [txn]

            if destination is not None:
                mirror_amount = conversion.to_amount if conversion else request.amount
                mirror = Transaction(
                    user_id=user_id,
                    transaction_type=TransactionType.TRANSFER,
                    status=request.status,
                    amount=mirror_amount,
                    signed_amount=signed_amount(
                        TransactionType.TRANSFER, mirror_amount, "in"
                    ),
                    currency=(
                        conversion.to_currency if conversion
                        else destination.currency
                    ),
                    account_id=destination.id,
                    to_account_id=account.id,
                    linked_transaction_id=txn.id,
                    category=request.category,
                    subcategory=request.subcategory,
                    description=request.description,
                    notes=request.notes,
                    date=request.date,
                    recurring_id=recurring_id,
                    recurring_due_date=recurring_due_date,
                    **conversion_fields,
                )
                self.db.add(mirror)
                self.db.flush()
                txn.linked_transaction_id = mirror.id
                created.append(mirror)

            for record in created:
                if record.status != TransactionStatus.COMPLETED:
                    continue
                record.running_balance = (
                    self._predecessor_balance(record) + record.signed_amount
                )
                self.balances.apply_delta(record.account_id, record.signed_amount)
                self.recompute_from(record)

        logger.info(
            "Created %s transaction %s on account %s (%s %s)",
            txn.transaction_type.value, txn.id, txn.account_id,
            txn.signed_amount, txn.currency,
        )
        return txn

    # --- Update ---

    def update_transaction(
        self, user_id: int, transaction_id: int, request: TransactionUpdate
    ) -> Transaction:
        """
        Apply a partial update and repair the affected chains.

        Both halves of a transfer move together: date and status are
        copied to the mirror, an amount edit is converted with the
        stored rate, and a new to_account_id moves the mirror to that
        account. Switching type to or from transfer creates or removes
        the mirror.
        """
        txn = self.get_transaction(user_id, transaction_id)
        mirror = self._get_mirror(txn)

        updates = {
            field: value
            for field, value in request.model_dump(exclude_unset=True).items()
            if value is not None or field in ("subcategory", "notes")
        }
        changed = {
            field for field, value in updates.items()
            if getattr(txn, field) != value
        }
        if not changed:
            return txn

        new_type = updates.get("transaction_type", txn.transaction_type)
        new_account_id = updates.get("account_id", txn.account_id)
        new_status = updates.get("status", txn.status)

        if "status" in changed and not txn.can_transition_to(new_status):
            raise InvalidInputError(
                f"Cannot transition transaction from "
                f"{txn.status.value} to {new_status.value}"
            )
        if "account_id" in changed:
            self.get_account(user_id, new_account_id)
        if {"category", "transaction_type"} & changed:
            self.validate_category(
                user_id, new_type, updates.get("category", txn.category)
            )

        destination_id = None
        if new_type == TransactionType.TRANSFER:
            destination_id = updates.get("to_account_id", txn.to_account_id)
            self.validate_transfer_accounts(user_id, new_account_id, destination_id)

        was_completed = txn.status == TransactionStatus.COMPLETED
        affected = {txn.account_id, new_account_id, destination_id}
        if mirror is not None:
            affected.add(mirror.account_id)
        affected.discard(None)

        with self.balances.unit_of_work():
            self.balances.lock_accounts(affected)

            direction = txn.transfer_direction or "out"
            for field in ("category", "subcategory", "description", "notes"):
                if field in updates:
                    setattr(txn, field, updates[field])

            if "transaction_type" in changed:
                txn.transaction_type = new_type
                if new_type == TransactionType.TRANSFER:
                    direction = "out"
                elif mirror is not None:
                    self._unlink(txn, mirror)
                    self.db.delete(mirror)
                    self.db.flush()
                    mirror = None
                    txn.to_account_id = None

            if "account_id" in changed:
                txn.account_id = new_account_id
                if mirror is not None:
                    mirror.to_account_id = new_account_id

            if new_type == TransactionType.TRANSFER:
                txn.to_account_id = destination_id
                if mirror is None:
                    mirror = self._create_mirror(txn, destination_id)
                elif mirror.account_id != destination_id:
                    mirror.account_id = destination_id
                    mirror.currency = self.db.get(Account, destination_id).currency

            if "amount" in changed:
                txn.amount = updates["amount"]
                if mirror is not None:
                    self._sync_mirror_amount(txn, mirror, direction)

            for field in ("date", "status"):
                if field in changed:
                    setattr(txn, field, updates[field])
                    if mirror is not None:
                        setattr(mirror, field, updates[field])

            if BALANCE_FIELDS & changed:
                txn.signed_amount = signed_amount(
                    txn.transaction_type, txn.amount, direction
                )
                if mirror is not None:
                    mirror.signed_amount = signed_amount(
                        TransactionType.TRANSFER, mirror.amount,
                        "out" if direction == "in" else "in",
                    )
            self.db.flush()

            is_completed = txn.status == TransactionStatus.COMPLETED
            if (was_completed or is_completed) and (BALANCE_FIELDS & changed):
                if REORDERING_FIELDS & changed:
                    for account_id in sorted(affected):
                        self.rebuild_account(account_id)
                else:
                    self.recompute_from(txn)
                    if mirror is not None:
                        self.recompute_from(mirror)

        logger.info(
            "Updated transaction %s (%s)", txn.id, ", ".join(sorted(changed))
        )
        return txn

    def _create_mirror(self, txn: Transaction, destination_id: int) -> Transaction:
        destination = self.db.get(Account, destination_id)
        mirror = Transaction(
            user_id=txn.user_id,
            transaction_type=TransactionType.TRANSFER,
            status=txn.status,
            amount=txn.amount,
            signed_amount=txn.amount,
            currency=destination.currency,
            account_id=destination_id,
            to_account_id=txn.account_id,
            linked_transaction_id=txn.id,
            category=txn.category,
            subcategory=txn.subcategory,
            description=txn.description,
            notes=txn.notes,
            date=txn.date,
            recurring_id=txn.recurring_id,
            recurring_due_date=txn.recurring_due_date,
        )
        self.db.add(mirror)
        self.db.flush()
        txn.linked_transaction_id = mirror.id
        return mirror

    def _sync_mirror_amount(
        self, txn: Transaction, mirror: Transaction, direction: str
    ) -> None:
        rate = txn.conversion_rate or 1.0
        if direction == "out":
            mirror.amount = txn.amount * rate
            from_amount, to_amount = txn.amount, mirror.amount
        else:
            mirror.amount = txn.amount / rate
            from_amount, to_amount = mirror.amount, txn.amount

        if txn.conversion_rate is not None:
            for record in (txn, mirror):
                record.conversion_from_amount = from_amount
                record.conversion_to_amount = to_amount

    def _unlink(self, *records: Transaction) -> None:
        for record in records:
            record.linked_transaction_id = None
        self.db.flush()

    # --- Delete ---

    def delete_transaction(self, user_id: int, transaction_id: int) -> None:
        """Delete a transaction (and its transfer mirror) and rebuild the accounts it touched."""
        txn = self.get_transaction(user_id, transaction_id)
        mirror = self._get_mirror(txn)

        affected = {txn.account_id}
        records = [txn]
        if mirror is not None:
            affected.add(mirror.account_id)
            records.append(mirror)

        with self.balances.unit_of_work():
            self.balances.lock_accounts(affected)
            self._unlink(*records)
            for record in records:
                self.db.delete(record)
            self.db.flush()
            for account_id in sorted(affected):
                self.rebuild_account(account_id)

        logger.info(
            "Deleted transaction %s%s", transaction_id,
            f" and mirror {mirror.id}" if mirror is not None else "",
        )

    # --- Recompute ---

    def _predecessor(self, txn: Transaction) -> Transaction | None:
        return self.db.execute(
            select(Transaction)
            .where(
                Transaction.account_id == txn.account_id,
                Transaction.status == TransactionStatus.COMPLETED,
                Transaction.id != txn.id,
                _before(txn),
            )
            .order_by(*(column.desc() for column in CHAIN_ORDER))
            .limit(1)
        ).scalar_one_or_none()

    def _predecessor_balance(self, txn: Transaction) -> float:
        previous = self._predecessor(txn)
        if previous is None or previous.running_balance is None:
            return 0.0
        return previous.running_balance

    def recompute_from(self, txn: Transaction) -> float:
        """
        Recompute running balances from ``txn`` to the end of its chain.

        Starts from the running balance of the completed transaction
        right before ``txn`` (0 if there is none). Returns the new
        account balance. Falls back to a full rebuild when that
        predecessor has no running balance stored.
        """
        try:
            previous = self._predecessor(txn)
            if previous is not None and previous.running_balance is None:
                logger.warning(
                    "Account %s: transaction %s has no running balance, "
                    "rebuilding the whole chain", txn.account_id, previous.id,
                )
                return self.rebuild_account(txn.account_id)

            running = previous.running_balance if previous is not None else 0.0
            suffix = self.db.execute(
                select(Transaction)
                .where(
                    Transaction.account_id == txn.account_id,
                    Transaction.status == TransactionStatus.COMPLETED,
                    ~_before(txn),
                )
                .order_by(*CHAIN_ORDER)
            ).scalars().all()

            for record in suffix:
                running += record.signed_amount
                record.running_balance = running
            if txn.status != TransactionStatus.COMPLETED:
                txn.running_balance = None

            self.balances.set_balance(txn.account_id, running)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise RecomputationError(
                f"Failed to recompute account {txn.account_id} "
                f"from transaction {txn.id}"
            ) from exc

        logger.debug(
            "Account %s: recomputed %d transaction(s) from %s, balance %s",
            txn.account_id, len(suffix), txn.id, running,
        )
        return running

    def rebuild_account(self, account_id: int) -> float:
        """
        Replay an account's whole chain from zero.

        Non-completed transactions get their running balance cleared.
        Returns the final balance, which is also stored on the account.
        """
        try:
            chain = self.db.execute(
                select(Transaction)
                .where(Transaction.account_id == account_id)
                .order_by(*CHAIN_ORDER)
            ).scalars().all()

            running = 0.0
            for record in chain:
                if record.status == TransactionStatus.COMPLETED:
                    running += record.signed_amount
                    record.running_balance = running
                else:
                    record.running_balance = None

            self.balances.set_balance(account_id, running)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise RecomputationError(
                f"Failed to rebuild account {account_id}"
            ) from exc

        logger.debug(
            "Account %s: rebuilt %d transaction(s), balance %s",
            account_id, len(chain), running,
        )
        return running

    def rebuild_user_accounts(self, user_id: int) -> dict[int, float]:
        """Full rebuild of every account the user owns, active or not."""
        account_ids = self.db.execute(
            select(Account.id)
            .where(Account.user_id == user_id)
            .order_by(Account.id)
        ).scalars().all()

        balances = {}
        with self.balances.unit_of_work():
            self.balances.lock_accounts(account_ids)
            for account_id in account_ids:
                balances[account_id] = self.rebuild_account(account_id)

        logger.info("Rebuilt %d account(s) for user %s", len(balances), user_id)
        return balances

    def verify_account(self, user_id: int, account_id: int) -> dict:
        """
        Replay an account's chain without writing and report any drift.

        Lists every completed transaction whose stored running balance
        differs from the replayed one.
        """
        account = self.get_account(user_id, account_id, require_active=False)

        chain = self.db.execute(
            select(Transaction)
            .where(
                Transaction.account_id == account_id,
                Transaction.status == TransactionStatus.COMPLETED,
            )
            .order_by(*CHAIN_ORDER)
        ).scalars().all()

        running = 0.0
        mismatches = []
        for record in chain:
            running += record.signed_amount
            stored = record.running_balance
            if stored is None or abs(stored - running) > BALANCE_TOLERANCE:
                mismatches.append({
                    "transaction_id": record.id,
                    "stored_running_balance": stored,
                    "expected_running_balance": running,
                })

        is_consistent = (
            not mismatches
            and abs(account.balance - running) <= BALANCE_TOLERANCE
        )
        if not is_consistent:
            logger.warning(
                "Account %s drift: stored %s, replayed %s, %d bad link(s)",
                account_id, account.balance, running, len(mismatches),
            )

        return {
            "account_id": account_id,
            "stored_balance": account.balance,
            "replayed_balance": running,
            "transaction_count": len(chain),
            "mismatches": mismatches,
            "is_consistent": is_consistent,
        }

    # --- Queries ---

    def list_transactions(
        self,
        user_id: int,
        filters: TransactionFilters | None = None,
        page: int = 1,
        limit: int | None = None,
        sort_by: str = "date",
        sort_order: str = "desc",
    ) -> dict:
        """
        Filtered, paginated transaction list.

        Ties on the sort column are broken by created_at and then id,
        in the same direction, so pages stay stable across requests.
        """
        if sort_by not in SORTABLE_FIELDS:
            raise InvalidInputError(f"Cannot sort by '{sort_by}'")
        if sort_order not in ("asc", "desc"):
            raise InvalidInputError("sort_order must be 'asc' or 'desc'")
        limit = limit or self.settings.DEFAULT_PAGE_SIZE
        if page < 1 or limit < 1:
            raise InvalidInputError("page and limit must be positive")
        limit = min(limit, self.settings.MAX_PAGE_SIZE)

        filters = filters or TransactionFilters()
        conditions = [Transaction.user_id == user_id]
        if filters.account_id is not None:
            conditions.append(Transaction.account_id == filters.account_id)
        if filters.transaction_type is not None:
            conditions.append(Transaction.transaction_type == filters.transaction_type)
        if filters.category is not None:
            conditions.append(Transaction.category == filters.category)
        if filters.status is not None:
            conditions.append(Transaction.status == filters.status)
        if filters.start_date is not None:
            conditions.append(Transaction.date >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Transaction.date <= filters.end_date)

        total = self.db.execute(
            select(func.count()).select_from(Transaction).where(*conditions)
        ).scalar_one()

        columns = [SORTABLE_FIELDS[sort_by]]
        for column in (Transaction.created_at, Transaction.id):
            if column is not columns[0]:
                columns.append(column)
        order_by = [c.desc() if sort_order == "desc" else c.asc() for c in columns]

        items = self.db.execute(
            select(Transaction)
            .where(*conditions)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return {
            "items": list(items),
            "total": total,
            "page": page,
            "total_pages": math.ceil(total / limit),
        }
