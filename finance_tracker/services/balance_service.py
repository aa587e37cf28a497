"""
Balance mutator and the ledger's unit of work.

Every ledger mutation runs inside unit_of_work(): one SAVEPOINT that
covers the transaction rows, the account balance deltas and the
running-balance recompute. If anything in the block raises, the
savepoint is rolled back and the outer session is left as it was.
The caller still owns the final commit.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from finance_tracker.config import get_settings
from finance_tracker.exceptions import NotFoundError
from finance_tracker.models.account import Account

logger = logging.getLogger(__name__)


class BalanceService:

    def __init__(self, db: Session):
        self.db = db
        self.use_transactions = get_settings().LEDGER_USE_TRANSACTIONS

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """
        Run a block of ledger writes atomically.

        With LEDGER_USE_TRANSACTIONS=false the block runs without a
        savepoint. Writes are still flushed, but a failure halfway
        leaves whatever was flushed so far in the session.
        """
        if not self.use_transactions:
            logger.warning(
                "Ledger unit of work running without a savepoint; "
                "concurrent writers to one account may race"
            )
            yield self.db
            self.db.flush()
            return

        with self.db.begin_nested():
            yield self.db

    def lock_accounts(self, account_ids: Iterable[int]) -> dict[int, Account]:
        """
        Lock the given account rows for the rest of the transaction.

        Rows are locked in id order so two requests touching the same
        pair of accounts cannot deadlock. SQLite ignores FOR UPDATE and
        serializes writers on its own.
        """
        ids = sorted({i for i in account_ids if i is not None})
        if not ids:
            return {}

        accounts = self.db.execute(
            select(Account)
            .where(Account.id.in_(ids))
            .order_by(Account.id)
            .with_for_update()
        ).scalars().all()

        found = {a.id: a for a in accounts}
        missing = set(ids) - set(found)
        if missing:
            raise NotFoundError(f"Accounts not found: {sorted(missing)}")
        return found

    def apply_delta(self, account_id: int, delta: float) -> None:
        """
        Add ``delta`` to an account's stored balance.

        Done as a single UPDATE ... SET balance = balance + :delta so
        it never works from a stale in-memory value.
        """
        result = self.db.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(
                balance=Account.balance + delta,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Account {account_id} not found")

    def set_balance(self, account_id: int, balance: float) -> None:
        result = self.db.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=balance, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Account {account_id} not found")
