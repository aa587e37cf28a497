"""
Shared test fixtures.

Sets up an isolated SQLite test database so tests never touch
the real database. Tables are created before and dropped after
every test.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from finance_tracker.main import app
from finance_tracker.models import Base
from finance_tracker.models.base import enable_sqlite_savepoints, get_db
from finance_tracker.models.enums import AccountType
from finance_tracker.schemas.account import AccountCreate, UserCreate
from finance_tracker.services.account_service import AccountService


# Use SQLite for tests, no external database needed.
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
# The ledger's unit of work is a SAVEPOINT; make pysqlite honour it.
enable_sqlite_savepoints(engine)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session):
    """
    Provide a test client with the test database.

    We override the get_db dependency so the FastAPI app
    uses our test session instead of the real database.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Domain fixtures ---

@pytest.fixture
def user(db_session):
    user = AccountService(db_session).create_user(UserCreate(
        name="Alice", email="alice@example.com",
    ))
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session):
    user = AccountService(db_session).create_user(UserCreate(
        name="Bob", email="bob@example.com",
    ))
    db_session.commit()
    return user


@pytest.fixture
def make_account(db_session, user):
    """Factory for accounts owned by ``user``."""
    service = AccountService(db_session)

    def _make(name="Checking", account_type=AccountType.CHECKING,
              currency="USD", opening_balance=0.0, owner=None):
        account = service.create_account(
            (owner or user).id,
            AccountCreate(
                name=name,
                account_type=account_type,
                currency=currency,
                opening_balance=opening_balance,
            ),
        )
        db_session.commit()
        return account

    return _make


@pytest.fixture
def checking(make_account):
    return make_account("Checking")


@pytest.fixture
def savings(make_account):
    return make_account("Savings", AccountType.SAVINGS)


@pytest.fixture
def headers(user):
    return {"X-User-Id": str(user.id)}
