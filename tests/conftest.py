import os

# Set environment variables BEFORE any cxdesk imports; settings load at import time.
os.environ["SECRET_KEY"] = "test-secret-key-1234567890"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"

from dataclasses import dataclass  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cxdesk import models  # noqa: E402
from cxdesk.api.deps import get_current_context  # noqa: E402
from cxdesk.core.context import CallerContext  # noqa: E402
from cxdesk.database import Base, enable_sqlite_savepoints, get_db  # noqa: E402
from cxdesk.main import app  # noqa: E402
from tests.factories import seed_currency, seed_repository  # noqa: E402


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@dataclass
class Seed:
    org: models.Organization
    user: models.User
    other_user: models.User
    usd: models.Currency
    btc: models.Currency
    till: models.Repository
    vault: models.Repository
    wallet: models.Repository

    @property
    def ctx(self) -> CallerContext:
        return CallerContext(user_id=self.user.id, organization_id=self.org.id)

    @property
    def other_ctx(self) -> CallerContext:
        return CallerContext(user_id=self.other_user.id, organization_id=self.org.id)


@pytest.fixture
def seed(db) -> Seed:
    org = models.Organization(name="Test Exchange", slug="test")
    db.add(org)
    db.flush()

    user = models.User(email="teller@test.com", name="Teller", active=True)
    other = models.User(email="second@test.com", name="Second Teller", active=True)
    db.add_all([user, other])
    db.flush()

    usd = seed_currency(db, org, "USD", models.CurrencyType.FIAT, [100, 20, 5])
    btc = seed_currency(db, org, "BTC", models.CurrencyType.CRYPTO, [0.1])

    till = seed_repository(db, org, "Till", ["USD"], display_order=0)
    vault = seed_repository(db, org, "Vault", ["USD"], display_order=1)
    wallet = seed_repository(db, org, "Wallet", ["BTC"], display_order=2)

    db.commit()
    return Seed(
        org=org,
        user=user,
        other_user=other,
        usd=usd,
        btc=btc,
        till=till,
        vault=vault,
        wallet=wallet,
    )


@pytest.fixture
def client(db, seed):
    """TestClient sharing the test's db session, authenticated as ``seed.user``."""

    original = dict(app.dependency_overrides)
    caller = {"ctx": seed.ctx}

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_context] = lambda: caller["ctx"]

    test_client = TestClient(app)
    # Tests switch identity with: client.caller["ctx"] = seed.other_ctx
    test_client.caller = caller
    try:
        yield test_client
    finally:
        app.dependency_overrides = original
