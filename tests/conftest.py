"""Pytest configuration and shared fixtures."""
import os

# Settings are read at import time, so configure the environment first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key"
os.environ["ADMIN_ADDRESSES"] = "0x" + "a" * 40
os.environ["ENABLE_BLOCKCHAIN_MINTING"] = "false"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)

from datetime import datetime
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from repaircoin.database import Base, get_db
from repaircoin.main import app
from repaircoin.models import Customer, Shop, ShopSubscription
from repaircoin.security_utils import create_access_token

ADMIN_ADDRESS = "0x" + "a" * 40
SHOP_WALLET = "0x" + "b" * 40
CUSTOMER_ADDRESS = "0x" + "c" * 40
OTHER_CUSTOMER_ADDRESS = "0x" + "d" * 40


@pytest.fixture
def test_engine():
    """In-memory SQLite shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a new database session for each test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session) -> Generator[TestClient, None, None]:
    """FastAPI test client bound to the test session."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(address: str, role: str, shop_id: str = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(address, role, shop_id)}"}


def make_shop(
    db: Session,
    shop_id: str = "fixit-shop",
    wallet: str = SHOP_WALLET,
    verified: bool = True,
    balance: float = 1000,
    operational_status: str = "rcg_qualified",
    rcg_balance: float = 10000,
    **kwargs,
) -> Shop:
    shop = Shop(
        shop_id=shop_id,
        name=kwargs.pop("name", "Fix It Shop"),
        wallet_address=wallet,
        email=kwargs.pop("email", f"{shop_id}@example.com"),
        verified=verified,
        verified_at=datetime.utcnow() if verified else None,
        active=kwargs.pop("active", True),
        purchased_rcn_balance=balance,
        rcg_balance=rcg_balance,
        operational_status=operational_status,
        **kwargs,
    )
    db.add(shop)
    db.commit()
    db.refresh(shop)
    return shop


def make_customer(
    db: Session,
    address: str = CUSTOMER_ADDRESS,
    balance: float = 0,
    lifetime: float = 0,
    tier: str = "BRONZE",
    **kwargs,
) -> Customer:
    customer = Customer(
        address=address,
        name=kwargs.pop("name", "Test Customer"),
        email=kwargs.pop("email", f"{address[-6:]}@example.com"),
        tier=tier,
        current_balance=balance,
        lifetime_earnings=lifetime,
        referral_code=kwargs.pop("referral_code", address[-8:].upper()),
        **kwargs,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def make_subscription(db: Session, shop_id: str, status: str = "active", **kwargs) -> ShopSubscription:
    subscription = ShopSubscription(shop_id=shop_id, status=status, monthly_amount=500, **kwargs)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


@pytest.fixture
def shop(db_session) -> Shop:
    return make_shop(db_session)


@pytest.fixture
def customer(db_session) -> Customer:
    return make_customer(db_session)


@pytest.fixture
def admin_headers() -> dict:
    return auth_headers(ADMIN_ADDRESS, "admin")


@pytest.fixture
def shop_headers(shop) -> dict:
    return auth_headers(shop.wallet_address, "shop", shop.shop_id)


@pytest.fixture
def customer_headers(customer) -> dict:
    return auth_headers(customer.address, "customer")
