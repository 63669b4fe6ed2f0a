"""Shared fixtures: in-memory database, wallets and collaborator fakes."""

import os

from cryptography.fernet import Fernet

os.environ.setdefault("SNIPER_DATABASE_URL", "sqlite://")
os.environ.setdefault("SNIPER_ENCRYPTION_KEY", Fernet.generate_key().decode())

from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

import sniper.models  # noqa: E402,F401
from sniper.database import engine  # noqa: E402
from sniper.models.user import User  # noqa: E402
from sniper.services.wallet_service import create_wallet  # noqa: E402

from fakes import FakeQuoteProvider, token_price  # noqa: E402


@pytest.fixture(autouse=True)
def db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield engine


@pytest.fixture
def user():
    with Session(engine) as session:
        u = User(username="trader")
        session.add(u)
        session.commit()
        session.refresh(u)
    return u


@pytest.fixture
def wallet(user):
    return create_wallet(user.id, "Main Wallet")


@pytest.fixture
def quote_provider():
    return FakeQuoteProvider()


@pytest.fixture
def fake_rpc():
    return SimpleNamespace(
        get_priority_fee_stats=AsyncMock(return_value=None),
        get_token_decimals=AsyncMock(return_value=6),
        get_balance=AsyncMock(return_value=2.5),
        close=AsyncMock(),
    )


@pytest.fixture
def oracle():
    return SimpleNamespace(
        get_token_price=AsyncMock(return_value=token_price(0.01)),
        close=AsyncMock(),
    )
