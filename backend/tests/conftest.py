"""
Pytest configuration and shared fixtures for Finance Dashboard tests.

This file is automatically loaded by pytest and provides:
    - In-memory SQLite database fixtures
    - A Plaid client backed by a MagicMock PlaidApi
    - A FastAPI TestClient with auth, database and Plaid overridden
    - Small builders for Plaid payloads

Author: Finance Dashboard Team
"""

import pytest
import sys
from pathlib import Path
from datetime import date
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import init_db, get_db  # noqa: E402
from models import Account, Category, Transaction  # noqa: E402
from services.observability import metrics  # noqa: E402
from services.plaid_client import PlaidClient, get_plaid_client  # noqa: E402


TEST_USER = "user_test_1"
OTHER_USER = "user_test_2"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database shared by every connection in one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the in-memory engine."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


# =============================================================================
# Plaid Fixtures
# =============================================================================

def plaid_response(payload: dict) -> MagicMock:
    """Mimic a Plaid model: only ``to_dict()`` is used by the client."""
    response = MagicMock()
    response.to_dict.return_value = payload
    return response


def plaid_account(account_id: str, name: str) -> dict:
    return {"account_id": account_id, "name": name}


def plaid_transaction(
    transaction_id: str,
    account_id: str,
    amount,
    name: str = "Coffee Shop",
    merchant_name=None,
    tx_date="2026-10-01",
    primary=None,
) -> dict:
    tx = {
        "transaction_id": transaction_id,
        "account_id": account_id,
        "amount": amount,
        "name": name,
        "merchant_name": merchant_name,
        "date": tx_date,
    }
    if primary:
        tx["personal_finance_category"] = {"primary": primary, "detailed": f"{primary}_OTHER"}
    return tx


def sync_page(added=(), modified=(), removed=(), next_cursor="cursor-1", has_more=False) -> MagicMock:
    return plaid_response({
        "added": list(added),
        "modified": list(modified),
        "removed": [{"transaction_id": t} for t in removed],
        "next_cursor": next_cursor,
        "has_more": has_more,
    })


@pytest.fixture
def plaid_api():
    """A PlaidApi stand-in that links one Item with two accounts."""
    api = MagicMock()
    api.link_token_create.return_value = plaid_response({
        "link_token": "link-sandbox-123",
        "expiration": "2026-10-20T00:00:00Z",
        "request_id": "req-1",
    })
    api.item_public_token_exchange.return_value = plaid_response({
        "access_token": "access-sandbox-abc",
        "item_id": "item-1",
    })
    api.accounts_get.return_value = plaid_response({
        "accounts": [
            plaid_account("plaid-acc-1", "Checking"),
            plaid_account("plaid-acc-2", "Savings"),
        ]
    })
    api.transactions_sync.return_value = sync_page()
    return api


@pytest.fixture
def plaid_client(plaid_api):
    return PlaidClient(api=plaid_api)


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def account(db):
    account = Account(name="Wallet", user_id=TEST_USER)
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def category(db):
    category = Category(name="Groceries", user_id=TEST_USER)
    db.add(category)
    db.commit()
    return category


def add_transaction(db, account, amount, tx_date, payee="Shop", category=None):
    transaction = Transaction(
        amount=amount,
        payee=payee,
        date=tx_date,
        account_id=account.id,
        category_id=category.id if category else None,
    )
    db.add(transaction)
    db.commit()
    return transaction


# =============================================================================
# API Client Fixtures
# =============================================================================

@pytest.fixture
def app(db, plaid_client):
    from main import app
    from auth import get_current_user

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: TEST_USER
    app.dependency_overrides[get_plaid_client] = lambda: plaid_client
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app, headers={"Authorization": "Bearer test-token"})


@pytest.fixture
def anonymous_client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


@pytest.fixture
def today():
    return date(2026, 10, 19)
