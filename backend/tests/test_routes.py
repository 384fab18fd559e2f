"""
Test Module: test_routes.py
Description: API tests through FastAPI's TestClient.

Tests:
    - Auth guard, error envelope and system endpoints
    - Account, category and transaction CRUD with ownership checks
    - Summary and recommendations endpoints
    - Plaid linking endpoints
    - Billing webhook and checkout endpoints

Author: Finance Dashboard Team
"""

import hashlib
import hmac
import json
from datetime import date, timedelta

import httpx
import plaid
import urllib3

from models import Account, Category, ConnectedBank, Subscription, Transaction
from services.billing import LemonSqueezyClient, get_lemonsqueezy_client
from services.recommendations import RecommendationEngine
from services.summary import SummaryCalculator
from conftest import TEST_USER, OTHER_USER, add_transaction, plaid_transaction, sync_page


def foreign_account(db):
    account = Account(name="Not yours", user_id=OTHER_USER)
    db.add(account)
    db.commit()
    return account


# =============================================================================
# Application
# =============================================================================

class TestApplication:

    def test_missing_token_is_rejected(self, anonymous_client):
        response = anonymous_client.get("/api/accounts")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_health_is_public(self, anonymous_client):
        response = anonymous_client.get("/api/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    def test_unknown_api_path(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    def test_test_auth(self, client):
        response = client.get("/api/test-auth")

        assert response.json() == {"message": "API Route Authenticated!", "userId": TEST_USER}

    def test_metrics(self, client):
        client.post("/api/plaid/create-link-token")

        counters = client.get("/api/metrics").json()["counters"]

        assert counters["plaid.link_token_create.success"] == 1

    def test_validation_error_envelope(self, client):
        response = client.post("/api/accounts", json={"name": ""})

        assert response.status_code == 400
        assert "name" in response.json()["error"]

    def test_unhandled_error_envelope(self, app, monkeypatch):
        from fastapi.testclient import TestClient

        def fail(self, start, end):
            raise RuntimeError("boom")

        monkeypatch.setattr(SummaryCalculator, "calculate", fail)
        client = TestClient(
            app, headers={"Authorization": "Bearer test-token"}, raise_server_exceptions=False
        )

        response = client.get("/api/summary")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal Server Error"}


# =============================================================================
# Accounts & Categories
# =============================================================================

class TestAccounts:

    def test_create_list_and_get(self, client):
        created = client.post("/api/accounts", json={"name": "Checking"}).json()["data"]

        listed = client.get("/api/accounts").json()["data"]
        fetched = client.get(f"/api/accounts/{created['id']}").json()["data"]

        assert listed == [created]
        assert fetched == {"id": created["id"], "name": "Checking"}

    def test_other_users_account_is_not_found(self, client, db):
        account = foreign_account(db)

        assert client.get(f"/api/accounts/{account.id}").status_code == 404
        assert client.patch(f"/api/accounts/{account.id}", json={"name": "Mine"}).status_code == 404
        response = client.delete(f"/api/accounts/{account.id}")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}

    def test_rename(self, client, account):
        response = client.patch(f"/api/accounts/{account.id}", json={"name": "Main"})

        assert response.json()["data"] == {"id": account.id, "name": "Main"}

    def test_delete_cascades_transactions(self, client, db, account):
        add_transaction(db, account, -1000, date.today())

        response = client.delete(f"/api/accounts/{account.id}")

        db.expire_all()
        assert response.json() == {"data": {"id": account.id}}
        assert db.query(Transaction).count() == 0

    def test_bulk_delete_only_touches_own_rows(self, client, db, account):
        other = foreign_account(db)

        response = client.post("/api/accounts/bulk-delete", json={"ids": [account.id, other.id]})

        db.expire_all()
        assert response.json()["data"] == [{"id": account.id}]
        assert [a.id for a in db.query(Account).all()] == [other.id]


class TestCategories:

    def test_crud(self, client):
        created = client.post("/api/categories", json={"name": "Food"}).json()["data"]
        client.patch(f"/api/categories/{created['id']}", json={"name": "Dining"})

        assert client.get("/api/categories").json()["data"] == [{"id": created["id"], "name": "Dining"}]

    def test_delete_keeps_transactions_uncategorized(self, client, db, account, category):
        transaction = add_transaction(db, account, -1000, date.today(), category=category)

        client.delete(f"/api/categories/{category.id}")

        db.expire_all()
        assert db.get(Transaction, transaction.id).category_id is None


# =============================================================================
# Transactions
# =============================================================================

class TestTransactions:

    def test_create_and_list(self, client, account, category):
        today = date.today()
        body = {
            "date": today.isoformat(),
            "accountId": account.id,
            "categoryId": category.id,
            "payee": "Grocer",
            "amount": -45500,
            "notes": "weekly shop",
        }

        created = client.post("/api/transactions", json=body).json()["data"]
        listed = client.get("/api/transactions").json()["data"]

        assert created["account"] == "Wallet"
        assert created["category"] == "Groceries"
        assert created["amount"] == -45500
        assert listed == [created]

    def test_list_filters_and_orders(self, client, db, account):
        today = date.today()
        second = Account(name="Card", user_id=TEST_USER)
        db.add(second)
        db.commit()
        add_transaction(db, account, -1, today - timedelta(days=2), payee="older")
        add_transaction(db, account, -2, today, payee="newer")
        add_transaction(db, account, -3, today - timedelta(days=40), payee="outside")
        add_transaction(db, second, -4, today, payee="card")

        payees = [t["payee"] for t in client.get(
            "/api/transactions", params={"accountId": account.id}
        ).json()["data"]]

        assert payees == ["newer", "older"]

    def test_bad_date_range(self, client):
        response = client.get("/api/transactions", params={"from": "yesterday"})

        assert response.status_code == 400

    def test_foreign_account_and_category(self, client, db, account):
        other_category = Category(name="Theirs", user_id=OTHER_USER)
        db.add(other_category)
        db.commit()
        base = {"date": date.today().isoformat(), "payee": "x", "amount": -1}

        wrong_account = client.post(
            "/api/transactions", json={**base, "accountId": foreign_account(db).id}
        )
        wrong_category = client.post(
            "/api/transactions",
            json={**base, "accountId": account.id, "categoryId": other_category.id},
        )

        assert wrong_account.status_code == 404
        assert wrong_category.status_code == 400
        assert wrong_category.json() == {"error": "Invalid category"}

    def test_bulk_create_and_delete(self, client, account):
        rows = [
            {"date": date.today().isoformat(), "accountId": account.id, "payee": f"p{i}", "amount": -i}
            for i in range(3)
        ]

        created = client.post("/api/transactions/bulk-create", json=rows).json()["data"]
        ids = [t["id"] for t in created]
        deleted = client.post("/api/transactions/bulk-delete", json={"ids": ids[:2]}).json()["data"]

        assert len(created) == 3
        assert sorted(d["id"] for d in deleted) == sorted(ids[:2])
        assert [t["id"] for t in client.get("/api/transactions").json()["data"]] == [ids[2]]

    def test_patch(self, client, db, account, category):
        transaction = add_transaction(db, account, -1000, date.today())

        response = client.patch(
            f"/api/transactions/{transaction.id}",
            json={"amount": -2500, "categoryId": category.id},
        )
        rejected = client.patch(f"/api/transactions/{transaction.id}", json={"payee": None})

        data = response.json()["data"]
        assert data["amount"] == -2500
        assert data["category"] == "Groceries"
        assert rejected.status_code == 400

    def test_other_users_transaction(self, client, db):
        transaction = add_transaction(db, foreign_account(db), -1000, date.today())

        assert client.get(f"/api/transactions/{transaction.id}").status_code == 404
        assert client.delete(f"/api/transactions/{transaction.id}").status_code == 404


# =============================================================================
# Summary & Recommendations
# =============================================================================

class TestSummaryRoute:

    def test_summary_shape(self, client, db, account):
        add_transaction(db, account, 10000, date(2026, 10, 2))
        add_transaction(db, account, -4000, date(2026, 10, 3))

        data = client.get(
            "/api/summary", params={"from": "2026-10-01", "to": "2026-10-07"}
        ).json()["data"]

        assert data["incomeAmount"] == 10000
        assert data["expensesAmount"] == -4000
        assert data["remainingAmount"] == 6000
        assert len(data["days"]) == 7
        assert data["days"][1] == {"date": "2026-10-02", "income": 10000, "expenses": 0}

    def test_reversed_range(self, client):
        response = client.get("/api/summary", params={"from": "2026-10-07", "to": "2026-10-01"})

        assert response.status_code == 400
        assert "error" in response.json()


class TestRecommendationsRoute:

    def test_recommendations(self, client, db, account):
        add_transaction(db, account, -250000, date.today(), payee="Zomato")

        data = client.get("/api/recommendations").json()["data"]

        assert 'Consider reviewing your spending with "Zomato" (Total: ₹250.00).' in data
        assert "Ordering food frequently? Cooking at home can lead to significant savings." in data

    def test_failure(self, client, monkeypatch):
        def fail(self, today=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(RecommendationEngine, "generate", fail)

        response = client.get("/api/recommendations")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate recommendations"}


# =============================================================================
# Plaid
# =============================================================================

class TestPlaidRoutes:

    def test_create_link_token(self, client, plaid_api):
        response = client.post("/api/plaid/create-link-token")

        assert response.json()["data"]["link_token"] == "link-sandbox-123"
        request = plaid_api.link_token_create.call_args.args[0]
        assert request.user.client_user_id == TEST_USER

    def test_link_token_failure(self, client, plaid_api):
        plaid_api.link_token_create.side_effect = plaid.ApiException(status=400, reason="INVALID_FIELD")

        response = client.post("/api/plaid/create-link-token")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create link token"}

    def test_exchange_requires_token(self, client):
        response = client.post("/api/plaid/exchange-public-token", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Bad Request: Missing publicToken"}

    def test_exchange_links_and_syncs(self, client, db, plaid_api):
        plaid_api.transactions_sync.return_value = sync_page(added=[
            plaid_transaction("tx-1", "plaid-acc-1", 9.99),
        ])

        response = client.post(
            "/api/plaid/exchange-public-token", json={"publicToken": "public-sandbox-1"}
        )

        body = response.json()
        assert body["message"] == "Public token exchanged and initial data fetched."
        assert body["data"]["added"] == 1
        assert body["data"]["accounts_inserted"] == 2
        assert db.query(Transaction).one().amount == -9990

    def test_exchange_failure(self, client, plaid_api):
        plaid_api.item_public_token_exchange.side_effect = plaid.ApiException(status=400)

        response = client.post(
            "/api/plaid/exchange-public-token", json={"publicToken": "public-sandbox-1"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed during token exchange or data fetch"}

    def test_network_failure_during_exchange(self, client, plaid_api):
        plaid_api.accounts_get.side_effect = urllib3.exceptions.MaxRetryError(None, "/accounts/get")

        response = client.post(
            "/api/plaid/exchange-public-token", json={"publicToken": "public-sandbox-1"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed during token exchange or data fetch"}

    def test_unexpected_failure_during_sync(self, client, plaid_api):
        client.post("/api/plaid/exchange-public-token", json={"publicToken": "public-sandbox-1"})
        plaid_api.transactions_sync.side_effect = RuntimeError("connection reset")

        response = client.post("/api/plaid/sync")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to sync transactions"}

    def test_unexpected_failure_creating_link_token(self, client, plaid_api):
        plaid_api.link_token_create.side_effect = urllib3.exceptions.ProtocolError("reset")

        response = client.post("/api/plaid/create-link-token")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create link token"}

    def test_connected_bank_lifecycle(self, client, db):
        assert client.get("/api/plaid/connected-bank").json() == {"data": None}
        assert client.post("/api/plaid/sync").status_code == 404
        assert client.delete("/api/plaid/connected-bank").json() == {
            "error": "No bank connection found to delete"
        }

        client.post("/api/plaid/exchange-public-token", json={"publicToken": "public-sandbox-1"})
        bank = client.get("/api/plaid/connected-bank").json()["data"]
        synced = client.post("/api/plaid/sync").json()["data"]
        deleted = client.delete("/api/plaid/connected-bank").json()["data"]

        assert bank["userId"] == TEST_USER
        assert bank["itemId"] == "item-1"
        assert "access_token" not in bank
        assert len(synced) == 1
        assert deleted == {"id": bank["id"]}
        db.expire_all()
        assert db.query(ConnectedBank).count() == 0
        assert db.query(Account).count() == 0


# =============================================================================
# Subscriptions
# =============================================================================

class TestSubscriptionRoutes:

    SECRET = "whsec_route"

    def signed_post(self, client, payload: dict, secret: str = SECRET):
        body = json.dumps(payload).encode()
        signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return client.post(
            "/api/subscriptions/webhook",
            content=body,
            headers={"X-Signature": signature, "Content-Type": "application/json"},
        )

    def test_webhook_is_public_and_upserts(self, anonymous_client, client, db, monkeypatch):
        monkeypatch.setattr("services.billing.LEMONSQUEEZY_WEBHOOK_SECRET", self.SECRET)
        payload = {
            "meta": {"event_name": "subscription_created", "custom_data": {"user_id": TEST_USER}},
            "data": {"id": "sub-9", "attributes": {"status": "active"}},
        }

        response = self.signed_post(anonymous_client, payload)
        current = client.get("/api/subscriptions/current").json()["data"]

        assert response.status_code == 200
        assert response.json() == {}
        assert current["subscriptionId"] == "sub-9"
        assert current["status"] == "active"

    def test_webhook_bad_signature(self, anonymous_client, db, monkeypatch):
        monkeypatch.setattr("services.billing.LEMONSQUEEZY_WEBHOOK_SECRET", self.SECRET)

        response = self.signed_post(anonymous_client, {"meta": {}}, secret="other")

        assert response.status_code == 401
        assert db.query(Subscription).count() == 0

    def test_webhook_without_status_is_rejected(self, anonymous_client, db, monkeypatch):
        monkeypatch.setattr("services.billing.LEMONSQUEEZY_WEBHOOK_SECRET", self.SECRET)
        payload = {
            "meta": {"event_name": "subscription_created", "custom_data": {"user_id": TEST_USER}},
            "data": {"id": 1, "attributes": {}},
        }

        response = self.signed_post(anonymous_client, payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Webhook is missing data.attributes.status"}
        assert db.query(Subscription).count() == 0

    def test_checkout(self, client, app):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"data": {"attributes": {"url": "https://checkout.test/1"}}})

        lemon = LemonSqueezyClient(api_key="k", base_url="https://api.test/v1",
                                   transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_lemonsqueezy_client] = lambda: lemon

        response = client.post("/api/subscriptions/checkout")

        assert response.json() == {"data": "https://checkout.test/1"}

    def test_checkout_provider_failure(self, client, app):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"errors": [{"detail": "variant missing"}]})

        lemon = LemonSqueezyClient(api_key="k", base_url="https://api.test/v1",
                                   transport=httpx.MockTransport(handler))
        app.dependency_overrides[get_lemonsqueezy_client] = lambda: lemon

        response = client.post("/api/subscriptions/checkout")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create checkout URL"}
