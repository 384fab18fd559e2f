"""
Thin wrapper around the Plaid API client.

Provides:
    - create_link_token(user_id)
    - exchange_public_token(public_token) -> (access_token, item_id)
    - get_accounts(access_token)
    - sync_transactions(access_token, cursor, count) -> one /transactions/sync page
    - remove_item(access_token)

Every method returns plain dicts (``to_dict()`` of the Plaid model) so the
ingestion code can be exercised with hand-built payloads.

Author: Finance Dashboard Team
"""

from typing import Any, Dict, List, Optional, Tuple

import plaid
from plaid.api import plaid_api
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_sync_request import TransactionsSyncRequest

from config import (
    PLAID_CLIENT_ID, PLAID_SECRET, PLAID_ENV,
    PLAID_CLIENT_NAME, PLAID_PRODUCTS, PLAID_COUNTRY_CODES, PLAID_LANGUAGE,
)
from services.observability import timed


PLAID_ENV_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

SYNC_PAGE_SIZE = 100


class PlaidConfigurationError(RuntimeError):
    """Raised when Plaid credentials are missing or the environment is unknown."""


def build_plaid_api(
    client_id: str = PLAID_CLIENT_ID,
    secret: str = PLAID_SECRET,
    env: str = PLAID_ENV,
) -> plaid_api.PlaidApi:
    """Build a PlaidApi pointed at the configured environment."""
    if not client_id or not secret:
        raise PlaidConfigurationError("PLAID_CLIENT_ID and PLAID_SECRET must be set")

    host = PLAID_ENV_HOSTS.get((env or "").lower())
    if host is None:
        raise PlaidConfigurationError(f"Unknown PLAID_ENV: {env!r}")

    configuration = plaid.Configuration(
        host=host,
        api_key={
            "clientId": client_id,
            "secret": secret,
        },
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))


class PlaidClient:
    """Plaid operations used by bank linking and ingestion."""

    def __init__(self, api: Optional[plaid_api.PlaidApi] = None):
        self._api = api

    @property
    def api(self) -> plaid_api.PlaidApi:
        # Built on first use so routes that never touch Plaid work without credentials
        if self._api is None:
            self._api = build_plaid_api()
        return self._api

    @timed("plaid.link_token_create")
    def create_link_token(self, user_id: str) -> Dict[str, Any]:
        request = LinkTokenCreateRequest(
            user=LinkTokenCreateRequestUser(client_user_id=user_id),
            client_name=PLAID_CLIENT_NAME,
            products=[Products(p) for p in PLAID_PRODUCTS],
            country_codes=[CountryCode(c) for c in PLAID_COUNTRY_CODES],
            language=PLAID_LANGUAGE,
        )
        return self.api.link_token_create(request).to_dict()

    @timed("plaid.item_public_token_exchange")
    def exchange_public_token(self, public_token: str) -> Tuple[str, str]:
        request = ItemPublicTokenExchangeRequest(public_token=public_token)
        response = self.api.item_public_token_exchange(request).to_dict()
        return response["access_token"], response["item_id"]

    @timed("plaid.accounts_get")
    def get_accounts(self, access_token: str) -> List[Dict[str, Any]]:
        request = AccountsGetRequest(access_token=access_token)
        return self.api.accounts_get(request).to_dict().get("accounts", [])

    @timed("plaid.transactions_sync")
    def sync_transactions(
        self,
        access_token: str,
        cursor: Optional[str] = None,
        count: int = SYNC_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """
        Fetch one page of /transactions/sync.

        The cursor is omitted on the first sync; Plaid rejects an explicit None.
        """
        kwargs = {"access_token": access_token, "count": count}
        if cursor:
            kwargs["cursor"] = cursor
        return self.api.transactions_sync(TransactionsSyncRequest(**kwargs)).to_dict()

    @timed("plaid.item_remove")
    def remove_item(self, access_token: str) -> None:
        self.api.item_remove(ItemRemoveRequest(access_token=access_token))


def get_plaid_client() -> PlaidClient:
    """Dependency: Provide a PlaidClient instance."""
    return PlaidClient()
