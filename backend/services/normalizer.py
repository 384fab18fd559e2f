"""
Conversion of Plaid payloads into the local transaction representation.

Plaid reports money leaving the account as a positive amount in major units.
Locally, amounts are signed integers in milliunits (1.00 == 1000) where a
negative value is an expense. Dates may arrive as ``date``, ``datetime`` or
ISO strings; payee and notes fall back through ``merchant_name`` and ``name``.

Author: Finance Dashboard Team
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional

from services.observability import logger


MILLIUNITS = 1000
PROVIDER_DATE_FORMAT = "%Y-%m-%d"
FALLBACK_PAYEE = "N/A"


@dataclass
class NormalizedTransaction:
    """A Plaid transaction ready to be written to the ``transactions`` table."""
    plaid_id: str
    account_id: str
    amount: int
    payee: str
    notes: Optional[str]
    date: date
    category_plaid_id: Optional[str] = None


def to_milliunits(amount) -> int:
    """Convert a major-unit amount to integer milliunits, rounding half away from zero."""
    if amount is None:
        return 0
    try:
        value = Decimal(str(amount)) * MILLIUNITS
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def provider_amount_to_milliunits(amount) -> int:
    """
    Plaid amounts are positive for outflows; local expenses are negative.

    Storing the raw Plaid sign instead would make the `amount <= 0` expense
    queries in summaries and recommendations count outflows as income.
    """
    return -to_milliunits(amount)


def parse_provider_date(value: Any, transaction_id: str = "") -> date:
    """
    Parse a Plaid transaction date.

    Missing or unparseable dates fall back to today and are logged, so one bad
    row never aborts an ingestion run.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        logger.warning("Missing transaction date, using today", transaction_id=transaction_id)
        return date.today()
    try:
        return datetime.strptime(str(value).strip(), PROVIDER_DATE_FORMAT).date()
    except ValueError:
        logger.warning(
            "Invalid transaction date, using today",
            transaction_id=transaction_id,
            value=value,
        )
        return date.today()


def category_name_from_plaid(primary: str) -> str:
    """``FOOD_AND_DRINK`` -> ``Food And Drink``."""
    return " ".join(part.capitalize() for part in primary.split("_") if part)


def primary_category(tx: Dict[str, Any]) -> Optional[str]:
    pfc = tx.get("personal_finance_category") or {}
    return pfc.get("primary") or None


def normalize_transaction(
    tx: Dict[str, Any],
    account_map: Dict[str, str],
) -> Optional[NormalizedTransaction]:
    """
    Map a Plaid transaction dict onto a NormalizedTransaction.

    Args:
        tx: One entry of ``added`` or ``modified`` from /transactions/sync.
        account_map: Plaid account id -> local account id for the current user.

    Returns:
        The normalized row, or None when the Plaid account is not linked locally.
    """
    transaction_id = tx.get("transaction_id") or ""
    plaid_account_id = tx.get("account_id")
    account_id = account_map.get(plaid_account_id) if plaid_account_id else None
    if not account_id:
        logger.warning(
            "No local account for Plaid account, skipping transaction",
            plaid_account_id=plaid_account_id,
            transaction_id=transaction_id,
        )
        return None

    name = tx.get("name") or None
    return NormalizedTransaction(
        plaid_id=transaction_id,
        account_id=account_id,
        amount=provider_amount_to_milliunits(tx.get("amount")),
        payee=tx.get("merchant_name") or name or FALLBACK_PAYEE,
        notes=name,
        date=parse_provider_date(tx.get("date"), transaction_id),
        category_plaid_id=primary_category(tx),
    )
