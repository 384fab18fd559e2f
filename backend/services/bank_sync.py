"""
Module: bank_sync.py
Description: Bank-link ingestion workflow.

Steps:
    1. Exchange the Link public token for a durable access token
    2. Upsert the connected bank (Plaid Item) for the user
    3. Fetch accounts and upsert them by Plaid account id
    4. Page through /transactions/sync until ``has_more`` is false
    5. Normalize transactions (dates, payees, signed milliunit amounts)
    6. Upsert transactions by Plaid transaction id, delete removed ones and
       store the new cursor, all in one commit

Running the workflow twice with the same Plaid data leaves the database
unchanged the second time.

Author: Finance Dashboard Team

Usage:
    sync = BankSync(db, PlaidClient())
    result = sync.link(user_id, public_token)
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional

import plaid
from sqlalchemy.orm import Session as DBSession

from models import ConnectedBank, Account, Category, Transaction
from services.normalizer import (
    NormalizedTransaction, normalize_transaction,
    category_name_from_plaid, primary_category,
)
from services.observability import (
    logger, metrics, timed_block,
    log_sync_start, log_sync_complete, log_provider_error,
)
from services.plaid_client import PlaidClient, PlaidConfigurationError


class NoConnectedBankError(LookupError):
    """The user has no linked Plaid Item."""


@dataclass
class SyncResult:
    """Counts from one ingestion run for a single Plaid Item."""
    item_id: str
    accounts_inserted: int = 0
    accounts_updated: int = 0
    added: int = 0
    modified: int = 0
    removed: int = 0
    skipped: int = 0
    cursor: Optional[str] = None
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TransactionChanges:
    """Everything collected while paging through /transactions/sync."""
    added: List[dict] = field(default_factory=list)
    modified: List[dict] = field(default_factory=list)
    removed: List[dict] = field(default_factory=list)
    cursor: Optional[str] = None
    truncated: bool = False

    @property
    def upserts(self) -> List[dict]:
        return self.added + self.modified


class BankSync:
    """Link Plaid Items and mirror their accounts and transactions locally."""

    # Stop paging after this many transactions; the stored cursor resumes later
    MAX_TRANSACTIONS = 1000

    def __init__(self, db: DBSession, plaid_client: PlaidClient):
        self.db = db
        self.plaid = plaid_client

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def link(self, user_id: str, public_token: str) -> SyncResult:
        """Exchange a Link public token and run the first sync."""
        access_token, item_id = self.plaid.exchange_public_token(public_token)
        bank = self.upsert_connection(user_id, item_id, access_token)
        return self.sync(bank)

    def sync_all(self, user_id: str) -> List[SyncResult]:
        """Resume syncing every Item the user has linked."""
        banks = (
            self.db.query(ConnectedBank)
            .filter(ConnectedBank.user_id == user_id)
            .order_by(ConnectedBank.created_at)
            .all()
        )
        if not banks:
            raise NoConnectedBankError(user_id)
        return [self.sync(bank) for bank in banks]

    def sync(self, bank: ConnectedBank) -> SyncResult:
        """Run steps 3-6 for one connected bank."""
        log_sync_start(bank.user_id, bank.item_id)
        try:
            with timed_block("bank_sync"):
                result = SyncResult(item_id=bank.item_id)
                self._sync_accounts(bank, result)

                changes = self._fetch_changes(bank.access_token, bank.cursor)
                result.truncated = changes.truncated
                self._apply_changes(bank, changes, result)

                bank.cursor = changes.cursor
                result.cursor = changes.cursor
                self.db.commit()
        except Exception:
            self.db.rollback()
            logger.clear_context()
            raise

        log_sync_complete(result.to_dict())
        return result

    def disconnect(self, user_id: str) -> str:
        """
        Remove the user's first connected bank and its accounts.

        The Plaid Item is removed first; a Plaid failure is logged and the
        local rows are deleted anyway so the user is never stuck linked.
        """
        bank = (
            self.db.query(ConnectedBank)
            .filter(ConnectedBank.user_id == user_id)
            .order_by(ConnectedBank.created_at)
            .first()
        )
        if bank is None:
            raise NoConnectedBankError(user_id)

        try:
            self.plaid.remove_item(bank.access_token)
            logger.info("Removed Plaid item", item_id=bank.item_id)
        except (plaid.ApiException, PlaidConfigurationError) as e:
            log_provider_error("plaid", "item_remove", e)

        bank_id = bank.id
        account_count = len(bank.accounts)
        self.db.delete(bank)
        self.db.commit()
        logger.info("Deleted connected bank", bank_id=bank_id, accounts=account_count)
        metrics.increment("bank.disconnected")
        return bank_id

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def upsert_connection(self, user_id: str, item_id: str, access_token: str) -> ConnectedBank:
        bank = (
            self.db.query(ConnectedBank)
            .filter(ConnectedBank.user_id == user_id)
            .filter(ConnectedBank.item_id == item_id)
            .first()
        )
        if bank:
            bank.access_token = access_token
        else:
            bank = ConnectedBank(user_id=user_id, item_id=item_id, access_token=access_token)
            self.db.add(bank)
        self.db.commit()
        return bank

    def _sync_accounts(self, bank: ConnectedBank, result: SyncResult) -> None:
        plaid_accounts = self.plaid.get_accounts(bank.access_token)
        logger.info("Received accounts from Plaid", count=len(plaid_accounts))
        if not plaid_accounts:
            return

        existing = {
            a.plaid_id: a
            for a in self.db.query(Account)
            .filter(Account.user_id == bank.user_id)
            .filter(Account.plaid_id.in_([p["account_id"] for p in plaid_accounts]))
            .all()
        }

        for plaid_account in plaid_accounts:
            account = existing.get(plaid_account["account_id"])
            if account:
                account.name = plaid_account["name"]
                account.connected_bank_id = bank.id
                result.accounts_updated += 1
            else:
                account = Account(
                    plaid_id=plaid_account["account_id"],
                    name=plaid_account["name"],
                    user_id=bank.user_id,
                    connected_bank_id=bank.id,
                )
                self.db.add(account)
                existing[account.plaid_id] = account
                result.accounts_inserted += 1

        self.db.commit()
        logger.info(
            "Upserted accounts",
            inserted=result.accounts_inserted,
            updated=result.accounts_updated,
        )

    def _fetch_changes(self, access_token: str, cursor: Optional[str]) -> TransactionChanges:
        changes = TransactionChanges(cursor=cursor)
        has_more = True

        while has_more:
            page = self.plaid.sync_transactions(access_token, cursor=changes.cursor)
            changes.added.extend(page.get("added") or [])
            changes.modified.extend(page.get("modified") or [])
            changes.removed.extend(page.get("removed") or [])
            changes.cursor = page.get("next_cursor") or changes.cursor
            has_more = bool(page.get("has_more"))

            if has_more and len(changes.upserts) > self.MAX_TRANSACTIONS:
                logger.warning(
                    "Stopping transaction sync early",
                    collected=len(changes.upserts),
                    limit=self.MAX_TRANSACTIONS,
                )
                changes.truncated = True
                break

        logger.info(
            "Received transactions from Plaid",
            added=len(changes.added),
            modified=len(changes.modified),
            removed=len(changes.removed),
        )
        return changes

    def _apply_changes(
        self, bank: ConnectedBank, changes: TransactionChanges, result: SyncResult
    ) -> None:
        user_accounts = self.db.query(Account).filter(Account.user_id == bank.user_id).all()
        account_map = {a.plaid_id: a.id for a in user_accounts if a.plaid_id}
        local_account_ids = [a.id for a in user_accounts]

        removed_ids = {r["transaction_id"] for r in changes.removed if r.get("transaction_id")}

        rows: List[NormalizedTransaction] = []
        for tx in changes.upserts:
            if tx.get("transaction_id") in removed_ids:
                continue
            row = normalize_transaction(tx, account_map)
            if row is None:
                result.skipped += 1
            else:
                rows.append(row)

        category_map = self._upsert_categories(bank.user_id, changes.upserts)

        existing = {
            (t.account_id, t.plaid_id): t
            for t in self.db.query(Transaction)
            .filter(Transaction.account_id.in_(local_account_ids))
            .filter(Transaction.plaid_id.in_([r.plaid_id for r in rows]))
            .all()
        } if rows else {}

        for row in rows:
            values = {
                "amount": row.amount,
                "payee": row.payee,
                "notes": row.notes,
                "date": row.date,
                "category_id": category_map.get(row.category_plaid_id),
            }
            transaction = existing.get((row.account_id, row.plaid_id))
            if transaction:
                for key, value in values.items():
                    setattr(transaction, key, value)
                result.modified += 1
            else:
                transaction = Transaction(plaid_id=row.plaid_id, account_id=row.account_id, **values)
                self.db.add(transaction)
                existing[(row.account_id, row.plaid_id)] = transaction
                result.added += 1

        if removed_ids and local_account_ids:
            self.db.flush()
            result.removed = (
                self.db.query(Transaction)
                .filter(Transaction.account_id.in_(local_account_ids))
                .filter(Transaction.plaid_id.in_(removed_ids))
                .delete(synchronize_session=False)
            )

    def _upsert_categories(self, user_id: str, transactions: List[dict]) -> Dict[str, str]:
        """Make sure every Plaid primary category has a local row; return plaid id -> local id."""
        primaries = {p for p in (primary_category(tx) for tx in transactions) if p}
        if not primaries:
            return {}

        categories = {
            c.plaid_id: c
            for c in self.db.query(Category)
            .filter(Category.user_id == user_id)
            .filter(Category.plaid_id.in_(primaries))
            .all()
        }
        for primary in sorted(primaries - set(categories)):
            category = Category(
                plaid_id=primary,
                name=category_name_from_plaid(primary),
                user_id=user_id,
            )
            self.db.add(category)
            categories[primary] = category

        self.db.flush()
        return {plaid_id: c.id for plaid_id, c in categories.items()}
