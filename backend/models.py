"""
SQLAlchemy ORM models for the Finance Dashboard API.

Includes:
    - ConnectedBank (one Plaid Item per row, holds the access token and sync cursor)
    - Account, Category (owned by a Clerk user)
    - Transaction (owned through its account, amounts in milliunits)
    - Subscription (billing plan status)

Author: Finance Dashboard Team
"""

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, Text,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base


def new_id() -> str:
    """Opaque primary key for locally created rows."""
    return uuid.uuid4().hex


class ConnectedBank(Base):
    """
    A linked Plaid Item.

    The access token never leaves the backend; the sync cursor lets the next
    transactions sync resume where the previous one stopped.
    """
    __tablename__ = "connected_banks"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    access_token = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    cursor = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    accounts = relationship(
        "Account", back_populates="connected_bank",
        cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_connected_banks_user_item"),
    )


class Account(Base):
    """A bank account, either linked through Plaid or created by hand."""
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, default=new_id)
    plaid_id = Column(String)
    name = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    connected_bank_id = Column(
        String, ForeignKey("connected_banks.id", ondelete="CASCADE")
    )

    connected_bank = relationship("ConnectedBank", back_populates="accounts")
    transactions = relationship(
        "Transaction", back_populates="account",
        cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "plaid_id", name="uq_accounts_user_plaid"),
    )


class Category(Base):
    """Per-user transaction category."""
    __tablename__ = "categories"

    id = Column(String, primary_key=True, default=new_id)
    plaid_id = Column(String)
    name = Column(String, nullable=False)
    user_id = Column(String, nullable=False, index=True)

    transactions = relationship("Transaction", back_populates="category", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("user_id", "plaid_id", name="uq_categories_user_plaid"),
    )


class Transaction(Base):
    """Core transaction data. ``amount`` is signed milliunits (negative = expense)."""
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=new_id)
    plaid_id = Column(String)
    amount = Column(Integer, nullable=False)
    payee = Column(String, nullable=False)
    notes = Column(Text)
    date = Column(Date, nullable=False)
    account_id = Column(
        String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id = Column(String, ForeignKey("categories.id", ondelete="SET NULL"))

    account = relationship("Account", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("account_id", "plaid_id", name="uq_transactions_account_plaid"),
        Index("ix_transactions_account_date", "account_id", "date"),
    )


class Subscription(Base):
    """Billing subscription mirrored from Lemon Squeezy webhooks."""
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, unique=True)
    subscription_id = Column(String, nullable=False, unique=True)
    status = Column(String, nullable=False)
