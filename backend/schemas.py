"""Pydantic request/response schemas for type safety."""

import datetime
from pydantic import BaseModel, Field
from datetime import date
from typing import Optional


# Request schemas
class PublicTokenRequest(BaseModel):
    publicToken: Optional[str] = None


class NameRequest(BaseModel):
    name: str = Field(min_length=1)


class BulkDeleteRequest(BaseModel):
    ids: list[str]


class TransactionCreate(BaseModel):
    date: date
    accountId: str
    categoryId: Optional[str] = None
    payee: str = Field(min_length=1)
    amount: int = Field(description="Signed amount in milliunits")
    notes: Optional[str] = None


class TransactionUpdate(BaseModel):
    date: Optional[datetime.date] = None
    accountId: Optional[str] = None
    categoryId: Optional[str] = None
    payee: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[int] = None
    notes: Optional[str] = None


# Response schemas
class IdOut(BaseModel):
    id: str


class AccountOut(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class CategoryOut(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


class ConnectedBankOut(BaseModel):
    """Connected bank as shown to the browser; the access token is never included."""
    id: str
    userId: str = Field(validation_alias="user_id")
    itemId: str = Field(validation_alias="item_id")

    class Config:
        from_attributes = True


class TransactionOut(BaseModel):
    id: str
    date: date
    category: Optional[str] = None
    categoryId: Optional[str] = None
    payee: str
    amount: int
    notes: Optional[str] = None
    account: str
    accountId: str


class SubscriptionOut(BaseModel):
    id: str
    subscriptionId: str = Field(validation_alias="subscription_id")
    status: str

    class Config:
        from_attributes = True


class CategoryTotal(BaseModel):
    name: str
    value: int


class DayTotal(BaseModel):
    date: date
    income: int
    expenses: int


class SummaryOut(BaseModel):
    remainingAmount: int
    remainingChange: float
    incomeAmount: int
    incomeChange: float
    expensesAmount: int
    expensesChange: float
    categories: list[CategoryTotal]
    days: list[DayTotal]


class SyncResultOut(BaseModel):
    item_id: str
    accounts_inserted: int
    accounts_updated: int
    added: int
    modified: int
    removed: int
    skipped: int
    cursor: Optional[str] = None
    truncated: bool


class HealthResponse(BaseModel):
    status: str
    database: str
