"""
Transaction CRUD.

Transactions have no user column; ownership always goes through the account,
so every query joins ``accounts`` and filters on the signed-in user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session as DBSession, joinedload

from auth import get_current_user
from database import get_db
from models import Account, Transaction
from schemas import (
    BulkDeleteRequest, IdOut, TransactionCreate, TransactionOut, TransactionUpdate,
)
from services.summary import resolve_period
from routes.accounts import get_owned_account
from routes.categories import get_owned_category

router = APIRouter(prefix="/transactions", tags=["Transactions"])


def to_transaction_out(transaction: Transaction) -> TransactionOut:
    return TransactionOut(
        id=transaction.id,
        date=transaction.date,
        category=transaction.category.name if transaction.category else None,
        categoryId=transaction.category_id,
        payee=transaction.payee,
        amount=transaction.amount,
        notes=transaction.notes,
        account=transaction.account.name,
        accountId=transaction.account_id,
    )


def owned_transactions(db: DBSession, user_id: str):
    return (
        db.query(Transaction)
        .join(Account, Transaction.account_id == Account.id)
        .filter(Account.user_id == user_id)
    )


def get_owned_transaction(db: DBSession, transaction_id: str, user_id: str) -> Transaction:
    transaction = owned_transactions(db, user_id).filter(Transaction.id == transaction_id).first()
    if not transaction:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return transaction


def check_references(
    db: DBSession, user_id: str, account_id: Optional[str], category_id: Optional[str]
) -> None:
    """
    Make sure a write only points at the user's own account and category.

    Raises:
        HTTPException: 404 for a foreign account, 400 for a foreign category.
    """
    if account_id is not None:
        get_owned_account(db, account_id, user_id)
    if category_id is not None:
        try:
            get_owned_category(db, category_id, user_id)
        except HTTPException:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category"
            ) from None


@router.get("", summary="List transactions in a date range")
async def list_transactions(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    account_id: Optional[str] = Query(None, alias="accountId"),
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    try:
        start, end = resolve_period(date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    query = (
        owned_transactions(db, user_id)
        .options(joinedload(Transaction.account), joinedload(Transaction.category))
        .filter(Transaction.date >= start)
        .filter(Transaction.date <= end)
    )
    if account_id:
        query = query.filter(Transaction.account_id == account_id)

    transactions = query.order_by(Transaction.date.desc(), Transaction.id).all()
    return {"data": [to_transaction_out(t) for t in transactions]}


@router.get("/{transaction_id}", summary="Get one transaction")
async def get_transaction(
    transaction_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return {"data": to_transaction_out(get_owned_transaction(db, transaction_id, user_id))}


@router.post("", summary="Create a transaction")
async def create_transaction(
    body: TransactionCreate,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    check_references(db, user_id, body.accountId, body.categoryId)

    transaction = Transaction(
        date=body.date,
        account_id=body.accountId,
        category_id=body.categoryId,
        payee=body.payee,
        amount=body.amount,
        notes=body.notes,
    )
    db.add(transaction)
    db.commit()
    return {"data": to_transaction_out(transaction)}


@router.post("/bulk-create", summary="Create several transactions")
async def bulk_create_transactions(
    body: list[TransactionCreate],
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    for account_id in {t.accountId for t in body}:
        check_references(db, user_id, account_id, None)
    for category_id in {t.categoryId for t in body if t.categoryId}:
        check_references(db, user_id, None, category_id)

    transactions = [
        Transaction(
            date=t.date,
            account_id=t.accountId,
            category_id=t.categoryId,
            payee=t.payee,
            amount=t.amount,
            notes=t.notes,
        )
        for t in body
    ]
    db.add_all(transactions)
    db.commit()
    return {"data": [to_transaction_out(t) for t in transactions]}


@router.post("/bulk-delete", summary="Delete several transactions")
async def bulk_delete_transactions(
    body: BulkDeleteRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    transactions = owned_transactions(db, user_id).filter(Transaction.id.in_(body.ids)).all()
    deleted = [IdOut(id=t.id) for t in transactions]
    for transaction in transactions:
        db.delete(transaction)
    db.commit()
    return {"data": deleted}


@router.patch("/{transaction_id}", summary="Edit a transaction")
async def update_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    transaction = get_owned_transaction(db, transaction_id, user_id)
    changes = body.model_dump(exclude_unset=True)
    check_references(db, user_id, changes.get("accountId"), changes.get("categoryId"))

    columns = {
        "date": "date",
        "accountId": "account_id",
        "categoryId": "category_id",
        "payee": "payee",
        "amount": "amount",
        "notes": "notes",
    }
    for field, value in changes.items():
        if value is None and field in ("date", "accountId", "payee", "amount"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} cannot be null"
            )
        setattr(transaction, columns[field], value)

    db.commit()
    return {"data": to_transaction_out(transaction)}


@router.delete("/{transaction_id}", summary="Delete a transaction")
async def delete_transaction(
    transaction_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    transaction = get_owned_transaction(db, transaction_id, user_id)
    db.delete(transaction)
    db.commit()
    return {"data": IdOut(id=transaction_id)}
