"""Account CRUD for the signed-in user."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Account
from schemas import AccountOut, BulkDeleteRequest, IdOut, NameRequest
from services.observability import logger

router = APIRouter(prefix="/accounts", tags=["Accounts"])


def get_owned_account(db: DBSession, account_id: str, user_id: str) -> Account:
    """
    Fetch an account that belongs to the user.

    Raises:
        HTTPException: 404 if the account does not exist or belongs to someone else.
    """
    account = (
        db.query(Account)
        .filter(Account.id == account_id)
        .filter(Account.user_id == user_id)
        .first()
    )
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return account


@router.get("", summary="List accounts")
async def list_accounts(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    accounts = (
        db.query(Account)
        .filter(Account.user_id == user_id)
        .order_by(Account.name)
        .all()
    )
    return {"data": [AccountOut.model_validate(a) for a in accounts]}


@router.get("/{account_id}", summary="Get one account")
async def get_account(
    account_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return {"data": AccountOut.model_validate(get_owned_account(db, account_id, user_id))}


@router.post("", summary="Create an account")
async def create_account(
    body: NameRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    account = Account(name=body.name, user_id=user_id)
    db.add(account)
    db.commit()
    return {"data": AccountOut.model_validate(account)}


@router.post("/bulk-delete", summary="Delete several accounts")
async def bulk_delete_accounts(
    body: BulkDeleteRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    accounts = (
        db.query(Account)
        .filter(Account.user_id == user_id)
        .filter(Account.id.in_(body.ids))
        .all()
    )
    deleted = [IdOut(id=a.id) for a in accounts]
    for account in accounts:
        db.delete(account)
    db.commit()
    logger.info("Accounts deleted", user_id=user_id, count=len(deleted))
    return {"data": deleted}


@router.patch("/{account_id}", summary="Rename an account")
async def update_account(
    account_id: str,
    body: NameRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    account = get_owned_account(db, account_id, user_id)
    account.name = body.name
    db.commit()
    return {"data": AccountOut.model_validate(account)}


@router.delete("/{account_id}", summary="Delete an account and its transactions")
async def delete_account(
    account_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    account = get_owned_account(db, account_id, user_id)
    db.delete(account)
    db.commit()
    return {"data": IdOut(id=account_id)}
