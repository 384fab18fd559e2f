"""
Bank linking through Plaid.

Endpoints:
    - POST   /plaid/create-link-token     Link token for the browser widget
    - POST   /plaid/exchange-public-token Link a bank and run the first sync
    - POST   /plaid/sync                  Pull new transactions for linked banks
    - GET    /plaid/connected-bank        Connection status (no access token)
    - DELETE /plaid/connected-bank        Unlink the bank and drop its accounts
"""

import plaid
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import ConnectedBank
from schemas import ConnectedBankOut, IdOut, PublicTokenRequest, SyncResultOut
from services.bank_sync import BankSync, NoConnectedBankError
from services.observability import log_provider_error, logger
from services.plaid_client import PlaidClient, PlaidConfigurationError, get_plaid_client

router = APIRouter(prefix="/plaid", tags=["Plaid"])

PROVIDER_ERRORS = (plaid.ApiException, PlaidConfigurationError)


@router.post("/create-link-token", summary="Create a Plaid Link token")
async def create_link_token(
    plaid_client: PlaidClient = Depends(get_plaid_client),
    user_id: str = Depends(get_current_user),
):
    try:
        token = plaid_client.create_link_token(user_id)
    except PROVIDER_ERRORS as e:
        log_provider_error("plaid", "link_token_create", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create link token",
        )
    except Exception:
        logger.exception("Link token creation failed", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create link token",
        )
    return {"data": token}


@router.post("/exchange-public-token", summary="Link a bank and fetch initial data")
async def exchange_public_token(
    body: PublicTokenRequest,
    db: DBSession = Depends(get_db),
    plaid_client: PlaidClient = Depends(get_plaid_client),
    user_id: str = Depends(get_current_user),
):
    """
    Exchange the Link public token, then mirror accounts and transactions.

    Example:
        POST /api/plaid/exchange-public-token
        {"publicToken": "public-sandbox-..."}
    """
    if not body.publicToken:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bad Request: Missing publicToken",
        )

    try:
        result = BankSync(db, plaid_client).link(user_id, body.publicToken)
    except PROVIDER_ERRORS + (SQLAlchemyError,) as e:
        log_provider_error("plaid", "exchange_public_token", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed during token exchange or data fetch",
        )
    except Exception:
        logger.exception("Token exchange or data fetch failed", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed during token exchange or data fetch",
        )

    return {
        "message": "Public token exchanged and initial data fetched.",
        "data": SyncResultOut(**result.to_dict()),
    }


@router.post("/sync", summary="Sync transactions for every linked bank")
async def sync_transactions(
    db: DBSession = Depends(get_db),
    plaid_client: PlaidClient = Depends(get_plaid_client),
    user_id: str = Depends(get_current_user),
):
    try:
        results = BankSync(db, plaid_client).sync_all(user_id)
    except NoConnectedBankError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No connected bank")
    except PROVIDER_ERRORS + (SQLAlchemyError,) as e:
        log_provider_error("plaid", "transactions_sync", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync transactions",
        )
    except Exception:
        logger.exception("Transaction sync failed", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync transactions",
        )

    return {"data": [SyncResultOut(**r.to_dict()) for r in results]}


@router.get("/connected-bank", summary="Connected bank status")
async def get_connected_bank(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    bank = (
        db.query(ConnectedBank)
        .filter(ConnectedBank.user_id == user_id)
        .order_by(ConnectedBank.created_at)
        .first()
    )
    return {"data": ConnectedBankOut.model_validate(bank) if bank else None}


@router.delete("/connected-bank", summary="Unlink the connected bank")
async def delete_connected_bank(
    db: DBSession = Depends(get_db),
    plaid_client: PlaidClient = Depends(get_plaid_client),
    user_id: str = Depends(get_current_user),
):
    try:
        bank_id = BankSync(db, plaid_client).disconnect(user_id)
    except NoConnectedBankError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No bank connection found to delete",
        )
    except SQLAlchemyError as e:
        logger.exception("Delete connected bank failed", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete bank connection",
        )

    return {"data": IdOut(id=bank_id)}
