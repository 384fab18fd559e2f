"""Category CRUD for the signed-in user.

Deleting a category keeps its transactions; their category is cleared.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session as DBSession

from auth import get_current_user
from database import get_db
from models import Category
from schemas import CategoryOut, BulkDeleteRequest, IdOut, NameRequest
from services.observability import logger

router = APIRouter(prefix="/categories", tags=["Categories"])


def get_owned_category(db: DBSession, category_id: str, user_id: str) -> Category:
    """
    Fetch a category that belongs to the user.

    Raises:
        HTTPException: 404 if the category does not exist or belongs to someone else.
    """
    category = (
        db.query(Category)
        .filter(Category.id == category_id)
        .filter(Category.user_id == user_id)
        .first()
    )
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return category


@router.get("", summary="List categories")
async def list_categories(
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    categories = (
        db.query(Category)
        .filter(Category.user_id == user_id)
        .order_by(Category.name)
        .all()
    )
    return {"data": [CategoryOut.model_validate(c) for c in categories]}


@router.get("/{category_id}", summary="Get one category")
async def get_category(
    category_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    return {"data": CategoryOut.model_validate(get_owned_category(db, category_id, user_id))}


@router.post("", summary="Create a category")
async def create_category(
    body: NameRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    category = Category(name=body.name, user_id=user_id)
    db.add(category)
    db.commit()
    return {"data": CategoryOut.model_validate(category)}


@router.post("/bulk-delete", summary="Delete several categories")
async def bulk_delete_categories(
    body: BulkDeleteRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    categories = (
        db.query(Category)
        .filter(Category.user_id == user_id)
        .filter(Category.id.in_(body.ids))
        .all()
    )
    deleted = [IdOut(id=c.id) for c in categories]
    for category in categories:
        db.delete(category)
    db.commit()
    logger.info("Categories deleted", user_id=user_id, count=len(deleted))
    return {"data": deleted}


@router.patch("/{category_id}", summary="Rename a category")
async def update_category(
    category_id: str,
    body: NameRequest,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    category = get_owned_category(db, category_id, user_id)
    category.name = body.name
    db.commit()
    return {"data": CategoryOut.model_validate(category)}


@router.delete("/{category_id}", summary="Delete a category")
async def delete_category(
    category_id: str,
    db: DBSession = Depends(get_db),
    user_id: str = Depends(get_current_user),
):
    category = get_owned_category(db, category_id, user_id)
    db.delete(category)
    db.commit()
    return {"data": IdOut(id=category_id)}
