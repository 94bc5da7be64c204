from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.auth import require_admin
from storefront.database import get_db
from storefront.models.user import User
from storefront.schemas.category import CategoryCreate, CategoryOut, CategoryUpdate
from storefront.services import category_service
from storefront.services.errors import DuplicateError

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=list[CategoryOut])
def list_categories(active_only: bool = True, db: Session = Depends(get_db)):
    return category_service.list_categories(db, active_only=active_only)


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(category_id: str, db: Session = Depends(get_db)):
    category = category_service.get_category(db, category_id)
    if not category:
        raise HTTPException(404, "Category not found")
    return category


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryCreate, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        return category_service.create_category(db, data)
    except DuplicateError as e:
        raise HTTPException(409, str(e))


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str, data: CategoryUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    try:
        category = category_service.update_category(db, category_id, data)
    except DuplicateError as e:
        raise HTTPException(409, str(e))
    if not category:
        raise HTTPException(404, "Category not found")
    return category


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not category_service.delete_category(db, category_id):
        raise HTTPException(404, "Category not found")
