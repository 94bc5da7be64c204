from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.schemas.product import ProductOut
from storefront.services import product_service

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", response_model=list[ProductOut])
def list_products(
    skip: int = 0,
    limit: int = 100,
    category: str | None = None,
    featured: bool | None = None,
    db: Session = Depends(get_db),
):
    return product_service.list_products(db, skip=skip, limit=limit, category=category, featured=featured)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = product_service.get_product(db, product_id)
    if not product:
        raise HTTPException(404, "Product not found")
    return product
