from sqlalchemy import or_
from sqlalchemy.orm import Session

from storefront.models.category import Category
from storefront.models.product import Product
from storefront.schemas.category import CategoryCreate, CategoryUpdate
from storefront.services.errors import DuplicateError


def _normalize_slug(slug: str) -> str:
    return slug.strip().lower().replace(" ", "-")


def _check_unique(db: Session, name: str | None, slug: str | None, exclude_id: str | None = None) -> None:
    conditions = []
    if name:
        conditions.append(Category.name == name)
    if slug:
        conditions.append(Category.slug == slug)
    if not conditions:
        return
    q = db.query(Category).filter(or_(*conditions))
    if exclude_id:
        q = q.filter(Category.id != exclude_id)
    if q.first():
        raise DuplicateError("Category with this name or slug already exists")


def list_categories(db: Session, active_only: bool = False) -> list[Category]:
    q = db.query(Category)
    if active_only:
        q = q.filter(Category.is_active == True)  # noqa: E712
    return q.order_by(Category.display_order, Category.name).all()


def get_category(db: Session, category_id: str) -> Category | None:
    return db.query(Category).filter(or_(Category.id == category_id, Category.slug == category_id)).first()


def create_category(db: Session, data: CategoryCreate) -> Category:
    name = data.name.strip()
    slug = _normalize_slug(data.slug)
    _check_unique(db, name, slug)
    category = Category(
        name=name,
        slug=slug,
        description=data.description,
        is_active=data.is_active,
        display_order=data.display_order,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, category_id: str, data: CategoryUpdate) -> Category | None:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        return None
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("name"):
        update_data["name"] = update_data["name"].strip()
    if update_data.get("slug"):
        update_data["slug"] = _normalize_slug(update_data["slug"])
    _check_unique(db, update_data.get("name"), update_data.get("slug"), exclude_id=category.id)
    for field, value in update_data.items():
        if value is not None:
            setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> bool:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        return False
    db.query(Product).filter(Product.category_id == category.id).update(
        {Product.category_id: None}, synchronize_session=False
    )
    db.delete(category)
    db.commit()
    return True
