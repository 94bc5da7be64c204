import logging

from fastapi import UploadFile
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.models.product import MEDIA_SLOTS, Product, Variant
from storefront.models.review import Review
from storefront.schemas.product import ProductForm, VariantIn
from storefront.services import inventory_service
from storefront.services.media_service import MediaClient, MediaUploadError

logger = logging.getLogger(__name__)

BULK_UPDATE_FIELDS = {"featured", "category_id", "in_stock"}
MEDIA_FOLDER = "products"


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def list_products(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    category: str | None = None,
    featured: bool | None = None,
) -> list[Product]:
    q = db.query(Product)
    if category:
        q = q.filter(or_(Product.category_id == category, Product.category == category))
    if featured is not None:
        q = q.filter(Product.featured == featured)
    return q.order_by(Product.created_at.desc()).offset(skip).limit(limit).all()


def get_low_stock(db: Session) -> list[Product]:
    low_variant = select(Variant.product_id).where(Variant.in_stock <= Variant.min_stock)
    return (
        db.query(Product)
        .filter(or_(Product.in_stock <= Product.min_stock, Product.id.in_(low_variant)))
        .order_by(Product.in_stock)
        .all()
    )


# --- Media slots ---

def _apply_media(
    product: Product,
    slot: str,
    value: UploadFile | str | None,
    media: MediaClient,
    essential: bool = False,
) -> None:
    """Apply one form value to a media slot.

    A file replaces the slot (old CDN file deleted), a string sets the URL,
    an empty string clears the slot and ``None`` leaves it untouched.
    """
    if value is None:
        return
    id_attr = f"{slot}_id"
    old_id = getattr(product, id_attr)

    if isinstance(value, str):
        if value == getattr(product, slot):
            return
        if old_id:
            media.delete(old_id)
        setattr(product, slot, value)
        setattr(product, id_attr, "")
        if slot == "image":
            product.thumbnail_url = ""
        return

    try:
        uploaded = media.upload(value, MEDIA_FOLDER, prefix=slot)
    except MediaUploadError:
        if essential:
            raise
        logger.warning("Product %s: %s upload failed, keeping previous value", product.name, slot)
        return
    if old_id:
        media.delete(old_id)
    setattr(product, slot, uploaded.url)
    setattr(product, id_attr, uploaded.file_id)
    if slot == "image":
        product.thumbnail_url = uploaded.thumbnail_url


def _apply_all_media(product: Product, uploads: dict, media: MediaClient) -> None:
    for slot in MEDIA_SLOTS:
        _apply_media(product, slot, uploads.get(slot), media, essential=slot == "image")


# --- Create / update ---

def _sync_variants(db: Session, product: Product, variants: list[VariantIn]) -> None:
    wanted = {v.name: v for v in variants}
    for existing in list(product.variants):
        if existing.name not in wanted:
            product.variants.remove(existing)
    db.flush()

    for position, data in enumerate(variants):
        variant = product.variant_named(data.name)
        if variant is None:
            variant = Variant(name=data.name, in_stock=0, min_stock=settings.DEFAULT_MIN_STOCK)
            product.variants.append(variant)
        variant.price = data.price
        if data.min_stock is not None:
            variant.min_stock = data.min_stock
        variant.position = position
        db.flush()
        if data.in_stock is not None:
            inventory_service.set_stock(db, product, data.in_stock, variant_name=data.name)


def create_product(db: Session, form: ProductForm, uploads: dict, media: MediaClient) -> Product:
    product = Product(
        name=form.name,
        description=form.description,
        price=form.price,
        category=form.category,
        category_id=form.category_id,
        in_stock=form.in_stock or 0,
        min_stock=settings.DEFAULT_MIN_STOCK if form.min_stock is None else form.min_stock,
        featured=form.featured,
        assured=form.assured,
    )
    _apply_all_media(product, uploads, media)
    db.add(product)
    db.flush()
    for position, v in enumerate(form.variants or []):
        product.variants.append(Variant(
            name=v.name,
            price=v.price,
            in_stock=v.in_stock or 0,
            min_stock=settings.DEFAULT_MIN_STOCK if v.min_stock is None else v.min_stock,
            position=position,
        ))
    db.commit()
    db.refresh(product)
    logger.info("Product %s created (%s)", product.id, product.name)
    return product


def update_product(db: Session, product_id: str, form: ProductForm, uploads: dict, media: MediaClient) -> Product | None:
    """Apply an edit form. Stock changes are recorded in the ledger as product edits.

    Omitted stock and threshold fields keep their current values.
    """
    product = db.query(Product).filter(Product.id == product_id).with_for_update().first()
    if not product:
        return None

    product.name = form.name
    product.description = form.description
    product.price = form.price
    product.category = form.category
    product.category_id = form.category_id
    if form.min_stock is not None:
        product.min_stock = form.min_stock
    product.featured = form.featured
    product.assured = form.assured
    if form.in_stock is not None:
        inventory_service.set_stock(db, product, form.in_stock)
    if form.variants is not None:
        _sync_variants(db, product, form.variants)

    _apply_all_media(product, uploads, media)
    db.commit()
    db.refresh(product)
    return product


def bulk_update(db: Session, ids: list[str], update: dict) -> int:
    fields = {k: v for k, v in update.items() if k in BULK_UPDATE_FIELDS}
    if not fields:
        raise ValueError(f"No updatable fields; allowed: {', '.join(sorted(BULK_UPDATE_FIELDS))}")
    if "in_stock" in fields and int(fields["in_stock"]) < 0:
        raise ValueError("Stock cannot be negative")

    products = db.query(Product).filter(Product.id.in_(ids)).with_for_update().all()
    for product in products:
        if "featured" in fields:
            product.featured = bool(fields["featured"])
        if "category_id" in fields:
            product.category_id = fields["category_id"] or None
        if "in_stock" in fields:
            inventory_service.set_stock(db, product, int(fields["in_stock"]))
    db.commit()
    return len(products)


def delete_product(db: Session, product_id: str, media: MediaClient) -> bool:
    product = get_product(db, product_id)
    if not product:
        return False
    file_ids = [getattr(product, f"{slot}_id") for slot in MEDIA_SLOTS]
    db.query(Review).filter(Review.product_id == product.id).delete(synchronize_session=False)
    db.delete(product)
    db.commit()
    for file_id in file_ids:
        if file_id:
            media.delete(file_id)
    return True
