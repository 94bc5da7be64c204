import logging

from fastapi import UploadFile
from sqlalchemy.orm import Session

from storefront.models.testimonial import Testimonial, TestimonialStatus
from storefront.services.media_service import MediaClient, MediaUploadError

logger = logging.getLogger(__name__)

MEDIA_FOLDER = "testimonials"
EDITABLE_FIELDS = ("customer_name", "tag", "product", "rating", "content", "status")


def list_testimonials(db: Session, visible_only: bool = True) -> list[Testimonial]:
    q = db.query(Testimonial)
    if visible_only:
        q = q.filter(Testimonial.status == TestimonialStatus.VISIBLE)
    return q.order_by(Testimonial.created_at.desc()).all()


def get_testimonial(db: Session, testimonial_id: str) -> Testimonial | None:
    return db.query(Testimonial).filter(Testimonial.id == testimonial_id).first()


def _validate(data: dict) -> None:
    rating = data.get("rating")
    if rating is not None and not 1 <= int(rating) <= 5:
        raise ValueError("Rating must be between 1 and 5")
    status = data.get("status")
    if status is not None:
        if status not in {s.value for s in TestimonialStatus}:
            raise ValueError(f"Invalid status: {status}")
        data["status"] = TestimonialStatus(status)


def _set_avatar(t: Testimonial, avatar: UploadFile, media: MediaClient) -> None:
    try:
        uploaded = media.upload(avatar, MEDIA_FOLDER, prefix="avatar")
    except MediaUploadError:
        logger.warning("Testimonial %s: avatar upload failed", t.customer_name)
        return
    if t.avatar_id:
        media.delete(t.avatar_id)
    t.avatar_url = uploaded.url
    t.avatar_id = uploaded.file_id


def create_testimonial(db: Session, data: dict, media: MediaClient, avatar: UploadFile | None = None) -> Testimonial:
    if not data.get("customer_name") or not data.get("content") or data.get("rating") is None:
        raise ValueError("customer_name, content and rating are required")
    _validate(data)
    t = Testimonial(**{k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None})
    if avatar is not None:
        _set_avatar(t, avatar, media)
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


def update_testimonial(
    db: Session, testimonial_id: str, data: dict, media: MediaClient, avatar: UploadFile | None = None
) -> Testimonial | None:
    t = get_testimonial(db, testimonial_id)
    if not t:
        return None
    _validate(data)
    for field in EDITABLE_FIELDS:
        if data.get(field) is not None:
            setattr(t, field, data[field])
    if avatar is not None:
        _set_avatar(t, avatar, media)
    db.commit()
    db.refresh(t)
    return t


def delete_testimonial(db: Session, testimonial_id: str, media: MediaClient) -> bool:
    t = get_testimonial(db, testimonial_id)
    if not t:
        return False
    avatar_id = t.avatar_id
    db.delete(t)
    db.commit()
    if avatar_id:
        media.delete(avatar_id)
    return True
