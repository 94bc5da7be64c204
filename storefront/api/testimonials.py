from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from storefront.api.auth import require_admin
from storefront.database import get_db
from storefront.dependencies import get_media_client
from storefront.models.user import User
from storefront.schemas.review import TestimonialOut
from storefront.services import testimonial_service
from storefront.services.media_service import MediaClient

router = APIRouter(prefix="/testimonials", tags=["Testimonials"])


@router.get("", response_model=list[TestimonialOut])
def list_visible(db: Session = Depends(get_db)):
    return testimonial_service.list_testimonials(db)


@router.get("/all", response_model=list[TestimonialOut])
def list_all(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return testimonial_service.list_testimonials(db, visible_only=False)


@router.post("", response_model=TestimonialOut, status_code=201)
def create_testimonial(
    customer_name: str = Form(...),
    content: str = Form(...),
    rating: int = Form(...),
    tag: str = Form(""),
    product: str = Form(""),
    status: str = Form("visible"),
    avatar: UploadFile | None = File(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    data = {
        "customer_name": customer_name,
        "content": content,
        "rating": rating,
        "tag": tag,
        "product": product,
        "status": status,
    }
    try:
        return testimonial_service.create_testimonial(db, data, media, avatar)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.put("/{testimonial_id}", response_model=TestimonialOut)
def update_testimonial(
    testimonial_id: str,
    customer_name: str | None = Form(None),
    content: str | None = Form(None),
    rating: int | None = Form(None),
    tag: str | None = Form(None),
    product: str | None = Form(None),
    status: str | None = Form(None),
    avatar: UploadFile | None = File(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    data = {
        "customer_name": customer_name,
        "content": content,
        "rating": rating,
        "tag": tag,
        "product": product,
        "status": status,
    }
    try:
        t = testimonial_service.update_testimonial(db, testimonial_id, data, media, avatar)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not t:
        raise HTTPException(404, "Testimonial not found")
    return t


@router.delete("/{testimonial_id}", status_code=204)
def delete_testimonial(
    testimonial_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    media: MediaClient = Depends(get_media_client),
):
    if not testimonial_service.delete_testimonial(db, testimonial_id, media):
        raise HTTPException(404, "Testimonial not found")
