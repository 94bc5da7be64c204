from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.auth import require_admin
from storefront.database import get_db
from storefront.models.contact import ContactStatus
from storefront.models.user import User
from storefront.schemas.contact import ContactCreate, ContactOut, ContactStatusUpdate
from storefront.services import contact_service

router = APIRouter(prefix="/contact", tags=["Contact"])


@router.post("", response_model=ContactOut, status_code=201)
def submit_message(data: ContactCreate, db: Session = Depends(get_db)):
    return contact_service.create_message(db, data)


@router.get("", response_model=list[ContactOut])
def list_messages(
    status: ContactStatus | None = None, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    return contact_service.list_messages(db, status)


@router.put("/{message_id}/status", response_model=ContactOut)
def update_status(
    message_id: str, data: ContactStatusUpdate, admin: User = Depends(require_admin), db: Session = Depends(get_db)
):
    message = contact_service.update_status(db, message_id, data.status)
    if not message:
        raise HTTPException(404, "Message not found")
    return message


@router.delete("/{message_id}", status_code=204)
def delete_message(message_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    if not contact_service.delete_message(db, message_id):
        raise HTTPException(404, "Message not found")
