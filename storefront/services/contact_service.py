import logging

from sqlalchemy.orm import Session

from storefront.models.contact import ContactMessage, ContactStatus
from storefront.schemas.contact import ContactCreate

logger = logging.getLogger(__name__)


def create_message(db: Session, data: ContactCreate) -> ContactMessage:
    message = ContactMessage(
        name=data.name,
        email=data.email,
        phone=data.phone.strip(),
        subject=data.subject.value,
        service=data.service.strip(),
        message=data.message,
        status=ContactStatus.NEW.value,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    logger.info("Contact message %s received (%s)", message.id, message.subject)
    return message


def list_messages(db: Session, status: ContactStatus | None = None) -> list[ContactMessage]:
    q = db.query(ContactMessage)
    if status:
        q = q.filter(ContactMessage.status == status.value)
    return q.order_by(ContactMessage.created_at.desc()).all()


def update_status(db: Session, message_id: str, status: ContactStatus) -> ContactMessage | None:
    message = db.query(ContactMessage).filter(ContactMessage.id == message_id).first()
    if not message:
        return None
    message.status = status.value
    db.commit()
    db.refresh(message)
    return message


def delete_message(db: Session, message_id: str) -> bool:
    message = db.query(ContactMessage).filter(ContactMessage.id == message_id).first()
    if not message:
        return False
    db.delete(message)
    db.commit()
    return True
