import re
from datetime import datetime

from pydantic import BaseModel, field_validator

from storefront.models.contact import ContactStatus, ContactSubject

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ContactCreate(BaseModel):
    name: str
    email: str
    phone: str = ""
    subject: ContactSubject
    service: str = ""
    message: str

    @field_validator("name")
    @classmethod
    def name_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_RE.match(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("subject", mode="before")
    @classmethod
    def lower_subject(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("message")
    @classmethod
    def message_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 10:
            raise ValueError("Message must be at least 10 characters")
        return v


class ContactStatusUpdate(BaseModel):
    status: ContactStatus


class ContactOut(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    subject: str
    service: str
    message: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
