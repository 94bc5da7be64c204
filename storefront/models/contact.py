import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class ContactSubject(str, PyEnum):
    GENERAL = "general"
    ORDER = "order"
    PRODUCT = "product"
    WHOLESALE = "wholesale"
    FEEDBACK = "feedback"
    SERVICE = "service"


class ContactStatus(str, PyEnum):
    NEW = "new"
    READ = "read"
    RESOLVED = "resolved"


class ContactMessage(Base):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str] = mapped_column(String, default="")
    subject: Mapped[str] = mapped_column(String, nullable=False)
    service: Mapped[str] = mapped_column(String, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String, default=ContactStatus.NEW.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
