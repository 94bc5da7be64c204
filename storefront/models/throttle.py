import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class ThrottleEvent(Base):
    """One row per throttled request; counted over a sliding window."""

    __tablename__ = "throttle_events"
    __table_args__ = (Index("ix_throttle_bucket_identifier_time", "bucket", "identifier", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    bucket: Mapped[str] = mapped_column(String, nullable=False)
    identifier: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
