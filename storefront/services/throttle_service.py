from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from storefront.models.throttle import ThrottleEvent


@dataclass
class ThrottleResult:
    allowed: bool
    remaining: int
    retry_after: int = 0


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hit(db: Session, bucket: str, identifier: str, limit: int, window_seconds: int) -> ThrottleResult:
    """Record one request for ``identifier`` in ``bucket`` unless the window is already full."""
    now = _now()
    since = now - timedelta(seconds=window_seconds)
    # Expired rows of every identifier in the bucket
    db.query(ThrottleEvent).filter(
        ThrottleEvent.bucket == bucket,
        ThrottleEvent.created_at < since,
    ).delete(synchronize_session=False)

    recent = (
        db.query(ThrottleEvent.created_at)
        .filter(ThrottleEvent.bucket == bucket, ThrottleEvent.identifier == identifier)
        .order_by(ThrottleEvent.created_at)
        .all()
    )
    if len(recent) >= limit:
        db.commit()
        oldest = recent[0][0]
        retry = int((oldest + timedelta(seconds=window_seconds) - now).total_seconds()) + 1
        return ThrottleResult(False, 0, max(retry, 1))

    db.add(ThrottleEvent(bucket=bucket, identifier=identifier, created_at=now))
    db.commit()
    return ThrottleResult(True, limit - len(recent) - 1)
