from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.config import settings
from storefront.database import get_db
from storefront.services import throttle_service
from storefront.services.email_service import EmailClient
from storefront.services.media_service import MediaClient
from storefront.services.payment_service import PaymentClient

REVIEW_BUCKET = "reviews"


def get_media_client(request: Request) -> MediaClient:
    return request.app.state.media


def get_email_client(request: Request) -> EmailClient:
    return request.app.state.email


def get_payment_client(request: Request) -> PaymentClient:
    return request.app.state.payments


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def review_rate_limit(request: Request, db: Session = Depends(get_db)) -> None:
    """Shared per-IP budget for review eligibility checks and submissions."""
    result = throttle_service.hit(
        db,
        REVIEW_BUCKET,
        client_ip(request) or "unknown",
        settings.REVIEW_RATE_LIMIT,
        settings.REVIEW_RATE_WINDOW_SECONDS,
    )
    if not result.allowed:
        raise HTTPException(
            429,
            "Too many review requests, please try again later",
            headers={"Retry-After": str(result.retry_after)},
        )
