import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api import admin, auth, categories, checkout, contact, products, reviews, testimonials
from storefront.config import settings
from storefront.database import SessionLocal, init_db
from storefront.services.auth_service import ensure_default_admin
from storefront.services.email_service import EmailClient
from storefront.services.media_service import MediaClient
from storefront.services.payment_service import PaymentClient

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_clients(app: FastAPI) -> None:
    app.state.media = MediaClient(
        settings.IMAGEKIT_PRIVATE_KEY,
        settings.IMAGEKIT_PUBLIC_KEY,
        settings.IMAGEKIT_URL_ENDPOINT,
        settings.MEDIA_ROOT_FOLDER,
    )
    app.state.email = EmailClient(
        settings.SENDGRID_API_KEY,
        settings.EMAIL_FROM,
        admin_email=settings.EMAIL_ADMIN,
        reply_to=settings.EMAIL_REPLY_TO,
    )
    app.state.payments = PaymentClient(
        settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET, settings.STRIPE_CURRENCY
    )
    for name in ("media", "email", "payments"):
        client = getattr(app.state, name)
        if not getattr(client, "enabled", True):
            logger.warning("%s integration is not configured", name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()
    build_clients(app)
    yield


app = FastAPI(
    title="Storefront API",
    description="Catalog, checkout, stock ledger, order lifecycle and reviews",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so the storefront can show the error."""
    logger.error("Unhandled error on %s %s: %s\n%s", request.method, request.url.path, exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "error": str(exc)})


app.include_router(auth.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(categories.router, prefix="/api/v1")
app.include_router(checkout.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(testimonials.router, prefix="/api/v1")
app.include_router(contact.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/health")
def health():
    return {"status": "ok"}
