from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Storefront"
    DATABASE_URL: str = "sqlite:///./storefront.db"
    LOG_LEVEL: str = "INFO"

    # Comma-separated list of allowed browser origins
    CORS_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173"

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # Bootstrap admin, created on startup when no admin account exists
    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = ""

    # Customer-facing order code is "<prefix>-<ORDER ID>"
    ORDER_CODE_PREFIX: str = "AC"
    DEFAULT_MIN_STOCK: int = 5

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"

    # ImageKit media CDN
    IMAGEKIT_PUBLIC_KEY: str = ""
    IMAGEKIT_PRIVATE_KEY: str = ""
    IMAGEKIT_URL_ENDPOINT: str = ""
    MEDIA_ROOT_FOLDER: str = "storefront"

    # SendGrid transactional email
    SENDGRID_API_KEY: str = ""
    EMAIL_FROM: str = ""
    EMAIL_ADMIN: str = ""
    EMAIL_REPLY_TO: str = ""

    # Review verification/submission throttle (per client IP)
    REVIEW_RATE_LIMIT: int = 5
    REVIEW_RATE_WINDOW_SECONDS: int = 3600

    model_config = {"env_file": ".env"}

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
