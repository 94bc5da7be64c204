from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from storefront.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models():
    # Import all models so Base.metadata knows about them
    import storefront.models.category  # noqa: F401
    import storefront.models.contact  # noqa: F401
    import storefront.models.inventory_log  # noqa: F401
    import storefront.models.order  # noqa: F401
    import storefront.models.product  # noqa: F401
    import storefront.models.review  # noqa: F401
    import storefront.models.sale  # noqa: F401
    import storefront.models.testimonial  # noqa: F401
    import storefront.models.throttle  # noqa: F401
    import storefront.models.user  # noqa: F401


def init_db():
    import_models()
    Base.metadata.create_all(bind=engine)
