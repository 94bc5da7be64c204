import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.database import Base, get_db, import_models
from storefront.dependencies import get_email_client, get_media_client, get_payment_client
from storefront.main import app
from storefront.models.order import OrderStatus, PaymentMethod
from storefront.models.product import Product, Variant
from storefront.schemas.order import CheckoutRequest
from storefront.services import auth_service, order_service
from storefront.services.email_service import EmailResult
from storefront.services.media_service import MediaUploadError, UploadedMedia


class FakeMedia:
    enabled = True

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_prefixes = set()

    def upload(self, upload, folder, prefix="file"):
        if prefix in self.fail_prefixes:
            raise MediaUploadError(f"{prefix} rejected")
        n = len(self.uploaded) + 1
        file_id = f"file-{n}"
        self.uploaded.append(file_id)
        url = f"https://cdn.test/{folder}/{prefix}-{n}-{upload.filename}"
        return UploadedMedia(url=url, file_id=file_id, thumbnail_url=url + "?tr=w-200")

    def delete(self, file_id):
        self.deleted.append(file_id)
        return True


class FakeEmail:
    enabled = True

    def __init__(self):
        self.sent = []

    def send_order_confirmation(self, snapshot):
        self.sent.append(snapshot)
        return EmailResult("sent", snapshot["customer"]["email"])


class FakePayments:
    enabled = True

    def __init__(self):
        self.sessions = []

    def create_checkout_session(self, **kwargs):
        self.sessions.append(kwargs)
        return f"https://pay.test/session/{len(self.sessions)}"

    def parse_event(self, payload, signature):
        if signature != "valid-signature":
            raise ValueError("Webhook signature verification failed")
        return json.loads(payload)


@pytest.fixture
def engine():
    import_models()
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def media():
    return FakeMedia()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def client(session_factory, media, email, payments):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_client] = lambda: media
    app.dependency_overrides[get_email_client] = lambda: email
    app.dependency_overrides[get_payment_client] = lambda: payments
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return auth_service.create_user(db, "admin@shop.test", "admin-pass", "Shop Admin", role="admin")


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {auth_service.create_access_token(admin.id, admin.email, admin.role)}"}


@pytest.fixture
def customer(db):
    return auth_service.create_user(db, "ana@example.com", "secret-pass", "Ana Lima")


@pytest.fixture
def customer_headers(customer):
    return {"x-auth-token": auth_service.create_access_token(customer.id, customer.email)}


@pytest.fixture
def make_product(db):
    def _make(name="Ceramic Vase", price=25.0, in_stock=10, variants=None, min_stock=2):
        product = Product(name=name, price=price, in_stock=in_stock, min_stock=min_stock)
        for position, (vname, vstock) in enumerate(variants or []):
            product.variants.append(Variant(name=vname, in_stock=vstock, min_stock=1, position=position))
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


def _checkout_payload(product, quantity=1, variant_name="", email="ana@example.com", phone="+15550101"):
    return {
        "cart": [
            {
                "productId": product.id,
                "title": product.name,
                "unitPrice": int(product.price * 100),
                "quantity": quantity,
                "variantName": variant_name,
            }
        ],
        "customer": {
            "fullName": "Ana Lima",
            "email": email,
            "phone": phone,
            "address": "12 Harbour St",
            "city": "Porto",
            "postalCode": "4000",
            "country": "PT",
        },
        "shippingFee": 500,
    }


@pytest.fixture
def checkout_payload():
    return _checkout_payload


@pytest.fixture
def place_order(db):
    def _place(product, quantity=1, variant_name="", payment_method=PaymentMethod.COD, **kwargs):
        data = CheckoutRequest.model_validate(_checkout_payload(product, quantity, variant_name, **kwargs))
        return order_service.create_order(db, data, payment_method)

    return _place


@pytest.fixture
def delivered_order(db, make_product, place_order):
    product = make_product()
    order = place_order(product, quantity=2)
    order_service.update_status(db, order.id, OrderStatus.DELIVERED)
    return order, product
