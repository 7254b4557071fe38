import base64
import os
from unittest.mock import AsyncMock

# Settings must be in place before the application modules read them
WEBHOOK_SIGNING_KEY = b"gigmarket-test-webhook-signing-k"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["FIREBASE_PROJECT_ID"] = "gigmarket-test"
os.environ["DODO_PAYMENTS_WEBHOOK_SECRET"] = "whsec_" + base64.b64encode(WEBHOOK_SIGNING_KEY).decode()
os.environ["RESERVATION_SWEEP_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from gigmarket.auth import get_current_user  # noqa: E402
from gigmarket.database import Base, build_engine, get_db  # noqa: E402
from gigmarket.domain.checkout.pricing import seed_discount_codes  # noqa: E402
from gigmarket.domain.checkout.schemas import ConfirmOrderRequest  # noqa: E402
from gigmarket.domain.payments.dodo_service import get_dodo_service  # noqa: E402
from gigmarket.domain.payments.router import rate_limit_payment_webhook  # noqa: E402
from gigmarket.main import app  # noqa: E402
from gigmarket.models import DeliveryOption, Product, User  # noqa: E402


class FakeDodoService:
    """Provider double: checkout sessions and payments are AsyncMocks"""

    def __init__(self):
        self.available = True
        self.create_checkout_session = AsyncMock(
            return_value={
                "session_id": "cks_test_123",
                "checkout_url": "https://test.checkout.dodopayments.com/session/cks_test_123",
            }
        )
        self.retrieve_payment = AsyncMock(
            return_value={
                "payment_id": "pay_test_123",
                "status": "succeeded",
                "total_amount": 12180,
                "currency": "PLN",
                "metadata": {},
            }
        )

    def is_available(self) -> bool:
        return self.available


@pytest.fixture
def db_session():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    seed_discount_codes(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fake_dodo():
    return FakeDodoService()


@pytest.fixture
def client(db_session, fake_dodo):
    def override_get_db():
        yield db_session

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dodo_service] = lambda: fake_dodo
    app.dependency_overrides[rate_limit_payment_webhook] = no_rate_limit
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Authenticate subsequent requests as the given user"""

    def _login(user: User):
        app.dependency_overrides[get_current_user] = lambda: user

    return _login


def _user(db, uid: str, email: str, name: str) -> User:
    user = User(firebase_uid=uid, email=email, full_name=name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def seller(db_session):
    return _user(db_session, "uid-seller", "seller@example.com", "Studio Seller")


@pytest.fixture
def buyer(db_session):
    return _user(db_session, "uid-buyer", "buyer@example.com", "Jan Kowalski")


@pytest.fixture
def other_buyer(db_session):
    return _user(db_session, "uid-other", "other@example.com", "Anna Nowak")


@pytest.fixture
def delivery_options(db_session):
    options = {
        "pickup": DeliveryOption(name="Odbiór osobisty", price=0),
        "inpost": DeliveryOption(name="Paczkomat InPost", price=12.99),
        "courier": DeliveryOption(name="Kurier", price=20),
    }
    db_session.add_all(options.values())
    db_session.commit()
    return options


@pytest.fixture
def product(db_session, seller, delivery_options):
    item = Product(
        user_id=seller.id,
        title="Fender Stratocaster",
        price=100,
        testing_price=1,
        currency="PLN",
        status="available",
        image_url=["https://cdn.example.com/strat-1.jpg", "https://cdn.example.com/strat-2.jpg"],
    )
    item.delivery_options = list(delivery_options.values())
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def confirm_form(delivery_options):
    """Build a valid confirmation form, courier delivery by default"""

    def _form(**overrides) -> dict:
        data = {
            "first_name": "Jan",
            "last_name": "Kowalski",
            "email": "jan@example.com",
            "phone": "600 700 800",
            "delivery_option_id": delivery_options["courier"].id,
            "address": "ul. Długa 5",
            "city": "Kraków",
            "postal_code": "30-001",
            "payment_method": "card",
            "agree_to_terms": True,
        }
        data.update(overrides)
        return data

    return _form


@pytest.fixture
def confirm_request(confirm_form):
    def _request(**overrides) -> ConfirmOrderRequest:
        return ConfirmOrderRequest(**confirm_form(**overrides))

    return _request
