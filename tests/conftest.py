import json
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from models.user import User
from models.product import Product
from security import jwt as jwt_utils
from services.stock import StockAdjustmentError, get_stock_client


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.ALLOW_GUEST_CHECKOUT = False
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


class FakeStockClient:
    """Stands in for the stock service; records every adjustment."""

    def __init__(self):
        self.calls = []
        self.fail_on = None
        self.fail_message = "Insufficient stock"

    def adjust(self, product_id, color, size, quantity, authorization=None):
        if self.fail_on is not None and product_id == self.fail_on:
            raise StockAdjustmentError(self.fail_message, product_id, 400)
        self.calls.append(
            {
                "product_id": product_id,
                "color": color,
                "size": size,
                "quantity": quantity,
                "authorization": authorization,
            }
        )
        return {"message": "Stock updated"}


@pytest.fixture()
def stock_client(db_session_override):
    fake = FakeStockClient()
    app.dependency_overrides[get_stock_client] = lambda: fake
    return fake


@pytest.fixture()
def client(db_session_override, stock_client):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def test_user(db_session_override):
    """Create a test user."""
    user = User(first_name="Test", last_name="User", email="test@example.com")
    db_session_override.add(user)
    db_session_override.commit()
    db_session_override.refresh(user)
    return user


@pytest.fixture
def other_user(db_session_override):
    user = User(first_name="Other", last_name="Person", email="other@example.com")
    db_session_override.add(user)
    db_session_override.commit()
    db_session_override.refresh(user)
    return user


@pytest.fixture
def auth_token(test_user):
    """Generate a valid JWT token for test user."""
    return jwt_utils.create_access_token(test_user.id, test_user.email)


@pytest.fixture
def auth_headers(auth_token):
    """Return authorization headers with valid token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def other_headers(other_user):
    token = jwt_utils.create_access_token(other_user.id, other_user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_product(db_session_override):
    def _make(name="Linen Shirt", price=500, variants=None, raw_variants=None, **kwargs):
        product = Product(
            name=name,
            brand=kwargs.pop("brand", "Gakko"),
            image_url=kwargs.pop("image_url", "https://cdn.example.com/shirt.jpg"),
            price=price,
            variants=raw_variants if raw_variants is not None else json.dumps(variants or {}),
            stock_quantity=kwargs.pop("stock_quantity", 10),
        )
        db_session_override.add(product)
        db_session_override.commit()
        db_session_override.refresh(product)
        return product

    return _make


@pytest.fixture
def test_product(make_product):
    return make_product(variants={"red": {"M": 5, "L": 1}, "blue": {"S": 3}})
