import json
import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.db import Base
from models.user import User
from models.address import Address
from models.product import Product
from models.order import Order
from models.order_item import OrderItem


@pytest.fixture
def db_session():
    """Create a test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def user(db_session):
    user = User(email="john.doe@example.com", first_name="John", last_name="Doe")
    db_session.add(user)
    db_session.commit()
    return user


class TestAddress:
    def test_defaults(self, db_session, user):
        address = Address(user_id=user.id, first_name="John", last_name="Doe", address_line_1="1 Rizal Ave", city="Manila")
        db_session.add(address)
        db_session.commit()
        db_session.refresh(address)

        assert address.country == "Philippines"
        assert address.is_default is False
        assert address.address_line_2 == ""
        assert address.created_at is not None

    def test_user_relationship(self, db_session, user):
        db_session.add(Address(user_id=user.id, first_name="J", last_name="D", address_line_1="x", city="y"))
        db_session.commit()
        db_session.refresh(user)
        assert len(user.addresses) == 1


class TestOrder:
    def test_defaults_and_items(self, db_session, user):
        product = Product(name="Tee", brand="Gakko", price=250, variants=json.dumps({"red": {"M": 2}}))
        db_session.add(product)
        db_session.commit()

        order = Order(order_number="GK1", user_id=user.id, total_amount=500)
        db_session.add(order)
        db_session.flush()
        db_session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=2, price=250, size="M", color="red"))
        db_session.commit()
        db_session.refresh(order)

        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert len(order.items) == 1
        item = order.items[0]
        assert item.product_name == "Tee"
        assert item.product_brand == "Gakko"

    def test_order_number_unique(self, db_session):
        db_session.add(Order(order_number="GK42"))
        db_session.commit()
        db_session.add(Order(order_number="GK42"))
        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_guest_order_has_no_user(self, db_session):
        order = Order(order_number="GK43")
        db_session.add(order)
        db_session.commit()
        assert order.user_id is None
