from datetime import timedelta

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from storefront import create_app
from storefront.config import TestingConfig
from storefront.extensions import db
from storefront.model import Category, Coupon, Product, User
from storefront.services import order_service
from storefront.utils.dates import utcnow


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, name, role):
    u = User(email=email, name=name, role=role, password_hash=generate_password_hash("secret123"))
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(app):
    return _user("admin@example.com", "Shop Admin", "admin")


@pytest.fixture
def customer(app):
    return _user("customer@example.com", "Sam Customer", "user")


@pytest.fixture
def other_customer(app):
    return _user("other@example.com", "Alex Other", "user")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def make_coupon(app):
    def factory(**kw):
        now = utcnow()
        fields = dict(
            name="Ten off",
            code="SAVE10",
            type="percentage",
            value=10,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
            is_active=True,
            usage_count=0,
        )
        fields.update(kw)
        coupon = Coupon(**fields)
        db.session.add(coupon)
        db.session.commit()
        return coupon
    return factory


def line(price=50, quantity=2, product_id=1, **extra):
    return {"id": product_id, "productId": product_id, "name": f"Product {product_id}",
            "price": price, "quantity": quantity, "selectedOptions": {}, **extra}


@pytest.fixture
def place_order(app):
    def factory(user, items=None, coupon=None, discount_amount=None, payment_method="card"):
        applied = {"id": coupon.id, "code": coupon.code} if coupon else None
        return order_service.create_order(
            user,
            items if items is not None else [line()],
            payment_method,
            delivery_address={"street": "1 Main St", "city": "Springfield"},
            phone="555-0100",
            applied_coupon=applied,
            discount_amount=discount_amount,
        )
    return factory


@pytest.fixture
def catalog(app):
    db.session.add_all([
        Category(name="Pizza", slug="pizza", sort_order=1),
        Category(name="Drinks", slug="drinks", sort_order=2),
        Category(name="Hidden", slug="hidden", sort_order=3, is_active=False),
    ])
    products = [
        Product(name="Margherita", description="Tomato and basil", price=12.5, original_price=15,
                categories=["pizza"]),
        Product(name="Veggie Pizza", description="Peppers", price=11, categories=["pizza", "vegetarian"]),
        Product(name="Lemonade", description="Fresh", price=3.5, categories=["drinks"]),
        Product(name="Old Soda", description="Retired", price=2, categories=["drinks"], is_active=False),
    ]
    db.session.add_all(products)
    db.session.commit()
    return products
