# tests/conftest.py
import pytest
from flask_jwt_extended import create_access_token

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db as _db

from factories import FakeGateway, make_user


@pytest.fixture
def app():
    """Fresh app and in-memory database per test."""
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def gateway(app):
    """Replace the payment provider with an in-memory fake."""
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    return fake


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app):
    return make_user()


@pytest.fixture
def admin(app):
    return make_user(role="admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)
