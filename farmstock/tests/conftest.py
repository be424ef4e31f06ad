"""
Pytest fixtures for Farmstock tests.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model

from farmstock.adapters import DjangoDocumentStore, reset_document_store
from farmstock.documents import PRODUCTS, Principal, Product
from farmstock.protocols.store import DocumentRef
from farmstock.services.products import ProductService


User = get_user_model()


@pytest.fixture(autouse=True)
def _reset_store():
    reset_document_store()
    yield
    reset_document_store()


@pytest.fixture
def store(db):
    """Document store backed by the test database."""
    return DjangoDocumentStore()


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username='agronomist',
        password='testpass123',
        first_name='Ana',
        last_name='Field',
    )


@pytest.fixture
def principal(user):
    """Principal acting in the tests."""
    return Principal.from_user(user)


@pytest.fixture
def products(store):
    """Product service over the test store."""
    return ProductService(store)


@pytest.fixture
def make_product(products, principal):
    """Factory: register a product and return its id."""

    def factory(name, stock, warehouse_id='WH-NORTH', **extra):
        return products.create({
            'name': name,
            'stock': Decimal(str(stock)),
            'warehouse_id': warehouse_id,
            **extra,
        }, principal=principal)

    return factory


@pytest.fixture
def stock_of(store):
    """Read a product's current stock."""

    def read(product_id):
        return Product.from_snapshot(store.get(DocumentRef(PRODUCTS, product_id))).stock

    return read


@pytest.fixture
def herbicide(make_product):
    """Herbicide with 100 units in the north warehouse."""
    return make_product('Glyphosate', 100, unit='l')


@pytest.fixture
def seed(make_product):
    """Seed with 500 kg in the north warehouse."""
    return make_product('Soybean seed', 500)
