"""
Tests for listings, stock levels and the low_stock command.
"""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from farmstock.documents import PRODUCTS, Product
from farmstock.models import StockLevel
from farmstock.protocols.store import DocumentRef
from farmstock.service import Inventory
from farmstock.services import InventoryQueries


pytestmark = pytest.mark.django_db


@pytest.fixture
def queries(store):
    return InventoryQueries(store)


def at(day):
    return datetime(2026, 5, day, 12, 0, tzinfo=dt_timezone.utc)


class TestStockLevels:
    """Tests for Product.stock_level and low stock listing."""

    @pytest.mark.parametrize('stock, level', [
        (5, StockLevel.LOW),
        (10, StockLevel.LOW),
        (15, StockLevel.WARNING),
        (16, StockLevel.OK),
    ])
    def test_stock_level(self, store, make_product, stock, level):
        """low <= min, warning <= 1.5 x min, ok above."""
        product_id = make_product('Urea', stock, min_stock=10)

        product = Product.from_snapshot(store.get(DocumentRef(PRODUCTS, product_id)))

        assert product.stock_level == level

    def test_low_stock_products(self, queries, make_product):
        """Only products with a minimum, at or below it."""
        low = make_product('Urea', 3, min_stock=10)
        make_product('Seed', 50, min_stock=10)
        make_product('No minimum', 0)
        make_product('Far away', 1, warehouse_id='WH-SOUTH', min_stock=5)

        assert [p.id for p in queries.low_stock_products(warehouse_id='WH-NORTH')] == [low]
        assert len(queries.low_stock_products()) == 2

    def test_list_products_by_name(self, queries, make_product):
        make_product('b-thing', 1)
        make_product('A-thing', 1)

        assert [p.name for p in queries.list_products()] == ['A-thing', 'b-thing']


class TestListings:
    """Tests for the per-collection load cycles."""

    def test_fumigations_filters_and_order(self, queries, principal, herbicide):
        inventory = Inventory(queries.store)
        base = {'selected_products': [{'product_id': herbicide, 'total_quantity': 1}]}
        old = inventory.fumigations.create(
            {**base, 'crop': 'soy', 'applicator': 'Perez', 'application_date': at(1)},
            principal=principal,
        )
        new = inventory.fumigations.create(
            {**base, 'crop': 'soy', 'applicator': 'Gomez', 'application_date': at(20)},
            principal=principal,
        )
        inventory.fumigations.create(
            {**base, 'crop': 'wheat', 'application_date': at(10)}, principal=principal,
        )

        assert [f.id for f in queries.list_fumigations(crop='soy')] == [new, old]
        assert [f.id for f in queries.list_fumigations(search='gom')] == [new]
        assert [f.id for f in queries.list_fumigations(
            start=date(2026, 5, 5), end=date(2026, 5, 25), crop='soy',
        )] == [new]

        inventory.fumigations.cancel(old, principal=principal)
        assert [f.id for f in queries.list_fumigations(status='cancelled')] == [old]

    def test_harvests_by_field(self, queries, principal):
        inventory = Inventory(queries.store)
        north = inventory.harvests.create({'field_id': 'F-1', 'crop': 'corn'}, principal=principal)
        inventory.harvests.create({'field_id': 'F-2', 'crop': 'corn'}, principal=principal)

        assert [h.id for h in queries.list_harvests(field_id='F-1')] == [north]

    def test_transfers_by_warehouse(self, queries, principal, herbicide):
        inventory = Inventory(queries.store)
        products = [{'product_id': herbicide, 'quantity': 1}]
        south = inventory.transfers.create({
            'source_warehouse_id': 'WH-NORTH', 'target_warehouse_id': 'WH-SOUTH',
            'products': products,
        }, principal=principal)
        inventory.transfers.create({
            'source_warehouse_id': 'WH-NORTH', 'target_warehouse_id': 'WH-EAST',
            'products': products,
        }, principal=principal)

        assert [t.id for t in queries.list_transfers(target_warehouse_id='WH-SOUTH')] == [south]
        assert len(queries.list_transfers(source_warehouse_id='WH-NORTH')) == 2

    def test_purchases_by_supplier_and_search(self, queries, principal):
        inventory = Inventory(queries.store)
        agro = inventory.purchases.create({
            'supplier': 'Agro Norte', 'products': [{'name': 'Urea', 'quantity': 1}],
        }, principal=principal)
        inventory.purchases.create({
            'supplier': 'Semillas Sur', 'products': [{'name': 'Seed', 'quantity': 1}],
        }, principal=principal)

        assert [p.id for p in queries.list_purchases(supplier='norte')] == [agro]
        assert [p.id for p in queries.list_purchases(search='urea')] == [agro]


class TestLowStockCommand:
    """Tests for the low_stock management command."""

    def test_reports_low_products(self, make_product):
        make_product('Urea', 2, min_stock=10)
        make_product('Seed', 100, min_stock=10)
        out = StringIO()

        call_command('low_stock', stdout=out)

        output = out.getvalue()
        assert 'Urea' in output
        assert 'Seed' not in output
        assert '1 product(s) below minimum stock' in output

    def test_nothing_low(self, make_product):
        make_product('Seed', 100, min_stock=10)
        out = StringIO()

        call_command('low_stock', '--warehouse', 'WH-NORTH', stdout=out)

        assert 'No products below minimum stock' in out.getvalue()
