"""
Tests for the inventory transaction executor.
"""

from decimal import Decimal

import pytest

from farmstock.documents import HARVESTS, PRODUCTS, TRANSFERS, Product
from farmstock.exceptions import (
    InsufficientStockError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from farmstock.executor import InventoryExecutor, recompute_aggregate_status
from farmstock.models import Document
from farmstock.protocols.store import DocumentRef


pytestmark = pytest.mark.django_db


@pytest.fixture
def executor(store):
    return InventoryExecutor(store)


@pytest.fixture
def open_entity(store):
    """Factory: store a lifecycle document with the given status."""

    def factory(collection, status='pending', **data):
        ref = DocumentRef.new(collection)
        store.set(ref, {'status': status, **data})
        return ref

    return factory


class TestCreateWithConsumption:
    """Tests for executor.create_with_consumption()."""

    def test_decrements_and_creates(self, executor, store, herbicide, principal, stock_of):
        """Stock drops and the entity is written in one step."""
        entity_id = executor.create_with_consumption(
            HARVESTS, {'crop': 'soy'}, [{'product_id': herbicide, 'quantity': 30}],
            principal=principal,
        )

        assert stock_of(herbicide) == Decimal('70')
        snapshot = store.get(DocumentRef(HARVESTS, entity_id))
        assert snapshot.get('status') == 'pending'
        assert snapshot.get('crop') == 'soy'
        assert snapshot.get('created_by') == principal.label

    def test_consume_then_insufficient(self, executor, herbicide, principal, stock_of):
        """100 -> consume 30 -> 70; consuming 80 fails and leaves 70."""
        executor.create_with_consumption(
            HARVESTS, {}, [{'product_id': herbicide, 'quantity': 30}], principal=principal,
        )

        with pytest.raises(InsufficientStockError) as exc:
            executor.create_with_consumption(
                HARVESTS, {}, [{'product_id': herbicide, 'quantity': 80}], principal=principal,
            )

        assert exc.value.required == Decimal('80')
        assert exc.value.available == Decimal('70')
        assert stock_of(herbicide) == Decimal('70')
        assert Document.objects.in_collection(HARVESTS).count() == 1

    def test_repeated_product_uses_running_balance(self, executor, herbicide, principal, stock_of):
        """Two lines of the same product are checked against what is left."""
        with pytest.raises(InsufficientStockError) as exc:
            executor.create_with_consumption(HARVESTS, {}, [
                {'product_id': herbicide, 'quantity': 60},
                {'product_id': herbicide, 'quantity': 60},
            ], principal=principal)

        assert exc.value.available == Decimal('40')
        assert stock_of(herbicide) == Decimal('100')

    def test_first_violation_in_input_order(self, executor, make_product, principal):
        """The first failing line is the one reported."""
        a = make_product('A', 1)
        b = make_product('B', 1)

        with pytest.raises(InsufficientStockError) as exc:
            executor.create_with_consumption(HARVESTS, {}, [
                {'product_id': b, 'quantity': 5},
                {'product_id': a, 'quantity': 5},
            ], principal=principal)

        assert exc.value.product_id == b

    def test_missing_product(self, executor, herbicide, principal, stock_of):
        """A missing product aborts everything."""
        with pytest.raises(NotFoundError):
            executor.create_with_consumption(HARVESTS, {}, [
                {'product_id': herbicide, 'quantity': 10},
                {'product_id': 'ghost', 'quantity': 1},
            ], principal=principal)

        assert stock_of(herbicide) == Decimal('100')

    @pytest.mark.parametrize('item', [
        {'quantity': 1},
        {'product_id': 'x'},
        {'product_id': 'x', 'quantity': 'lots'},
        {'product_id': 'x', 'quantity': 0},
        {'product_id': 'x', 'quantity': -3},
    ])
    def test_malformed_items_rejected_before_io(self, executor, principal, item):
        """Malformed items raise ValidationError and touch nothing."""
        with pytest.raises(ValidationError):
            executor.create_with_consumption(HARVESTS, {}, [item], principal=principal)

        assert not Document.objects.exists()

    def test_data_from_consumed_products(self, executor, store, herbicide, principal):
        """Callable data sees the products read in the transaction."""
        entity_id = executor.create_with_consumption(
            'expenses',
            lambda products: {'product_name': products[herbicide]['name']},
            [{'product_id': herbicide, 'quantity': 5}],
            principal=principal, status=None,
        )

        snapshot = store.get(DocumentRef('expenses', entity_id))
        assert snapshot.get('product_name') == 'Glyphosate'
        assert 'status' not in snapshot.data


class TestCompleteWithConsumption:
    """Tests for executor.complete_with_consumption()."""

    def test_completes_and_merges_fields(self, executor, store, open_entity, herbicide,
                                         principal, stock_of):
        """Stock drops once and completion fields are merged."""
        ref = open_entity('fumigations')

        shortages = executor.complete_with_consumption(
            ref, [{'product_id': herbicide, 'quantity': 25}],
            principal=principal, fields={'completion_notes': 'windless'},
        )

        assert shortages == []
        assert stock_of(herbicide) == Decimal('75')
        data = store.get(ref).data
        assert data['status'] == 'completed'
        assert data['completion_notes'] == 'windless'
        assert data['completed_by'] == principal.label

    def test_only_target_product_changes(self, executor, open_entity, herbicide, seed,
                                         principal, stock_of):
        """Products not consumed keep their stock."""
        executor.complete_with_consumption(
            open_entity('fumigations'), [{'product_id': herbicide, 'quantity': 10}],
            principal=principal,
        )

        assert stock_of(seed) == Decimal('500')

    def test_already_completed(self, executor, open_entity, herbicide, principal, stock_of):
        """A terminal entity cannot be completed again."""
        ref = open_entity('fumigations', status='completed')

        with pytest.raises(InvalidStatusError):
            executor.complete_with_consumption(
                ref, [{'product_id': herbicide, 'quantity': 10}], principal=principal,
            )

        assert stock_of(herbicide) == Decimal('100')

    def test_missing_entity(self, executor, herbicide, principal):
        """A missing entity raises NotFoundError."""
        with pytest.raises(NotFoundError):
            executor.complete_with_consumption(
                DocumentRef('fumigations', 'ghost'),
                [{'product_id': herbicide, 'quantity': 1}],
                principal=principal,
            )

    def test_insufficient_is_fatal_by_default(self, executor, open_entity, herbicide,
                                              principal, store):
        """Without override a shortage aborts the completion."""
        ref = open_entity('fumigations')

        with pytest.raises(InsufficientStockError):
            executor.complete_with_consumption(
                ref, [{'product_id': herbicide, 'quantity': 150}], principal=principal,
            )

        assert store.get(ref).get('status') == 'pending'

    def test_override_allows_negative_stock(self, executor, open_entity, herbicide,
                                            principal, store, stock_of):
        """With allow_insufficient the shortage is returned and recorded."""
        ref = open_entity('fumigations')

        shortages = executor.complete_with_consumption(
            ref, [{'product_id': herbicide, 'quantity': 150}],
            principal=principal, allow_insufficient=True,
        )

        assert [s.product_id for s in shortages] == [herbicide]
        assert stock_of(herbicide) == Decimal('-50')
        recorded = store.get(ref).get('stock_shortages')
        assert recorded[0]['product_id'] == herbicide
        assert recorded[0]['required'] == '150'

    def test_lines_from_entity(self, executor, open_entity, herbicide, principal, stock_of):
        """A callable derives the lines from the entity read in the transaction."""
        ref = open_entity('fumigations', selected_products=[
            {'product_id': herbicide, 'total_quantity': '12.5'},
        ])

        executor.complete_with_consumption(
            ref, lambda entity: entity['selected_products'],
            principal=principal, quantity_key='total_quantity',
        )

        assert stock_of(herbicide) == Decimal('87.5')


class TestCompleteWithProduction:
    """Tests for executor.complete_with_production()."""

    def test_creates_new_products(self, executor, store, open_entity, principal):
        """Each produced item becomes a brand-new product."""
        ref = open_entity(HARVESTS)

        product_ids = executor.complete_with_production(ref, [
            {'name': 'Soybean', 'quantity': 3000, 'warehouse_id': 'WH-SOUTH'},
            {'name': 'Soybean', 'quantity': 1000},
        ], principal=principal)

        assert len(product_ids) == 2
        assert len(set(product_ids)) == 2
        first = Product.from_snapshot(store.get(DocumentRef(PRODUCTS, product_ids[0])))
        assert first.stock == Decimal('3000')
        assert first.warehouse_id == 'WH-SOUTH'
        assert first.storage_level == 'warehouse'
        assert first.unit == 'kg'
        second = Product.from_snapshot(store.get(DocumentRef(PRODUCTS, product_ids[1])))
        assert second.storage_level == 'field'
        assert store.get(ref).get('status') == 'completed'

    def test_never_merges_with_existing(self, executor, open_entity, make_product, principal):
        """A product with the same name is not reused."""
        existing = make_product('Soybean', 10)

        product_ids = executor.complete_with_production(
            open_entity(HARVESTS), [{'name': 'Soybean', 'quantity': 5}], principal=principal,
        )

        assert existing not in product_ids
        assert Document.objects.in_collection(PRODUCTS).count() == 2

    def test_transition_replaces_status_change(self, executor, store, open_entity, principal):
        """A transition function decides the entity changes."""
        ref = open_entity('purchases', status='approved')

        executor.complete_with_production(
            ref, [{'name': 'Urea', 'quantity': 5}], principal=principal,
            transition=lambda entity: {'status': 'partial_delivered'},
        )

        assert store.get(ref).get('status') == 'partial_delivered'

    def test_consume_then_produce_balances(self, executor, store, herbicide, principal):
        """Consumed and produced sets are counted exactly once each."""
        harvest_id = executor.create_with_consumption(
            HARVESTS, {}, [{'product_id': herbicide, 'quantity': 40}], principal=principal,
        )
        executor.complete_with_production(
            DocumentRef(HARVESTS, harvest_id), [{'name': 'Corn', 'quantity': 15}],
            principal=principal,
        )

        total = sum(Product.from_snapshot(s).stock for s in store.stream(PRODUCTS))
        assert total == Decimal('100') - Decimal('40') + Decimal('15')


class TestShipAndReceive:
    """Tests for ship_with_consumption() and receive_with_production()."""

    def test_ship_all_or_nothing(self, executor, store, open_entity, herbicide, seed,
                                 principal, stock_of):
        """One short line fails the whole shipment."""
        ref = open_entity(TRANSFERS, status='approved')

        with pytest.raises(InsufficientStockError):
            executor.ship_with_consumption(ref, [
                {'product_id': herbicide, 'quantity': 50},
                {'product_id': seed, 'quantity': 900},
            ], principal=principal)

        assert stock_of(herbicide) == Decimal('100')
        assert stock_of(seed) == Decimal('500')
        assert store.get(ref).get('status') == 'approved'

    def test_ship_requires_approved(self, executor, open_entity, herbicide, principal):
        """Only approved entities ship."""
        with pytest.raises(InvalidStatusError) as exc:
            executor.ship_with_consumption(
                open_entity(TRANSFERS, status='pending'),
                [{'product_id': herbicide, 'quantity': 1}],
                principal=principal,
            )

        assert exc.value.data['current'] == 'pending'

    def test_ship_then_receive(self, executor, store, open_entity, herbicide, principal, stock_of):
        """Receipt adds to the same product and moves it to the target."""
        ref = open_entity(TRANSFERS, status='approved', target_warehouse_id='WH-SOUTH')
        executor.ship_with_consumption(
            ref, [{'product_id': herbicide, 'quantity': 40}], principal=principal,
        )
        assert stock_of(herbicide) == Decimal('60')
        assert store.get(ref).get('status') == 'shipped'

        executor.receive_with_production(
            ref, [{'product_id': herbicide, 'quantity': 38}], principal=principal,
        )

        product = Product.from_snapshot(store.get(DocumentRef(PRODUCTS, herbicide)))
        assert product.stock == Decimal('98')
        assert product.warehouse_id == 'WH-SOUTH'
        assert store.get(ref).get('status') == 'completed'

    def test_receive_allows_zero(self, executor, open_entity, herbicide, principal, stock_of):
        """A line received as zero is accepted."""
        ref = open_entity(TRANSFERS, status='shipped', target_warehouse_id='WH-SOUTH')

        executor.receive_with_production(
            ref, [{'product_id': herbicide, 'quantity': 0}], principal=principal,
        )

        assert stock_of(herbicide) == Decimal('100')

    def test_receive_requires_shipped(self, executor, open_entity, herbicide, principal):
        with pytest.raises(InvalidStatusError):
            executor.receive_with_production(
                open_entity(TRANSFERS, status='approved'),
                [{'product_id': herbicide, 'quantity': 1}],
                principal=principal,
            )


class TestUpdateEntity:
    """Tests for executor.update_entity()."""

    def test_merges_changes(self, executor, store, open_entity, principal):
        ref = open_entity(HARVESTS, crop='soy', notes='')

        executor.update_entity(ref, {'notes': 'north plot'}, principal=principal)

        snapshot = store.get(ref)
        assert snapshot.get('notes') == 'north plot'
        assert snapshot.get('crop') == 'soy'
        assert snapshot.get('updated_by') == principal.label

    def test_protected_field(self, executor, store, open_entity, principal):
        """Protected fields are refused before anything is read."""
        ref = open_entity(HARVESTS)

        with pytest.raises(ValidationError) as exc:
            executor.update_entity(ref, {'status': 'completed'}, principal=principal,
                                   protected={'status'})

        assert exc.value.data['field'] == 'status'
        assert store.get(ref).get('status') == 'pending'

    def test_terminal_status_refused(self, executor, open_entity, principal):
        ref = open_entity(HARVESTS, status='completed')

        with pytest.raises(InvalidStatusError):
            executor.update_entity(ref, {'notes': 'late'}, principal=principal)

    def test_derive_adds_fields(self, executor, store, open_entity, principal):
        ref = open_entity(TRANSFERS, quantity=4)

        executor.update_entity(
            ref, {'price': 3}, principal=principal,
            derive=lambda entity, changes: {'total': entity['quantity'] * changes['price']},
        )

        assert store.get(ref).get('total') == 12


class TestDeleteEntity:
    """Tests for executor.delete_entity()."""

    def test_restocks_then_deletes(self, executor, store, open_entity, herbicide, principal,
                                   stock_of):
        """Lines read from the entity go back to stock in the same step."""
        ref = open_entity(HARVESTS, selected_products=[{'product_id': herbicide, 'quantity': 25}])

        lines = executor.delete_entity(
            ref, principal=principal,
            restocked=lambda entity: entity['selected_products'],
        )

        assert [(line.product_id, line.quantity) for line in lines] == [(herbicide, Decimal('25'))]
        assert stock_of(herbicide) == Decimal('125')
        assert not store.get(ref).exists

    def test_missing_restocked_product_keeps_entity(self, executor, store, open_entity,
                                                    principal):
        ref = open_entity(HARVESTS, selected_products=[{'product_id': 'ghost', 'quantity': 1}])

        with pytest.raises(NotFoundError):
            executor.delete_entity(
                ref, principal=principal,
                restocked=lambda entity: entity['selected_products'],
            )

        assert store.get(ref).exists

    def test_status_not_allowed(self, executor, store, open_entity, principal):
        ref = open_entity(TRANSFERS, status='shipped')

        with pytest.raises(InvalidStatusError):
            executor.delete_entity(ref, principal=principal, allowed={'pending'})

        assert store.get(ref).exists

    def test_missing_entity(self, executor, principal):
        with pytest.raises(NotFoundError):
            executor.delete_entity(DocumentRef(HARVESTS, 'ghost'), principal=principal)


class TestShortages:
    """Tests for executor.shortages()."""

    def test_reports_without_writing(self, executor, herbicide, seed, principal, stock_of):
        """Shortages are listed and nothing changes."""
        shortages = executor.shortages([
            {'product_id': herbicide, 'quantity': 120},
            {'product_id': seed, 'quantity': 10},
        ])

        assert [(s.product_id, s.required, s.available) for s in shortages] == [
            (herbicide, Decimal('120'), Decimal('100')),
        ]
        assert stock_of(herbicide) == Decimal('100')


class TestRecomputeAggregateStatus:
    """Tests for recompute_aggregate_status()."""

    @staticmethod
    def delivery(status, *quantities):
        return {'status': status, 'products': [{'quantity': q} for q in quantities]}

    def test_no_deliveries_keeps_status(self):
        assert recompute_aggregate_status(Decimal('50'), [], 'approved') == 'approved'

    def test_partial_then_complete(self):
        """50 ordered: 20 delivered is partial, 20 + 30 is completed."""
        first = self.delivery('completed', 20)
        assert recompute_aggregate_status(Decimal('50'), [first], 'approved') == 'partial_delivered'

        second = self.delivery('completed', '30')
        assert recompute_aggregate_status(
            Decimal('50'), [first, second], 'partial_delivered',
        ) == 'completed'

    def test_in_transit_is_partial(self):
        deliveries = [self.delivery('in_transit', 10)]
        assert recompute_aggregate_status(Decimal('50'), deliveries, 'approved') == 'partial_delivered'

    def test_cancelled_only_uses_fallback(self):
        deliveries = [self.delivery('cancelled', 10)]
        assert recompute_aggregate_status(
            Decimal('50'), deliveries, 'partial_delivered', fallback='approved',
        ) == 'approved'

    def test_pure_and_idempotent(self):
        """Same input, same output, input untouched."""
        deliveries = [self.delivery('completed', 20), self.delivery('in_transit', 5)]
        snapshot = [dict(d) for d in deliveries]

        results = {recompute_aggregate_status(Decimal('50'), deliveries, 'approved') for _ in range(3)}

        assert results == {'partial_delivered'}
        assert deliveries == snapshot
