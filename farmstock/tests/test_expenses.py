"""
Tests for the expense workflow.
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from farmstock.documents import EXPENSES, MiscExpense, ProductExpense
from farmstock.exceptions import InsufficientStockError, NotFoundError, ValidationError
from farmstock.models import Document
from farmstock.services import ExpenseService, InventoryQueries


pytestmark = pytest.mark.django_db


@pytest.fixture
def expenses(store):
    return ExpenseService(store)


@pytest.fixture
def sale(expenses, herbicide, principal):
    """30 l of herbicide sold at 4 each."""
    return expenses.create({
        'type': 'product',
        'product_id': herbicide,
        'quantity_sold': Decimal('30'),
        'unit_price': Decimal('4'),
        'sale_reason': 'surplus',
    }, principal=principal)


class TestProductExpense:
    """Tests for expenses.create() with type 'product'."""

    def test_sale_takes_stock(self, expenses, sale, herbicide, stock_of):
        """Stock drops and the product's name and category are copied."""
        expense = expenses.get(sale)

        assert isinstance(expense, ProductExpense)
        assert expense.expense_number == f'GAST-{timezone.now().year}-0001'
        assert expense.product_name == 'Glyphosate'
        assert expense.product_category == 'input'
        assert expense.quantity_sold == Decimal('30')
        assert expense.total_amount == Decimal('120')
        assert expense.amount == Decimal('120')
        assert stock_of(herbicide) == Decimal('70')

    def test_numbers_increase(self, expenses, sale, herbicide, principal):
        second = expenses.create(
            {'product_id': herbicide, 'quantity_sold': 1}, principal=principal,
        )

        assert expenses.get(second).expense_number.endswith('-0002')

    def test_explicit_total_kept(self, expenses, herbicide, principal):
        expense_id = expenses.create({
            'product_id': herbicide, 'quantity_sold': 10,
            'unit_price': 4, 'total_amount': Decimal('35'),
        }, principal=principal)

        assert expenses.get(expense_id).total_amount == Decimal('35')

    def test_insufficient_stock_writes_nothing(self, expenses, herbicide, principal, stock_of):
        """Selling more than is in stock fails with stock and expenses untouched."""
        with pytest.raises(InsufficientStockError) as exc:
            expenses.create(
                {'product_id': herbicide, 'quantity_sold': Decimal('100.5')}, principal=principal,
            )

        assert exc.value.product_id == herbicide
        assert exc.value.available == Decimal('100')
        assert stock_of(herbicide) == Decimal('100')
        assert not Document.objects.in_collection(EXPENSES).exists()

    def test_missing_product(self, expenses, principal):
        with pytest.raises(NotFoundError):
            expenses.create({'product_id': 'ghost', 'quantity_sold': 1}, principal=principal)

        assert not Document.objects.in_collection(EXPENSES).exists()

    @pytest.mark.parametrize('data', [
        {'quantity_sold': 1},
        {'product_id': 'x'},
        {'product_id': 'x', 'quantity_sold': 0},
        {'product_id': 'x', 'quantity_sold': 1, 'unit_price': -2},
    ])
    def test_invalid(self, expenses, principal, data):
        with pytest.raises(ValidationError):
            expenses.create(data, principal=principal)


class TestMiscExpense:
    """Tests for expenses.create() with type 'misc'."""

    def test_no_stock_effect(self, expenses, herbicide, principal, stock_of):
        expense_id = expenses.create({
            'type': 'misc',
            'description': 'Tractor repair',
            'category': 'maintenance',
            'amount': Decimal('850'),
            'supplier': 'AgroParts',
        }, principal=principal)

        expense = expenses.get(expense_id)
        assert isinstance(expense, MiscExpense)
        assert expense.amount == Decimal('850')
        assert expense.expense_number.startswith('GAST-')
        assert stock_of(herbicide) == Decimal('100')

    def test_description_required(self, expenses, principal):
        with pytest.raises(ValidationError) as exc:
            expenses.create({'type': 'misc', 'amount': 10}, principal=principal)

        assert exc.value.data['field'] == 'description'

    def test_unknown_type(self, expenses, principal):
        with pytest.raises(ValidationError) as exc:
            expenses.create({'type': 'gift', 'description': 'x'}, principal=principal)

        assert exc.value.data['field'] == 'type'


class TestUpdateExpense:
    """Tests for expenses.update()."""

    def test_price_recomputes_total(self, expenses, sale, principal):
        expenses.update(sale, {'unit_price': Decimal('5'), 'notes': 'repriced'}, principal=principal)

        expense = expenses.get(sale)
        assert expense.unit_price == Decimal('5')
        assert expense.total_amount == Decimal('150')
        assert expense.notes == 'repriced'

    @pytest.mark.parametrize('field', ['quantity_sold', 'product_id', 'type', 'expense_number'])
    def test_sold_quantity_protected(self, expenses, sale, principal, herbicide, stock_of, field):
        """What was sold cannot be edited, so stock stays consistent."""
        with pytest.raises(ValidationError):
            expenses.update(sale, {field: '1'}, principal=principal)

        assert expenses.get(sale).quantity_sold == Decimal('30')
        assert stock_of(herbicide) == Decimal('70')

    def test_negative_amount(self, expenses, sale, principal):
        with pytest.raises(ValidationError):
            expenses.update(sale, {'total_amount': -1}, principal=principal)


class TestDeleteExpense:
    """Tests for expenses.delete()."""

    def test_delete_restocks(self, expenses, sale, herbicide, principal, stock_of):
        expenses.delete(sale, principal=principal)

        assert stock_of(herbicide) == Decimal('100')
        with pytest.raises(NotFoundError):
            expenses.get(sale)

    def test_delete_without_restock(self, expenses, sale, herbicide, principal, stock_of):
        expenses.delete(sale, principal=principal, restock=False)

        assert stock_of(herbicide) == Decimal('70')
        assert not Document.objects.in_collection(EXPENSES).exists()

    def test_delete_misc(self, expenses, principal):
        expense_id = expenses.create(
            {'type': 'misc', 'description': 'Fuel', 'amount': 60}, principal=principal,
        )

        expenses.delete(expense_id, principal=principal)

        assert not Document.objects.in_collection(EXPENSES).exists()


class TestListExpenses:
    """Tests for queries.list_expenses()."""

    @pytest.fixture
    def recorded(self, expenses, herbicide, principal):
        expenses.create({
            'product_id': herbicide, 'quantity_sold': 5,
            'date': datetime(2024, 3, 1, tzinfo=dt_timezone.utc),
        }, principal=principal)
        expenses.create({
            'type': 'misc', 'description': 'Diesel', 'category': 'fuel',
            'amount': 90, 'supplier': 'Petro Sur',
            'date': datetime(2024, 5, 10, tzinfo=dt_timezone.utc),
        }, principal=principal)

    def test_newest_first(self, store, recorded):
        found = InventoryQueries(store).list_expenses()

        assert [type(e) for e in found] == [MiscExpense, ProductExpense]

    def test_filters(self, store, recorded):
        queries = InventoryQueries(store)

        assert [e.product_name for e in queries.list_expenses(type='product')] == ['Glyphosate']
        assert len(queries.list_expenses(category='input')) == 1
        assert len(queries.list_expenses(category='fuel')) == 1
        assert [e.supplier for e in queries.list_expenses(search='petro')] == ['Petro Sur']
        assert len(queries.list_expenses(start=datetime(2024, 4, 1).date())) == 1
