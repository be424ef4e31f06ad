"""
Expenses — product sales that take stock out, and other spending.

A product expense reads the product, fails if quantity_sold exceeds its
stock, decrements it and records the expense in one transaction. A
miscellaneous expense is a plain record. Both get a GAST-YYYY-NNNN number.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.documents.base import Principal, StockLine, to_decimal
from farmstock.documents.expense import EXPENSES, Expense, parse_expense
from farmstock.exceptions import NotFoundError, ValidationError
from farmstock.executor import InventoryExecutor
from farmstock.models.enums import ExpenseType
from farmstock.protocols.store import DocumentRef, DocumentStore
from farmstock.services.numbering import expense_number

logger = logging.getLogger('farmstock')

# Stock effect and numbering are fixed once recorded
PROTECTED_FIELDS = frozenset({
    'type', 'product_id', 'quantity_sold', 'product_name', 'product_category',
    'expense_number', 'created_by', 'created_by_id', 'created_at',
})


def _money(data: Mapping[str, Any], key: str, default: Decimal | None = None) -> Decimal:
    if default is not None and data.get(key) in (None, ''):
        return default
    amount = to_decimal(data.get(key), None)
    if amount is None or amount < 0:
        raise ValidationError(f"'{key}' must be a non-negative number", field=key)
    return amount


class ExpenseService:
    """Expenses: record, edit, delete."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, expense_id: str) -> Expense:
        """
        Raises:
            NotFoundError: If the expense does not exist
        """
        snapshot = self.store.get(DocumentRef(EXPENSES, expense_id))
        if not snapshot.exists:
            raise NotFoundError(EXPENSES, expense_id)
        return parse_expense(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Record an expense.

        Product expenses need product_id and a positive quantity_sold;
        total_amount defaults to quantity_sold * unit_price. The product's
        name and category are copied onto the expense.

        Raises:
            ValidationError: If the type or its fields are invalid
            NotFoundError: If the sold product does not exist
            InsufficientStockError: If quantity_sold exceeds the stock
        """
        data = dict(data)
        kind = str(data.get('type') or ExpenseType.PRODUCT)
        if kind not in ExpenseType.values:
            raise ValidationError(f"Unknown expense type '{kind}'", field='type')
        data['type'] = kind

        if kind == ExpenseType.PRODUCT:
            line = StockLine.from_dict(data, quantity_key='quantity_sold')
            data['quantity_sold'] = line.quantity
            data['unit_price'] = _money(data, 'unit_price', default=Decimal('0'))
            if data.get('total_amount') in (None, ''):
                data['total_amount'] = line.quantity * data['unit_price']
            else:
                data['total_amount'] = _money(data, 'total_amount')
        else:
            if not data.get('description'):
                raise ValidationError("'description' is required", field='description')
            data['amount'] = _money(data, 'amount')

        if not data.get('expense_number'):
            data['expense_number'] = expense_number(self.store)
        data['date'] = data.get('date') or timezone.now()

        if kind == ExpenseType.PRODUCT:
            def fields(products: dict[str, dict[str, Any]]) -> dict[str, Any]:
                product = products[line.product_id]
                return {
                    **data,
                    'product_name': product.get('name', ''),
                    'product_category': product.get('category', ''),
                }

            expense_id = self.executor.create_with_consumption(
                EXPENSES, fields, [line], principal=principal, status=None,
            )
        else:
            ref = DocumentRef.new(EXPENSES)
            now = timezone.now()
            self.store.set(ref, {
                **data,
                'created_by': principal.label,
                'created_by_id': principal.uid,
                'created_at': now,
                'updated_at': now,
            })
            expense_id = ref.id

        logger.info(
            "expense.created",
            extra={
                "document_id": expense_id,
                "expense_number": data['expense_number'],
                "type": kind,
                "user": principal.uid,
            },
        )
        return expense_id

    def update(self, expense_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit an expense. What was sold, and how much, cannot change.

        Changing a product expense's unit_price recomputes total_amount.

        Raises:
            ValidationError: If a protected field is edited or an amount is invalid
            NotFoundError: If the expense does not exist
        """
        changes = dict(changes)
        for key in ('unit_price', 'total_amount', 'amount'):
            if key in changes:
                changes[key] = _money(changes, key)

        def derive(entity: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
            if (entity.get('type') == ExpenseType.PRODUCT
                    and 'unit_price' in changes and 'total_amount' not in changes):
                return {
                    'total_amount': to_decimal(entity.get('quantity_sold')) * changes['unit_price'],
                }
            return {}

        self.executor.update_entity(
            DocumentRef(EXPENSES, expense_id), changes,
            principal=principal,
            protected=PROTECTED_FIELDS,
            derive=derive,
        )

    def delete(self, expense_id: str, *, principal: Principal, restock: bool = True) -> None:
        """
        Delete an expense.

        A product expense puts quantity_sold back into the product unless
        restock is False.

        Raises:
            NotFoundError: If the expense (or, restocking, its product) does not exist
        """
        def sold(entity: dict[str, Any]) -> list[dict[str, Any]]:
            if not restock or entity.get('type') != ExpenseType.PRODUCT:
                return []
            return [{'product_id': entity.get('product_id'), 'quantity': entity.get('quantity_sold')}]

        self.executor.delete_entity(
            DocumentRef(EXPENSES, expense_id),
            principal=principal,
            restocked=sold,
        )
