"""
Expense documents — one dataclass per expense type.

    ProductExpense   a product sold or written off; stock left with it
    MiscExpense      any other spending; no stock effect
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from farmstock.documents.base import to_datetime, to_decimal
from farmstock.models.enums import ExpenseType
from farmstock.protocols.store import Snapshot

EXPENSES = 'expenses'


@dataclass(frozen=True, kw_only=True)
class _Expense:
    id: str
    expense_number: str = ''
    date: datetime | None = None
    notes: str = ''
    created_by: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class ProductExpense(_Expense):
    """product_name and product_category are copied at sale time."""

    type: ClassVar[str] = ExpenseType.PRODUCT

    product_id: str
    product_name: str = ''
    product_category: str = ''
    quantity_sold: Decimal = Decimal('0')
    unit_price: Decimal = Decimal('0')
    total_amount: Decimal = Decimal('0')
    sale_reason: str = ''

    @property
    def amount(self) -> Decimal:
        return self.total_amount


@dataclass(frozen=True, kw_only=True)
class MiscExpense(_Expense):
    type: ClassVar[str] = ExpenseType.MISC

    description: str = ''
    category: str = ''
    amount: Decimal = Decimal('0')
    supplier: str = ''


Expense = ProductExpense | MiscExpense


def parse_expense(snapshot: Snapshot) -> Expense:
    data = snapshot.data or {}
    common = dict(
        id=snapshot.id,
        expense_number=data.get('expense_number', ''),
        date=to_datetime(data.get('date')),
        notes=data.get('notes', ''),
        created_by=data.get('created_by', ''),
        created_at=to_datetime(data.get('created_at')),
        updated_at=to_datetime(data.get('updated_at')),
    )
    if data.get('type') == ExpenseType.MISC:
        return MiscExpense(
            **common,
            description=data.get('description', ''),
            category=data.get('category', ''),
            amount=to_decimal(data.get('amount')),
            supplier=data.get('supplier', ''),
        )
    return ProductExpense(
        **common,
        product_id=data.get('product_id') or '',
        product_name=data.get('product_name', ''),
        product_category=data.get('product_category', ''),
        quantity_sold=to_decimal(data.get('quantity_sold')),
        unit_price=to_decimal(data.get('unit_price')),
        total_amount=to_decimal(data.get('total_amount')),
        sale_reason=data.get('sale_reason', ''),
    )
