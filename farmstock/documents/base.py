"""
Shared document types: principal, line items and value coercion.

Documents are stored as JSON, so quantities come back as strings and
timestamps as ISO strings. The helpers here turn them into Decimal and
datetime again.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from django.utils.dateparse import parse_datetime

from farmstock.exceptions import ValidationError


def to_decimal(value: Any, default: Decimal = Decimal('0')) -> Decimal:
    """Coerce a stored number (int, float, str, Decimal, None) to Decimal."""
    if value is None or value == '':
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def to_datetime(value: Any) -> datetime | None:
    """Coerce a stored timestamp (datetime or ISO string) to datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return parse_datetime(str(value))


def _required_decimal(raw: Mapping[str, Any], key: str, index: int) -> Decimal:
    value = raw.get(key)
    if value is None or value == '':
        raise ValidationError(f"Item {index}: '{key}' is required", index=index, field=key)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(
            f"Item {index}: '{key}' must be a number", index=index, field=key,
        ) from None


@dataclass(frozen=True)
class Principal:
    """
    The authenticated user acting on the inventory.

    Passed explicitly to every operation; recorded on the documents it
    changes (created_by, shipped_by, ...).
    """

    uid: str
    display_name: str = ''
    email: str = ''

    @property
    def label(self) -> str:
        return self.display_name or self.email or self.uid

    @classmethod
    def from_user(cls, user) -> Principal:
        """Build from a Django auth user."""
        return cls(
            uid=str(user.pk),
            display_name=user.get_full_name() or user.get_username(),
            email=getattr(user, 'email', '') or '',
        )


@dataclass(frozen=True)
class StockLine:
    """Quantity of an existing product to consume, check or restock."""

    product_id: str
    quantity: Decimal

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], index: int = 0,
                  quantity_key: str = 'quantity', allow_zero: bool = False) -> StockLine:
        """
        Parse one request item.

        Raises:
            ValidationError: If product_id or quantity is missing or invalid
        """
        product_id = raw.get('product_id')
        if not product_id:
            raise ValidationError(
                f"Item {index}: 'product_id' is required", index=index, field='product_id',
            )
        quantity = _required_decimal(raw, quantity_key, index)
        if quantity < 0 or (quantity == 0 and not allow_zero):
            raise ValidationError(
                f"Item {index}: quantity must be positive", index=index, field=quantity_key,
            )
        return cls(product_id=str(product_id), quantity=quantity)

    def as_dict(self) -> dict[str, Any]:
        return {'product_id': self.product_id, 'quantity': self.quantity}


@dataclass(frozen=True)
class ProducedLine:
    """A new inventory record to create, with its provenance."""

    name: str
    quantity: Decimal
    unit: str = 'kg'
    category: str = 'input'
    warehouse_id: str | None = None
    field_id: str | None = None
    lot_number: str = ''
    tags: tuple[str, ...] = ()
    notes: str = ''
    cost: Decimal | None = None
    supplier_name: str = ''

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], index: int = 0, **defaults: Any) -> ProducedLine:
        """
        Parse one produced item; keyword defaults fill fields the item omits.

        Raises:
            ValidationError: If name or quantity is missing or invalid
        """
        name = raw.get('name')
        if not name:
            raise ValidationError(f"Item {index}: 'name' is required", index=index, field='name')
        quantity = _required_decimal(raw, 'quantity', index)
        if quantity < 0:
            raise ValidationError(
                f"Item {index}: quantity must not be negative", index=index, field='quantity',
            )
        values = {**defaults}
        for key in ('unit', 'category', 'warehouse_id', 'field_id', 'lot_number', 'notes',
                    'supplier_name'):
            if raw.get(key):
                values[key] = raw[key]
        if raw.get('tags'):
            values['tags'] = tuple(raw['tags'])
        if raw.get('cost') is not None:
            values['cost'] = to_decimal(raw['cost'])
        return cls(name=str(name), quantity=quantity, **values)


def parse_stock_lines(items: Iterable[StockLine | Mapping[str, Any]], *,
                      quantity_key: str = 'quantity',
                      allow_zero: bool = False) -> list[StockLine]:
    """Normalize request items to StockLine, validating each one."""
    lines = []
    for index, item in enumerate(items or ()):
        if isinstance(item, StockLine):
            lines.append(item)
        elif isinstance(item, Mapping):
            lines.append(StockLine.from_dict(
                item, index, quantity_key=quantity_key, allow_zero=allow_zero,
            ))
        else:
            raise ValidationError(f"Item {index}: expected a mapping", index=index)
    return lines


def parse_produced_lines(items: Iterable[ProducedLine | Mapping[str, Any]],
                         **defaults: Any) -> list[ProducedLine]:
    """Normalize produced items to ProducedLine, validating each one."""
    lines = []
    for index, item in enumerate(items or ()):
        if isinstance(item, ProducedLine):
            lines.append(item)
        elif isinstance(item, Mapping):
            lines.append(ProducedLine.from_dict(item, index, **defaults))
        else:
            raise ValidationError(f"Item {index}: expected a mapping", index=index)
    return lines


def line_items(raw: Iterable[Mapping[str, Any]] | None) -> tuple[dict[str, Any], ...]:
    """Copy stored line items with their quantities as Decimal."""
    items = []
    for item in raw or ():
        copy = dict(item)
        for key in ('quantity', 'total_quantity', 'quantity_received', 'unit_cost'):
            if key in copy:
                copy[key] = to_decimal(copy[key])
        items.append(copy)
    return tuple(items)
