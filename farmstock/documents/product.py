"""
Product document — an inventory record with on-hand stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from farmstock.conf import farmstock_settings
from farmstock.documents.base import to_datetime, to_decimal
from farmstock.models.enums import StockLevel
from farmstock.protocols.store import Snapshot

PRODUCTS = 'products'


@dataclass(frozen=True)
class Product:
    """
    Inventory record.

    stock is the on-hand quantity. Harvests and purchase deliveries
    always create new records (one per lot); transfers move existing ones.
    """

    id: str
    name: str
    stock: Decimal
    category: str = ''
    unit: str = ''
    min_stock: Decimal = Decimal('0')
    warehouse_id: str | None = None
    field_id: str | None = None
    storage_level: str = ''
    lot_number: str = ''
    tags: tuple[str, ...] = ()
    notes: str = ''
    cost: Decimal | None = None
    supplier_name: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> Product:
        data = snapshot.data or {}
        cost = data.get('cost')
        return cls(
            id=snapshot.id,
            name=data.get('name', ''),
            stock=to_decimal(data.get('stock')),
            category=data.get('category', ''),
            unit=data.get('unit', ''),
            min_stock=to_decimal(data.get('min_stock')),
            warehouse_id=data.get('warehouse_id'),
            field_id=data.get('field_id'),
            storage_level=data.get('storage_level', ''),
            lot_number=data.get('lot_number', ''),
            tags=tuple(data.get('tags') or ()),
            notes=data.get('notes', ''),
            cost=to_decimal(cost) if cost is not None else None,
            supplier_name=data.get('supplier_name', ''),
            created_at=to_datetime(data.get('created_at')),
            updated_at=to_datetime(data.get('updated_at')),
        )

    @property
    def stock_level(self) -> StockLevel:
        """
        LOW at or below min_stock, WARNING within the warning factor, else OK.
        """
        if self.stock <= self.min_stock:
            return StockLevel.LOW
        if self.stock <= self.min_stock * farmstock_settings.LOW_STOCK_WARNING_FACTOR:
            return StockLevel.WARNING
        return StockLevel.OK

    @property
    def is_low(self) -> bool:
        """Below minimum, counting only products that define one."""
        return self.min_stock > 0 and self.stock <= self.min_stock

    def __str__(self) -> str:
        return f"{self.name} [{self.warehouse_id or '?'}]: {self.stock} {self.unit}"
