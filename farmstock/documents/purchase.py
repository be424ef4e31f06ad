"""
Purchase documents.

A purchase carries its deliveries inline. Each delivery moves on its own
(in_transit -> completed | cancelled); the purchase status is recomputed
from all of them after every delivery transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from farmstock.documents.base import line_items, to_datetime, to_decimal
from farmstock.models.enums import DeliveryStatus, PurchaseStatus
from farmstock.protocols.store import Snapshot

PURCHASES = 'purchases'


@dataclass(frozen=True, kw_only=True)
class _Delivery:
    id: str
    # [{product_id, quantity}]; product_id is the purchase line id
    products: tuple[dict[str, Any], ...] = ()
    warehouse_id: str = ''
    warehouse_name: str = ''
    freight: Decimal = Decimal('0')
    delivery_date: datetime | None = None
    notes: str = ''
    created_by: str = ''
    created_at: datetime | None = None

    @property
    def total_quantity(self) -> Decimal:
        return sum((item['quantity'] for item in self.products), Decimal('0'))


@dataclass(frozen=True, kw_only=True)
class InTransitDelivery(_Delivery):
    status: ClassVar[str] = DeliveryStatus.IN_TRANSIT


@dataclass(frozen=True, kw_only=True)
class CompletedDelivery(_Delivery):
    """Received; one product record was created per line."""

    status: ClassVar[str] = DeliveryStatus.COMPLETED

    completed_by: str = ''
    completed_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class CancelledDelivery(_Delivery):
    status: ClassVar[str] = DeliveryStatus.CANCELLED

    cancelled_at: datetime | None = None
    cancellation_reason: str = ''


Delivery = InTransitDelivery | CompletedDelivery | CancelledDelivery


def parse_delivery(data: dict[str, Any]) -> Delivery:
    fields = dict(
        id=str(data.get('id', '')),
        products=line_items(data.get('products')),
        warehouse_id=data.get('warehouse_id', ''),
        warehouse_name=data.get('warehouse_name', ''),
        freight=to_decimal(data.get('freight')),
        delivery_date=to_datetime(data.get('delivery_date')),
        notes=data.get('notes', ''),
        created_by=data.get('created_by', ''),
        created_at=to_datetime(data.get('created_at')),
    )
    status = data.get('status', DeliveryStatus.IN_TRANSIT)
    if status == DeliveryStatus.COMPLETED:
        return CompletedDelivery(
            **fields,
            completed_by=data.get('completed_by', ''),
            completed_at=to_datetime(data.get('completed_at')),
        )
    if status == DeliveryStatus.CANCELLED:
        return CancelledDelivery(
            **fields,
            cancelled_at=to_datetime(data.get('cancelled_at')),
            cancellation_reason=data.get('cancellation_reason', ''),
        )
    return InTransitDelivery(**fields)


@dataclass(frozen=True)
class Purchase:
    """Purchase order with inline deliveries and derived totals."""

    id: str
    status: PurchaseStatus
    purchase_number: str = ''
    supplier: str = ''
    purchase_date: datetime | None = None
    # [{id, name, quantity, unit_cost, unit, category}]
    products: tuple[dict[str, Any], ...] = ()
    deliveries: tuple[Delivery, ...] = ()
    freight: Decimal = Decimal('0')
    taxes: Decimal = Decimal('0')
    total_products: Decimal = Decimal('0')
    total_amount: Decimal = Decimal('0')
    total_delivered: Decimal = Decimal('0')
    total_pending: Decimal = Decimal('0')
    total_freight_paid: Decimal = Decimal('0')
    notes: str = ''
    created_by: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> Purchase:
        data = snapshot.data or {}
        return cls(
            id=snapshot.id,
            status=PurchaseStatus(data.get('status', PurchaseStatus.PENDING)),
            purchase_number=data.get('purchase_number', ''),
            supplier=data.get('supplier', ''),
            purchase_date=to_datetime(data.get('purchase_date')),
            products=line_items(data.get('products')),
            deliveries=tuple(parse_delivery(d) for d in data.get('deliveries') or ()),
            freight=to_decimal(data.get('freight')),
            taxes=to_decimal(data.get('taxes')),
            total_products=to_decimal(data.get('total_products')),
            total_amount=to_decimal(data.get('total_amount')),
            total_delivered=to_decimal(data.get('total_delivered')),
            total_pending=to_decimal(data.get('total_pending')),
            total_freight_paid=to_decimal(data.get('total_freight_paid')),
            notes=data.get('notes', ''),
            created_by=data.get('created_by', ''),
            created_at=to_datetime(data.get('created_at')),
            updated_at=to_datetime(data.get('updated_at')),
        )

    @property
    def total_ordered(self) -> Decimal:
        return sum((item['quantity'] for item in self.products), Decimal('0'))

    def delivery(self, delivery_id: str) -> Delivery | None:
        for delivery in self.deliveries:
            if delivery.id == delivery_id:
                return delivery
        return None
