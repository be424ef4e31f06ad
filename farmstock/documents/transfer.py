"""
Transfer documents — one dataclass per lifecycle state.

    RequestedTransfer ──approve──► ApprovedTransfer ──ship──► ShippedTransfer ──receive──► CompletedTransfer
          │  └──reject──► RejectedTransfer       │
          └──cancel──► CancelledTransfer ◄──cancel┘
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from farmstock.documents.base import line_items, to_datetime, to_decimal
from farmstock.models.enums import TransferStatus
from farmstock.protocols.store import Snapshot

TRANSFERS = 'transfers'


@dataclass(frozen=True, kw_only=True)
class _Transfer:
    id: str
    transfer_number: str = ''
    source_warehouse_id: str = ''
    target_warehouse_id: str = ''
    # [{product_id, quantity, name, unit}]
    products: tuple[dict[str, Any], ...] = ()
    distance: Decimal = Decimal('0')
    distance_unit: str = 'km'
    transfer_cost: Decimal = Decimal('0')
    cost_per_unit: Decimal = Decimal('0')
    requested_by: str = ''
    request_date: datetime | None = None
    notes: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_quantity(self) -> Decimal:
        return sum((item['quantity'] for item in self.products), Decimal('0'))


@dataclass(frozen=True, kw_only=True)
class RequestedTransfer(_Transfer):
    status: ClassVar[str] = TransferStatus.PENDING


@dataclass(frozen=True, kw_only=True)
class ApprovedTransfer(_Transfer):
    status: ClassVar[str] = TransferStatus.APPROVED

    approved_by: str = ''
    approved_date: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class ShippedTransfer(ApprovedTransfer):
    """Products have left the source warehouse."""

    status: ClassVar[str] = TransferStatus.SHIPPED

    shipped_by: str = ''
    shipped_date: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class CompletedTransfer(ShippedTransfer):
    """Products arrived; received_products holds the confirmed quantities."""

    status: ClassVar[str] = TransferStatus.COMPLETED

    received_by: str = ''
    received_date: datetime | None = None
    received_products: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True)
class RejectedTransfer(_Transfer):
    status: ClassVar[str] = TransferStatus.REJECTED

    rejected_by: str = ''
    rejected_date: datetime | None = None
    rejection_reason: str = ''


@dataclass(frozen=True, kw_only=True)
class CancelledTransfer(_Transfer):
    status: ClassVar[str] = TransferStatus.CANCELLED

    cancelled_by: str = ''
    cancelled_at: datetime | None = None
    cancellation_reason: str = ''


Transfer = (
    RequestedTransfer | ApprovedTransfer | ShippedTransfer
    | CompletedTransfer | RejectedTransfer | CancelledTransfer
)


def parse_transfer(snapshot: Snapshot) -> Transfer:
    """Build the variant matching the stored status."""
    data = snapshot.data or {}
    fields = dict(
        id=snapshot.id,
        transfer_number=data.get('transfer_number', ''),
        source_warehouse_id=data.get('source_warehouse_id', ''),
        target_warehouse_id=data.get('target_warehouse_id', ''),
        products=line_items(data.get('products')),
        distance=to_decimal(data.get('distance')),
        distance_unit=data.get('distance_unit', 'km'),
        transfer_cost=to_decimal(data.get('transfer_cost')),
        cost_per_unit=to_decimal(data.get('cost_per_unit')),
        requested_by=data.get('requested_by', ''),
        request_date=to_datetime(data.get('request_date')),
        notes=data.get('notes', ''),
        created_at=to_datetime(data.get('created_at')),
        updated_at=to_datetime(data.get('updated_at')),
    )
    status = TransferStatus(data.get('status', TransferStatus.PENDING))

    if status == TransferStatus.PENDING:
        return RequestedTransfer(**fields)
    if status == TransferStatus.REJECTED:
        return RejectedTransfer(
            **fields,
            rejected_by=data.get('rejected_by', ''),
            rejected_date=to_datetime(data.get('rejected_date')),
            rejection_reason=data.get('rejection_reason', ''),
        )
    if status == TransferStatus.CANCELLED:
        return CancelledTransfer(
            **fields,
            cancelled_by=data.get('cancelled_by', ''),
            cancelled_at=to_datetime(data.get('cancelled_at')),
            cancellation_reason=data.get('cancellation_reason', ''),
        )

    fields.update(
        approved_by=data.get('approved_by', ''),
        approved_date=to_datetime(data.get('approved_date')),
    )
    if status == TransferStatus.APPROVED:
        return ApprovedTransfer(**fields)

    fields.update(
        shipped_by=data.get('shipped_by', ''),
        shipped_date=to_datetime(data.get('shipped_date')),
    )
    if status == TransferStatus.SHIPPED:
        return ShippedTransfer(**fields)

    return CompletedTransfer(
        **fields,
        received_by=data.get('received_by', ''),
        received_date=to_datetime(data.get('received_date')),
        received_products=line_items(data.get('received_products')),
    )
