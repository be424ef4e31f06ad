"""
Fumigation documents — one dataclass per lifecycle state.

    OpenFumigation (pending | scheduled | in_progress)
        ├── complete() ──► CompletedFumigation   stock decremented once
        └── cancel()   ──► CancelledFumigation   stock untouched
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from farmstock.documents.base import line_items, to_datetime, to_decimal
from farmstock.models.enums import FieldWorkStatus
from farmstock.protocols.store import Snapshot

FUMIGATIONS = 'fumigations'


@dataclass(frozen=True, kw_only=True)
class _Fumigation:
    id: str
    order_number: str = ''
    application_date: datetime | None = None
    establishment: str = ''
    applicator: str = ''
    field_id: str = ''
    crop: str = ''
    lots: tuple = ()
    total_surface: Decimal = Decimal('0')
    surface_unit: str = 'ha'
    # [{product_id, total_quantity, unit, name}]
    selected_products: tuple[dict[str, Any], ...] = ()
    application_method: str = ''
    flow_rate: Decimal = Decimal('80')
    observations: str = ''
    created_by: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class OpenFumigation(_Fumigation):
    """Planned or running; products not yet taken from stock."""

    status: FieldWorkStatus = FieldWorkStatus.PENDING


@dataclass(frozen=True, kw_only=True)
class CompletedFumigation(_Fumigation):
    """Applied; stock_shortages lists the overrides accepted at completion."""

    status: ClassVar[str] = FieldWorkStatus.COMPLETED

    start_datetime: datetime | None = None
    end_datetime: datetime | None = None
    weather_conditions: dict[str, Any] = field(default_factory=dict)
    completion_notes: str = ''
    completed_by: str = ''
    completed_at: datetime | None = None
    stock_shortages: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True, kw_only=True)
class CancelledFumigation(_Fumigation):
    status: ClassVar[str] = FieldWorkStatus.CANCELLED

    cancellation_reason: str = ''
    cancelled_by: str = ''
    cancelled_at: datetime | None = None


Fumigation = OpenFumigation | CompletedFumigation | CancelledFumigation


def parse_fumigation(snapshot: Snapshot) -> Fumigation:
    """Build the variant matching the stored status."""
    data = snapshot.data or {}
    common = dict(
        id=snapshot.id,
        order_number=data.get('order_number', ''),
        application_date=to_datetime(data.get('application_date')),
        establishment=data.get('establishment', ''),
        applicator=data.get('applicator', ''),
        field_id=data.get('field_id', ''),
        crop=data.get('crop', ''),
        lots=tuple(data.get('lots') or ()),
        total_surface=to_decimal(data.get('total_surface')),
        surface_unit=data.get('surface_unit', 'ha'),
        selected_products=line_items(data.get('selected_products')),
        application_method=data.get('application_method', ''),
        flow_rate=to_decimal(data.get('flow_rate'), Decimal('80')),
        observations=data.get('observations', ''),
        created_by=data.get('created_by', ''),
        created_at=to_datetime(data.get('created_at')),
        updated_at=to_datetime(data.get('updated_at')),
    )
    status = data.get('status', FieldWorkStatus.PENDING)

    if status == FieldWorkStatus.COMPLETED:
        return CompletedFumigation(
            **common,
            start_datetime=to_datetime(data.get('start_datetime')),
            end_datetime=to_datetime(data.get('end_datetime')),
            weather_conditions=dict(data.get('weather_conditions') or {}),
            completion_notes=data.get('completion_notes', ''),
            completed_by=data.get('completed_by', ''),
            completed_at=to_datetime(data.get('completed_at')),
            stock_shortages=tuple(data.get('stock_shortages') or ()),
        )
    if status == FieldWorkStatus.CANCELLED:
        return CancelledFumigation(
            **common,
            cancellation_reason=data.get('cancellation_reason', ''),
            cancelled_by=data.get('cancelled_by', ''),
            cancelled_at=to_datetime(data.get('cancelled_at')),
        )
    return OpenFumigation(**common, status=FieldWorkStatus(status))
