"""
Harvest documents — one dataclass per lifecycle state.

Inputs (selected_products) leave stock when the harvest is planned;
harvested products enter stock as new records when it is completed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from farmstock.documents.base import line_items, to_datetime, to_decimal
from farmstock.models.enums import FieldWorkStatus
from farmstock.protocols.store import Snapshot

HARVESTS = 'harvests'


@dataclass(frozen=True, kw_only=True)
class _Harvest:
    id: str
    field_id: str = ''
    crop: str = ''
    lots: tuple = ()
    total_area: Decimal = Decimal('0')
    area_unit: str = 'ha'
    planned_date: datetime | None = None
    estimated_yield: Decimal = Decimal('0')
    yield_unit: str = 'kg/ha'
    harvest_method: str = ''
    machinery: tuple = ()
    workers: str = ''
    target_warehouse: str = ''
    quality_parameters: tuple = ()
    notes: str = ''
    # [{product_id, quantity}] consumed at planning time
    selected_products: tuple[dict[str, Any], ...] = ()
    created_by: str = ''
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class PlannedHarvest(_Harvest):
    status: FieldWorkStatus = FieldWorkStatus.PENDING


@dataclass(frozen=True, kw_only=True)
class CompletedHarvest(_Harvest):
    """Harvested; products_harvested were added as new inventory records."""

    status: ClassVar[str] = FieldWorkStatus.COMPLETED

    harvest_date: datetime | None = None
    actual_yield: Decimal = Decimal('0')
    total_harvested: Decimal | None = None
    total_harvested_unit: str = 'kg'
    destination: str = ''
    quality_results: tuple = ()
    harvest_notes: str = ''
    products_harvested: tuple[dict[str, Any], ...] = ()
    completed_by: str = ''
    completed_at: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class CancelledHarvest(_Harvest):
    status: ClassVar[str] = FieldWorkStatus.CANCELLED

    cancellation_reason: str = ''
    cancelled_by: str = ''
    cancelled_at: datetime | None = None
    restocked: bool = False


Harvest = PlannedHarvest | CompletedHarvest | CancelledHarvest


def parse_harvest(snapshot: Snapshot) -> Harvest:
    """Build the variant matching the stored status."""
    data = snapshot.data or {}
    common = dict(
        id=snapshot.id,
        field_id=data.get('field_id', ''),
        crop=data.get('crop', ''),
        lots=tuple(data.get('lots') or ()),
        total_area=to_decimal(data.get('total_area')),
        area_unit=data.get('area_unit', 'ha'),
        planned_date=to_datetime(data.get('planned_date')),
        estimated_yield=to_decimal(data.get('estimated_yield')),
        yield_unit=data.get('yield_unit', 'kg/ha'),
        harvest_method=data.get('harvest_method', ''),
        machinery=tuple(data.get('machinery') or ()),
        workers=data.get('workers', ''),
        target_warehouse=data.get('target_warehouse', ''),
        quality_parameters=tuple(data.get('quality_parameters') or ()),
        notes=data.get('notes', ''),
        selected_products=line_items(data.get('selected_products')),
        created_by=data.get('created_by', ''),
        created_at=to_datetime(data.get('created_at')),
        updated_at=to_datetime(data.get('updated_at')),
    )
    status = data.get('status', FieldWorkStatus.PENDING)

    if status == FieldWorkStatus.COMPLETED:
        total = data.get('total_harvested')
        return CompletedHarvest(
            **common,
            harvest_date=to_datetime(data.get('harvest_date')),
            actual_yield=to_decimal(data.get('actual_yield')),
            total_harvested=to_decimal(total) if total is not None else None,
            total_harvested_unit=data.get('total_harvested_unit', 'kg'),
            destination=data.get('destination', ''),
            quality_results=tuple(data.get('quality_results') or ()),
            harvest_notes=data.get('harvest_notes', ''),
            products_harvested=line_items(data.get('products_harvested')),
            completed_by=data.get('completed_by', ''),
            completed_at=to_datetime(data.get('completed_at')),
        )
    if status == FieldWorkStatus.CANCELLED:
        return CancelledHarvest(
            **common,
            cancellation_reason=data.get('cancellation_reason', ''),
            cancelled_by=data.get('cancelled_by', ''),
            cancelled_at=to_datetime(data.get('cancelled_at')),
            restocked=bool(data.get('restocked', False)),
        )
    return PlannedHarvest(**common, status=FieldWorkStatus(status))
