"""
Harvests — inputs leave stock at planning, produce enters at completion.

    create()   selected_products decremented (hard failure on shortage)
    complete() one new product per harvested item, tagged with a lot
    cancel()   inputs returned to stock unless restock=False
    delete()   open harvests return their inputs first
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.documents.base import (
    Principal,
    line_items,
    parse_produced_lines,
    parse_stock_lines,
)
from farmstock.documents.harvest import HARVESTS, Harvest, parse_harvest
from farmstock.exceptions import NotFoundError, ValidationError
from farmstock.executor import InventoryExecutor, load_entity
from farmstock.executor import restock as restock_lines
from farmstock.models.enums import OPEN_FIELD_WORK, FieldWorkStatus
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction

logger = logging.getLogger('farmstock')

RESULT_DEFAULTS = {
    'actual_yield': 0,
    'total_harvested': None,
    'total_harvested_unit': 'kg',
    'destination': '',
    'quality_results': [],
    'harvest_notes': '',
}

# Inputs and everything written by lifecycle transitions
PROTECTED_FIELDS = frozenset({
    'status', 'selected_products', 'products_harvested', *RESULT_DEFAULTS,
    'created_by', 'created_by_id', 'created_at',
    'completed_by', 'completed_at',
    'cancelled_by', 'cancelled_at', 'cancellation_reason', 'restocked',
})


def lot_number(harvest_id: str, now=None) -> str:
    """Provenance tag for products of a harvest: HARVEST-<id[:8]>-<epoch ms>."""
    now = now or timezone.now()
    return f"HARVEST-{harvest_id[:8]}-{int(now.timestamp() * 1000)}"


class HarvestService:
    """Harvest lifecycle: create, edit, complete, cancel, delete."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, harvest_id: str) -> Harvest:
        """
        Raises:
            NotFoundError: If the harvest does not exist
        """
        snapshot = self.store.get(DocumentRef(HARVESTS, harvest_id))
        if not snapshot.exists:
            raise NotFoundError(HARVESTS, harvest_id)
        return parse_harvest(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Plan a harvest, consuming its inputs in the same transaction.

        Raises:
            ValidationError: If status or selected_products are invalid
            NotFoundError: If an input product does not exist
            InsufficientStockError: For the first input exceeding stock
        """
        data = dict(data)
        status = str(data.pop('status', None) or FieldWorkStatus.PENDING)
        if status not in OPEN_FIELD_WORK:
            raise ValidationError(f"Cannot create a harvest as '{status}'", field='status')

        lines = parse_stock_lines(data.get('selected_products'))
        data['selected_products'] = list(line_items(data.get('selected_products')))

        harvest_id = self.executor.create_with_consumption(
            HARVESTS, data, lines, principal=principal, status=status,
        )
        logger.info(
            "harvest.created",
            extra={"document_id": harvest_id, "crop": data.get('crop', ''), "user": principal.uid},
        )
        return harvest_id

    def update(self, harvest_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit an open harvest's planning details.

        selected_products already left stock at creation and cannot be
        edited; cancel the harvest and plan a new one instead.

        Raises:
            ValidationError: If status, inputs or a lifecycle field is edited
            NotFoundError: If the harvest does not exist
            InvalidStatusError: If already completed or cancelled
        """
        self.executor.update_entity(
            DocumentRef(HARVESTS, harvest_id), changes,
            principal=principal,
            allowed=OPEN_FIELD_WORK,
            protected=PROTECTED_FIELDS,
        )

    def delete(self, harvest_id: str, *, principal: Principal) -> None:
        """
        Delete a harvest that produced nothing.

        An open harvest gives its inputs back to stock in the same
        transaction; a cancelled one already settled them.

        Raises:
            NotFoundError: If the harvest or an input product does not exist
            InvalidStatusError: If completed
        """
        def inputs(entity: dict[str, Any]) -> list[Any]:
            if entity.get('status') in OPEN_FIELD_WORK:
                return list(entity.get('selected_products') or ())
            return []

        restocked = self.executor.delete_entity(
            DocumentRef(HARVESTS, harvest_id),
            principal=principal,
            allowed=OPEN_FIELD_WORK | {FieldWorkStatus.CANCELLED.value},
            restocked=inputs,
        )
        logger.info(
            "harvest.deleted",
            extra={"document_id": harvest_id, "restocked": len(restocked), "user": principal.uid},
        )

    def complete(self, harvest_id: str, *, principal: Principal,
                 results: Mapping[str, Any] | None = None) -> list[str]:
        """
        Record harvest results and add the harvested products to stock.

        Every item of results['products_harvested'] becomes a new product
        in its warehouse_id, or the harvest's target_warehouse.

        Returns:
            Ids of the created products

        Raises:
            ValidationError: If a harvested item is malformed
            NotFoundError: If the harvest does not exist
            InvalidStatusError: If already completed or cancelled
        """
        results = dict(RESULT_DEFAULTS, **(results or {}))
        harvested = list(results.get('products_harvested') or ())
        parse_produced_lines(harvested)
        results['products_harvested'] = list(line_items(harvested))
        now = timezone.now()

        def produced(entity: dict[str, Any]) -> list[dict[str, Any]]:
            crop = entity.get('crop') or 'crop'
            defaults = {
                'warehouse_id': entity.get('target_warehouse') or None,
                'field_id': entity.get('field_id') or None,
                'lot_number': lot_number(harvest_id, now),
                'tags': ['harvest', crop],
                'notes': f"Harvest of {crop} on {now.date().isoformat()}",
            }
            return [
                {**defaults, **{k: v for k, v in item.items() if v not in (None, '')}}
                for item in harvested
            ]

        def transition(entity: dict[str, Any]) -> dict[str, Any]:
            return {
                **results,
                'status': FieldWorkStatus.COMPLETED.value,
                'completed_by': principal.label,
                'completed_at': now,
            }

        product_ids = self.executor.complete_with_production(
            DocumentRef(HARVESTS, harvest_id),
            produced,
            principal=principal,
            transition=transition,
        )
        logger.info(
            "harvest.completed",
            extra={"document_id": harvest_id, "product_ids": product_ids, "user": principal.uid},
        )
        return product_ids

    def cancel(self, harvest_id: str, *, principal: Principal,
               reason: str = '', restock: bool = True) -> None:
        """
        Cancel an open harvest.

        The inputs consumed at planning time go back to their products
        unless restock is False.

        Raises:
            NotFoundError: If the harvest or an input product does not exist
            InvalidStatusError: If already completed or cancelled
        """
        ref = DocumentRef(HARVESTS, harvest_id)

        def apply(tx: Transaction) -> None:
            entity = load_entity(tx, ref, allowed=OPEN_FIELD_WORK)
            if restock:
                restock_lines(tx, parse_stock_lines(entity.get('selected_products')))
            now = timezone.now()
            tx.update(ref, {
                'status': FieldWorkStatus.CANCELLED.value,
                'cancellation_reason': reason,
                'cancelled_by': principal.label,
                'cancelled_at': now,
                'restocked': restock,
                'updated_at': now,
            })

        self.store.transaction(apply)
        logger.info(
            "harvest.cancelled",
            extra={"document_id": harvest_id, "restocked": restock, "user": principal.uid},
        )
