"""
Fumigations — planned applications that consume inputs when completed.

Creating a fumigation does not touch stock. Completing it decrements
every selected product once; a shortage there is a warning the user may
override, in which case stock goes negative.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.documents.base import Principal, line_items, parse_stock_lines
from farmstock.documents.fumigation import FUMIGATIONS, Fumigation, parse_fumigation
from farmstock.exceptions import InsufficientStockError, NotFoundError, ValidationError
from farmstock.executor import InventoryExecutor, load_entity
from farmstock.models.enums import OPEN_FIELD_WORK, FieldWorkStatus
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction
from farmstock.services.numbering import fumigation_number

logger = logging.getLogger('farmstock')

QUANTITY_KEY = 'total_quantity'

COMPLETION_FIELDS = ('start_datetime', 'end_datetime', 'weather_conditions', 'completion_notes')

# Written only by lifecycle transitions
LIFECYCLE_FIELDS = frozenset({
    *COMPLETION_FIELDS, 'order_number', 'stock_shortages',
    'created_by', 'created_by_id', 'created_at',
    'completed_by', 'completed_at',
    'cancelled_by', 'cancelled_at', 'cancellation_reason',
})


class FumigationService:
    """Fumigation lifecycle: create, edit, complete, cancel, delete."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, fumigation_id: str) -> Fumigation:
        """
        Raises:
            NotFoundError: If the fumigation does not exist
        """
        snapshot = self.store.get(DocumentRef(FUMIGATIONS, fumigation_id))
        if not snapshot.exists:
            raise NotFoundError(FUMIGATIONS, fumigation_id)
        return parse_fumigation(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Record a planned fumigation. Stock is not checked or changed.

        An order number (YYYY-NNN) is allocated when none is given.

        Raises:
            ValidationError: If status or selected_products are invalid
        """
        data = dict(data)
        status = str(data.pop('status', None) or FieldWorkStatus.PENDING)
        if status not in OPEN_FIELD_WORK:
            raise ValidationError(f"Cannot create a fumigation as '{status}'", field='status')

        lines = parse_stock_lines(data.get('selected_products'), quantity_key=QUANTITY_KEY)
        if not lines:
            raise ValidationError("At least one product is required", field='selected_products')

        if not data.get('order_number'):
            data['order_number'] = fumigation_number(self.store)

        ref = DocumentRef.new(FUMIGATIONS)
        now = timezone.now()
        self.store.set(ref, {
            **data,
            'selected_products': list(line_items(data['selected_products'])),
            'status': status,
            'created_by': principal.label,
            'created_by_id': principal.uid,
            'created_at': now,
            'updated_at': now,
        })
        logger.info(
            "fumigation.created",
            extra={
                "document_id": ref.id,
                "order_number": data['order_number'],
                "user": principal.uid,
            },
        )
        return ref.id

    def update(self, fumigation_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit an open fumigation.

        Nothing has left stock yet, so selected_products may change (they
        are re-validated). status may move between the open statuses.

        Raises:
            ValidationError: If a lifecycle field is edited, or status or
                selected_products are invalid
            NotFoundError: If the fumigation does not exist
            InvalidStatusError: If already completed or cancelled
        """
        changes = dict(changes)
        if 'status' in changes:
            changes['status'] = str(changes['status'])
            if changes['status'] not in OPEN_FIELD_WORK:
                raise ValidationError(
                    f"Cannot move a fumigation to '{changes['status']}' by editing it",
                    field='status',
                )
        if 'selected_products' in changes:
            if not parse_stock_lines(changes['selected_products'], quantity_key=QUANTITY_KEY):
                raise ValidationError("At least one product is required", field='selected_products')
            changes['selected_products'] = list(line_items(changes['selected_products']))

        self.executor.update_entity(
            DocumentRef(FUMIGATIONS, fumigation_id), changes,
            principal=principal,
            allowed=OPEN_FIELD_WORK,
            protected=LIFECYCLE_FIELDS,
        )

    def delete(self, fumigation_id: str, *, principal: Principal) -> None:
        """
        Delete a fumigation that was never applied. Stock is untouched.

        Raises:
            NotFoundError: If the fumigation does not exist
            InvalidStatusError: If completed
        """
        self.executor.delete_entity(
            DocumentRef(FUMIGATIONS, fumigation_id),
            principal=principal,
            allowed=OPEN_FIELD_WORK | {FieldWorkStatus.CANCELLED.value},
        )

    def shortages(self, fumigation_id: str) -> list[InsufficientStockError]:
        """
        Products whose stock would not cover the fumigation right now.

        The caller shows these to the user before completing with
        allow_insufficient=True.
        """
        fumigation = self.get(fumigation_id)
        return self.executor.shortages(fumigation.selected_products, quantity_key=QUANTITY_KEY)

    def complete(self, fumigation_id: str, *, principal: Principal,
                 completion: Mapping[str, Any] | None = None,
                 allow_insufficient: bool = False) -> list[InsufficientStockError]:
        """
        Decrement stock for every selected product and mark completed.

        Args:
            completion: start_datetime, end_datetime, weather_conditions,
                completion_notes
            allow_insufficient: Accept shortages (stock goes negative)

        Returns:
            The shortages accepted, empty when stock covered everything

        Raises:
            NotFoundError: If the fumigation or a product does not exist
            InvalidStatusError: If already completed or cancelled
            InsufficientStockError: Unless allow_insufficient
        """
        completion = completion or {}
        fields = {key: completion[key] for key in COMPLETION_FIELDS if key in completion}
        fields.setdefault('weather_conditions', {})
        fields.setdefault('completion_notes', '')

        return self.executor.complete_with_consumption(
            DocumentRef(FUMIGATIONS, fumigation_id),
            lambda entity: entity.get('selected_products') or (),
            principal=principal,
            fields=fields,
            allow_insufficient=allow_insufficient,
            quantity_key=QUANTITY_KEY,
        )

    def cancel(self, fumigation_id: str, *, principal: Principal, reason: str = '') -> None:
        """
        Cancel an open fumigation. Stock is untouched.

        Raises:
            NotFoundError: If the fumigation does not exist
            InvalidStatusError: If already completed or cancelled
        """
        ref = DocumentRef(FUMIGATIONS, fumigation_id)

        def apply(tx: Transaction) -> None:
            load_entity(tx, ref, allowed=OPEN_FIELD_WORK)
            now = timezone.now()
            tx.update(ref, {
                'status': FieldWorkStatus.CANCELLED.value,
                'cancellation_reason': reason,
                'cancelled_by': principal.label,
                'cancelled_at': now,
                'updated_at': now,
            })

        self.store.transaction(apply)
        logger.info(
            "fumigation.cancelled",
            extra={"document_id": fumigation_id, "reason": reason, "user": principal.uid},
        )
