"""
Purchases — supplier orders fulfilled by one or more deliveries.

A delivery is created in transit, then either completed (one new product
per line enters stock at the delivery's warehouse) or cancelled. After
every delivery transition the purchase totals and status are recomputed
from all of its deliveries.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.documents.base import (
    Principal,
    ProducedLine,
    line_items,
    parse_stock_lines,
    to_decimal,
)
from farmstock.documents.purchase import PURCHASES, Purchase
from farmstock.exceptions import InvalidStatusError, NotFoundError, ValidationError
from farmstock.executor import (
    InventoryExecutor,
    delivery_quantity,
    load_entity,
    recompute_aggregate_status,
)
from farmstock.models.enums import DeliveryStatus, PurchaseStatus
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction
from farmstock.services.numbering import purchase_number

logger = logging.getLogger('farmstock')

DELIVERIES = 'deliveries'

# Deliveries can be added once the purchase is approved
DELIVERABLE = {PurchaseStatus.APPROVED.value, PurchaseStatus.PARTIAL_DELIVERED.value}

# Derived from lines and deliveries, or written by lifecycle transitions
PROTECTED_FIELDS = frozenset({
    'status', 'deliveries', 'purchase_number',
    'total_products', 'total_amount', 'total_delivered', 'total_pending', 'total_freight_paid',
    'created_by', 'created_at', 'approved_by', 'approved_date',
    'cancelled_by', 'cancelled_at', 'cancellation_reason',
})


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _ordered(products: Iterable[Mapping[str, Any]]) -> Decimal:
    return sum((to_decimal(p.get('quantity')) for p in products or ()), Decimal('0'))


def purchase_totals(products: Iterable[Mapping[str, Any]],
                    deliveries: Iterable[Mapping[str, Any]]) -> dict[str, Decimal]:
    """Delivered, pending and freight totals over all deliveries."""
    delivered = in_transit = freight_paid = Decimal('0')
    for delivery in deliveries:
        status = delivery.get('status')
        if status == DeliveryStatus.COMPLETED:
            delivered += delivery_quantity(delivery)
            freight_paid += to_decimal(delivery.get('freight'))
        elif status == DeliveryStatus.IN_TRANSIT:
            in_transit += delivery_quantity(delivery)
    return {
        'total_delivered': delivered,
        'total_pending': _ordered(products) - delivered - in_transit,
        'total_freight_paid': freight_paid,
    }


def purchase_lines(raw_products: Iterable[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    """
    Validate order lines and give each an id.

    Raises:
        ValidationError: If a line is malformed or there are none
    """
    products = []
    for index, raw in enumerate(raw_products or ()):
        line = ProducedLine.from_dict(raw, index)
        if line.quantity <= 0:
            raise ValidationError(
                f"Item {index}: quantity must be positive", index=index, field='quantity',
            )
        products.append({
            **raw,
            'id': str(raw.get('id') or _new_id()),
            'name': line.name,
            'quantity': line.quantity,
            'unit_cost': to_decimal(raw.get('unit_cost')),
        })
    if not products:
        raise ValidationError("At least one product is required", field='products')
    return products


def order_totals(products: Iterable[Mapping[str, Any]],
                 freight: Decimal, taxes: Decimal) -> dict[str, Decimal]:
    total_products = sum(
        (to_decimal(p.get('quantity')) * to_decimal(p.get('unit_cost')) for p in products),
        Decimal('0'),
    )
    return {
        'total_products': total_products,
        'total_amount': total_products + freight + taxes,
    }


def pending_by_line(products: Iterable[Mapping[str, Any]],
                    deliveries: Iterable[Mapping[str, Any]]) -> dict[str, Decimal]:
    """Quantity of each purchase line not yet delivered nor in transit."""
    pending = {str(p.get('id')): to_decimal(p.get('quantity')) for p in products or ()}
    for delivery in deliveries:
        if delivery.get('status') == DeliveryStatus.CANCELLED:
            continue
        for item in delivery.get('products') or ():
            line_id = str(item.get('product_id'))
            if line_id in pending:
                pending[line_id] -= to_decimal(item.get('quantity'))
    return pending


def _find_delivery(entity: Mapping[str, Any], delivery_id: str) -> dict[str, Any]:
    for delivery in entity.get('deliveries') or ():
        if str(delivery.get('id')) == delivery_id:
            return delivery
    raise NotFoundError(DELIVERIES, delivery_id)


def _require_in_transit(delivery: Mapping[str, Any]) -> None:
    status = delivery.get('status')
    if status != DeliveryStatus.IN_TRANSIT:
        raise InvalidStatusError(
            current=status, expected=DeliveryStatus.IN_TRANSIT.value,
            document_id=str(delivery.get('id')),
        )


def _slug(value: str) -> str:
    return '_'.join(value.split()).lower()


class PurchaseService:
    """Purchase lifecycle and its deliveries."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, purchase_id: str) -> Purchase:
        """
        Raises:
            NotFoundError: If the purchase does not exist
        """
        snapshot = self.store.get(DocumentRef(PURCHASES, purchase_id))
        if not snapshot.exists:
            raise NotFoundError(PURCHASES, purchase_id)
        return Purchase.from_snapshot(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Record a purchase order.

        Each line gets an id (deliveries refer to lines by it). Totals:
        total_products = sum(quantity * unit_cost), total_amount adds
        freight and taxes.

        Raises:
            ValidationError: If status or products are invalid
        """
        data = dict(data)
        status = str(data.pop('status', None) or PurchaseStatus.PENDING)
        if status not in (PurchaseStatus.PENDING, PurchaseStatus.APPROVED):
            raise ValidationError(f"Cannot create a purchase as '{status}'", field='status')

        products = purchase_lines(data.get('products'))
        freight = to_decimal(data.get('freight'))
        taxes = to_decimal(data.get('taxes'))

        if not data.get('purchase_number'):
            data['purchase_number'] = purchase_number(self.store)

        ref = DocumentRef.new(PURCHASES)
        now = timezone.now()
        self.store.set(ref, {
            **data,
            'supplier': data.get('supplier') or '',
            'products': products,
            'freight': freight,
            'taxes': taxes,
            **order_totals(products, freight, taxes),
            'status': status,
            'deliveries': [],
            'total_delivered': Decimal('0'),
            'total_pending': _ordered(products),
            'total_freight_paid': Decimal('0'),
            'created_by': principal.label,
            'created_at': now,
            'updated_at': now,
        })
        logger.info(
            "purchase.created",
            extra={
                "document_id": ref.id,
                "purchase_number": data['purchase_number'],
                "user": principal.uid,
            },
        )
        return ref.id

    def _transition(self, purchase_id: str, allowed: set[str],
                    changes: Mapping[str, Any], event: str, principal: Principal) -> None:
        ref = DocumentRef(PURCHASES, purchase_id)

        def apply(tx: Transaction) -> None:
            load_entity(tx, ref, allowed=allowed)
            tx.update(ref, {**changes, 'updated_at': timezone.now()})

        self.store.transaction(apply)
        logger.info(event, extra={"document_id": purchase_id, "user": principal.uid})

    def approve(self, purchase_id: str, *, principal: Principal) -> None:
        self._transition(purchase_id, {PurchaseStatus.PENDING}, {
            'status': PurchaseStatus.APPROVED.value,
            'approved_by': principal.label,
            'approved_date': timezone.now(),
        }, "purchase.approved", principal)

    def cancel(self, purchase_id: str, *, principal: Principal, reason: str = '') -> None:
        """Cancel a purchase that has no deliveries under way."""
        self._transition(purchase_id, {PurchaseStatus.PENDING, PurchaseStatus.APPROVED}, {
            'status': PurchaseStatus.CANCELLED.value,
            'cancelled_by': principal.label,
            'cancelled_at': timezone.now(),
            'cancellation_reason': reason,
        }, "purchase.cancelled", principal)

    def update(self, purchase_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit a pending or approved purchase.

        products may change only while no delivery was ever registered;
        totals are recomputed from the stored lines, freight and taxes.

        Raises:
            ValidationError: If a lifecycle field is edited, products are
                invalid, or deliveries already refer to the lines
            NotFoundError: If the purchase does not exist
            InvalidStatusError: Unless pending or approved
        """
        changes = dict(changes)
        if 'products' in changes:
            changes['products'] = purchase_lines(changes['products'])

        def derive(entity: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
            if 'products' in changes and entity.get('deliveries'):
                raise ValidationError(
                    "Products cannot change once deliveries exist", field='products',
                )
            products = changes.get('products', entity.get('products') or [])
            freight = to_decimal(changes.get('freight', entity.get('freight')))
            taxes = to_decimal(changes.get('taxes', entity.get('taxes')))
            return {
                'freight': freight,
                'taxes': taxes,
                **order_totals(products, freight, taxes),
                **purchase_totals(products, entity.get('deliveries') or ()),
            }

        self.executor.update_entity(
            DocumentRef(PURCHASES, purchase_id), changes,
            principal=principal,
            allowed={PurchaseStatus.PENDING, PurchaseStatus.APPROVED},
            protected=PROTECTED_FIELDS,
            derive=derive,
        )

    def delete(self, purchase_id: str, *, principal: Principal) -> None:
        """
        Delete a purchase that never delivered anything.

        Raises:
            NotFoundError: If the purchase does not exist
            InvalidStatusError: Unless pending or cancelled
        """
        self.executor.delete_entity(
            DocumentRef(PURCHASES, purchase_id),
            principal=principal,
            allowed={PurchaseStatus.PENDING, PurchaseStatus.CANCELLED},
        )

    def create_delivery(self, purchase_id: str, data: Mapping[str, Any], *,
                        principal: Principal) -> str:
        """
        Register a delivery in transit.

        data['products'] is [{product_id, quantity}] where product_id is a
        purchase line id. No line may exceed its pending quantity.

        Returns:
            The delivery id

        Raises:
            ValidationError: If lines are malformed, unknown or exceed pending
            NotFoundError: If the purchase does not exist
            InvalidStatusError: If the purchase is not approved
        """
        lines = parse_stock_lines(data.get('products'))
        if not lines:
            raise ValidationError("At least one product is required", field='products')

        ref = DocumentRef(PURCHASES, purchase_id)
        delivery_id = _new_id()

        def apply(tx: Transaction) -> str:
            entity = load_entity(tx, ref, allowed=DELIVERABLE)
            products = entity.get('products') or []
            deliveries = list(entity.get('deliveries') or [])

            pending = pending_by_line(products, deliveries)
            requested: dict[str, Decimal] = {}
            for index, line in enumerate(lines):
                if line.product_id not in pending:
                    raise ValidationError(
                        f"Item {index}: '{line.product_id}' is not a line of this purchase",
                        index=index, field='product_id',
                    )
                requested[line.product_id] = requested.get(line.product_id, Decimal('0')) + line.quantity
                if requested[line.product_id] > pending[line.product_id]:
                    raise ValidationError(
                        f"Item {index}: only {pending[line.product_id]} pending",
                        index=index, field='quantity',
                    )

            now = timezone.now()
            deliveries.append({
                'id': delivery_id,
                'products': [line.as_dict() for line in lines],
                'warehouse_id': data.get('warehouse_id') or '',
                'warehouse_name': data.get('warehouse_name') or '',
                'freight': to_decimal(data.get('freight')),
                'delivery_date': data.get('delivery_date') or now,
                'status': DeliveryStatus.IN_TRANSIT.value,
                'notes': data.get('notes') or '',
                'created_by': principal.label,
                'created_at': now,
            })
            tx.update(ref, {
                'deliveries': deliveries,
                **purchase_totals(products, deliveries),
                'status': recompute_aggregate_status(
                    _ordered(products), deliveries, entity.get('status'),
                ),
                'updated_at': now,
            })
            return delivery_id

        self.store.transaction(apply)
        logger.info(
            "purchase.delivery.created",
            extra={"document_id": purchase_id, "delivery_id": delivery_id, "user": principal.uid},
        )
        return delivery_id

    def complete_delivery(self, purchase_id: str, delivery_id: str, *,
                          principal: Principal) -> list[str]:
        """
        Receive a delivery: one new product per line, then recompute.

        Products are always new records, lot COMP-<purchase number>-<delivery id>,
        carrying the line's unit cost and the supplier.

        Returns:
            Ids of the created products

        Raises:
            NotFoundError: If the purchase or delivery does not exist
            InvalidStatusError: If the delivery is not in transit
        """
        now = timezone.now()

        def produced(entity: dict[str, Any]) -> list[dict[str, Any]]:
            delivery = _find_delivery(entity, delivery_id)
            _require_in_transit(delivery)
            number = entity.get('purchase_number', '')
            supplier = entity.get('supplier') or ''
            lines = {str(p.get('id')): p for p in entity.get('products') or ()}
            items = []
            for item in delivery.get('products') or ():
                line = lines.get(str(item.get('product_id')))
                if line is None:
                    raise NotFoundError('purchase_lines', str(item.get('product_id')))
                items.append({
                    'name': line.get('name'),
                    'quantity': item.get('quantity'),
                    'unit': line.get('unit'),
                    'category': line.get('category'),
                    'warehouse_id': delivery.get('warehouse_id') or None,
                    'lot_number': f"COMP-{number}-{delivery_id}",
                    'cost': line.get('unit_cost', 0),
                    'supplier_name': supplier,
                    'tags': ['purchase', _slug(supplier)] if supplier else ['purchase'],
                    'notes': f"Purchase {number}, delivery {delivery_id}",
                })
            return items

        def transition(entity: dict[str, Any]) -> dict[str, Any]:
            products = entity.get('products') or []
            deliveries = [
                {**d, 'status': DeliveryStatus.COMPLETED.value,
                 'completed_by': principal.label, 'completed_at': now}
                if str(d.get('id')) == delivery_id else d
                for d in entity.get('deliveries') or ()
            ]
            return {
                'deliveries': deliveries,
                **purchase_totals(products, deliveries),
                'status': recompute_aggregate_status(
                    _ordered(products), deliveries, entity.get('status'),
                ),
            }

        product_ids = self.executor.complete_with_production(
            DocumentRef(PURCHASES, purchase_id),
            produced,
            principal=principal,
            transition=transition,
        )
        logger.info(
            "purchase.delivery.completed",
            extra={
                "document_id": purchase_id,
                "delivery_id": delivery_id,
                "product_ids": product_ids,
                "user": principal.uid,
            },
        )
        return product_ids

    def cancel_delivery(self, purchase_id: str, delivery_id: str, *,
                        principal: Principal, reason: str = '') -> None:
        """
        Cancel a delivery in transit. Stock is untouched.

        With nothing delivered or in transit left, the purchase falls back
        to approved.

        Raises:
            NotFoundError: If the purchase or delivery does not exist
            InvalidStatusError: If the delivery is not in transit
        """
        ref = DocumentRef(PURCHASES, purchase_id)

        def apply(tx: Transaction) -> None:
            entity = load_entity(tx, ref)
            _require_in_transit(_find_delivery(entity, delivery_id))
            now = timezone.now()
            products = entity.get('products') or []
            deliveries = [
                {**d, 'status': DeliveryStatus.CANCELLED.value,
                 'cancelled_at': now, 'cancellation_reason': reason}
                if str(d.get('id')) == delivery_id else d
                for d in entity.get('deliveries') or ()
            ]
            tx.update(ref, {
                'deliveries': deliveries,
                **purchase_totals(products, deliveries),
                'status': recompute_aggregate_status(
                    _ordered(products), deliveries, entity.get('status'),
                    fallback=PurchaseStatus.APPROVED.value,
                ),
                'updated_at': now,
            })

        self.store.transaction(apply)
        logger.info(
            "purchase.delivery.cancelled",
            extra={"document_id": purchase_id, "delivery_id": delivery_id, "user": principal.uid},
        )
