"""
Transfers — stock moving between warehouses.

    pending ──approve──► approved ──ship──► shipped ──receive──► completed
       │ └──reject──► rejected        │
       └──cancel──► cancelled ◄──cancel┘

Requesting a transfer checks the source stock without reserving it.
Shipping takes it out of the source products; receiving adds the
confirmed quantities back and moves those products to the target.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.conf import farmstock_settings
from farmstock.documents.base import Principal, line_items, parse_stock_lines, to_decimal
from farmstock.documents.transfer import TRANSFERS, Transfer, parse_transfer
from farmstock.exceptions import NotFoundError, ValidationError
from farmstock.executor import InventoryExecutor, check_stock, load_entity
from farmstock.models.enums import TransferStatus
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction
from farmstock.services.numbering import transfer_number

logger = logging.getLogger('farmstock')

# Received vs shipped differences below this are rounding noise
DISCREPANCY_THRESHOLD = Decimal('0.01')

PROTECTED_FIELDS = frozenset({
    'status', 'products', 'transfer_number', 'cost_per_unit',
    'requested_by', 'request_date', 'created_by', 'created_at',
    'approved_by', 'approved_date', 'shipped_by', 'shipped_date',
    'received_by', 'received_date', 'received_products',
})

# Statuses in which the transfer has not touched stock
DELETABLE = frozenset({
    TransferStatus.PENDING.value,
    TransferStatus.REJECTED.value,
    TransferStatus.CANCELLED.value,
})


@dataclass(frozen=True)
class ReceiptDiscrepancy:
    """A product received in a different quantity than shipped."""

    product_id: str
    shipped: Decimal
    received: Decimal

    @property
    def difference(self) -> Decimal:
        return self.received - self.shipped


def _totals(items: Iterable[Mapping[str, Any]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for item in items or ():
        product_id = item.get('product_id')
        totals[product_id] = totals.get(product_id, Decimal('0')) + to_decimal(item.get('quantity'))
    return totals


def received_items(items: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Normalize receipt lines: quantity_received wins over quantity."""
    normalized = []
    for item in items:
        quantity = item.get('quantity_received')
        if quantity is None:
            quantity = item.get('quantity')
        normalized.append({'product_id': item.get('product_id'), 'quantity': quantity})
    return normalized


def cost_per_unit(transfer_cost: Decimal, distance: Decimal) -> Decimal:
    if distance > 0 and transfer_cost > 0:
        return transfer_cost / distance
    return Decimal('0')


class TransferService:
    """Transfer lifecycle: request, edit, approve, reject, cancel, ship, receive, delete."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, transfer_id: str) -> Transfer:
        """
        Raises:
            NotFoundError: If the transfer does not exist
        """
        snapshot = self.store.get(DocumentRef(TRANSFERS, transfer_id))
        if not snapshot.exists:
            raise NotFoundError(TRANSFERS, transfer_id)
        return parse_transfer(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Request a transfer.

        Every product must currently have the requested quantity at the
        source; nothing is decremented until the transfer ships.

        Raises:
            ValidationError: If warehouses or products are invalid
            NotFoundError: If a product does not exist
            InsufficientStockError: For the first product exceeding stock
        """
        data = dict(data)
        source = data.get('source_warehouse_id')
        target = data.get('target_warehouse_id')
        if not source or not target:
            raise ValidationError("Source and target warehouses are required",
                                  field='source_warehouse_id' if not source else 'target_warehouse_id')
        if source == target:
            raise ValidationError("Source and target warehouses must differ",
                                  field='target_warehouse_id')

        lines = parse_stock_lines(data.get('products'))
        if not lines:
            raise ValidationError("At least one product is required", field='products')

        distance = to_decimal(data.get('distance'))
        transfer_cost = to_decimal(data.get('transfer_cost'))
        if not data.get('transfer_number'):
            data['transfer_number'] = transfer_number(self.store)

        ref = DocumentRef.new(TRANSFERS)

        def apply(tx: Transaction) -> None:
            check_stock(tx, lines)
            now = timezone.now()
            tx.set(ref, {
                **data,
                'products': list(line_items(data['products'])),
                'distance': distance,
                'distance_unit': data.get('distance_unit') or 'km',
                'transfer_cost': transfer_cost,
                'cost_per_unit': cost_per_unit(transfer_cost, distance),
                'status': TransferStatus.PENDING.value,
                'requested_by': data.get('requested_by') or principal.label,
                'request_date': data.get('request_date') or now,
                'created_by': principal.label,
                'created_at': now,
                'updated_at': now,
            })

        self.store.transaction(apply)
        logger.info(
            "transfer.requested",
            extra={
                "document_id": ref.id,
                "transfer_number": data['transfer_number'],
                "source": source,
                "target": target,
                "user": principal.uid,
            },
        )
        return ref.id

    def _transition(self, transfer_id: str, allowed: set[str],
                    changes: Mapping[str, Any], event: str, principal: Principal) -> None:
        ref = DocumentRef(TRANSFERS, transfer_id)

        def apply(tx: Transaction) -> None:
            load_entity(tx, ref, allowed=allowed)
            tx.update(ref, {**changes, 'updated_at': timezone.now()})

        self.store.transaction(apply)
        logger.info(event, extra={"document_id": transfer_id, "user": principal.uid})

    def approve(self, transfer_id: str, *, principal: Principal) -> None:
        now = timezone.now()
        self._transition(transfer_id, {TransferStatus.PENDING}, {
            'status': TransferStatus.APPROVED.value,
            'approved_by': principal.label,
            'approved_date': now,
        }, "transfer.approved", principal)

    def reject(self, transfer_id: str, *, principal: Principal, reason: str = '') -> None:
        now = timezone.now()
        self._transition(transfer_id, {TransferStatus.PENDING}, {
            'status': TransferStatus.REJECTED.value,
            'rejected_by': principal.label,
            'rejected_date': now,
            'rejection_reason': reason,
        }, "transfer.rejected", principal)

    def cancel(self, transfer_id: str, *, principal: Principal, reason: str = '') -> None:
        """Cancel before shipping. Stock is untouched."""
        now = timezone.now()
        self._transition(transfer_id, {TransferStatus.PENDING, TransferStatus.APPROVED}, {
            'status': TransferStatus.CANCELLED.value,
            'cancelled_by': principal.label,
            'cancelled_at': now,
            'cancellation_reason': reason,
        }, "transfer.cancelled", principal)

    def update(self, transfer_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit a pending transfer's details.

        Products, status and lifecycle fields are not editable; changing
        distance or transfer_cost recomputes cost_per_unit.

        Raises:
            ValidationError: If a protected field is edited or the
                warehouses end up equal
            NotFoundError: If the transfer does not exist
            InvalidStatusError: If the transfer is no longer pending
        """
        def derive(entity: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
            merged = {**entity, **changes}
            if not merged.get('source_warehouse_id') or not merged.get('target_warehouse_id'):
                raise ValidationError("Source and target warehouses are required",
                                      field='source_warehouse_id')
            if merged['source_warehouse_id'] == merged['target_warehouse_id']:
                raise ValidationError("Source and target warehouses must differ",
                                      field='target_warehouse_id')
            distance = to_decimal(merged.get('distance'))
            transfer_cost = to_decimal(merged.get('transfer_cost'))
            return {
                'distance': distance,
                'transfer_cost': transfer_cost,
                'cost_per_unit': cost_per_unit(transfer_cost, distance),
            }

        self.executor.update_entity(
            DocumentRef(TRANSFERS, transfer_id), changes,
            principal=principal,
            allowed={TransferStatus.PENDING},
            protected=PROTECTED_FIELDS,
            derive=derive,
        )

    def delete(self, transfer_id: str, *, principal: Principal) -> None:
        """
        Delete a transfer that never moved stock.

        Raises:
            NotFoundError: If the transfer does not exist
            InvalidStatusError: Unless pending, rejected or cancelled
        """
        self.executor.delete_entity(
            DocumentRef(TRANSFERS, transfer_id),
            principal=principal,
            allowed=DELETABLE,
        )

    def ship(self, transfer_id: str, *, principal: Principal) -> None:
        """
        Take every product out of the source. All or nothing.

        Raises:
            NotFoundError: If the transfer or a product does not exist
            InvalidStatusError: If the transfer is not approved
            InsufficientStockError: For the first product exceeding stock
        """
        self.executor.ship_with_consumption(
            DocumentRef(TRANSFERS, transfer_id),
            lambda entity: entity.get('products') or (),
            principal=principal,
        )
        logger.info("transfer.shipped", extra={"document_id": transfer_id, "user": principal.uid})

    def receive(self, transfer_id: str, *, principal: Principal,
                received: Iterable[Mapping[str, Any]] | None = None) -> list[ReceiptDiscrepancy]:
        """
        Add the received quantities at the target and complete.

        Args:
            received: [{product_id, quantity_received}] as counted at the
                target; defaults to the shipped quantities

        Returns:
            Products whose received quantity differs from the shipped one

        Raises:
            ValidationError: If a receipt line is malformed or names a
                product that was not shipped
            NotFoundError: If the transfer or a product does not exist
            InvalidStatusError: If the transfer is not shipped
        """
        if received is not None:
            received = received_items(received)
            parse_stock_lines(received, allow_zero=True)
        shipped: dict[str, Decimal] = {}

        def lines(entity: dict[str, Any]) -> list[Mapping[str, Any]]:
            shipped.clear()
            shipped.update(_totals(entity.get('products')))
            if received is None:
                return list(entity.get('products') or ())
            for index, item in enumerate(received):
                if item['product_id'] not in shipped:
                    raise ValidationError(
                        f"Item {index}: '{item['product_id']}' was not shipped in this transfer",
                        index=index, field='product_id',
                    )
            return received

        confirmed = self.executor.receive_with_production(
            DocumentRef(TRANSFERS, transfer_id), lines, principal=principal,
        )

        counted = _totals(line.as_dict() for line in confirmed)
        discrepancies = []
        tolerance = farmstock_settings.RECEIVE_TOLERANCE
        for product_id in {**shipped, **counted}:
            sent = shipped.get(product_id, Decimal('0'))
            got = counted.get(product_id, Decimal('0'))
            if abs(got - sent) > DISCREPANCY_THRESHOLD:
                discrepancies.append(ReceiptDiscrepancy(product_id, sent, got))
            if got > sent * (1 + tolerance):
                logger.warning(
                    "transfer.receive.over_tolerance",
                    extra={
                        "document_id": transfer_id,
                        "product_id": product_id,
                        "shipped": str(sent),
                        "received": str(got),
                    },
                )

        logger.info(
            "transfer.received",
            extra={
                "document_id": transfer_id,
                "discrepancies": len(discrepancies),
                "user": principal.uid,
            },
        )
        return discrepancies
