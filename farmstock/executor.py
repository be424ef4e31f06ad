"""
Inventory transaction executor — stock-affecting state transitions.

Each public method of InventoryExecutor is one store transaction that
touches N product documents and one lifecycle document. Either every
write lands or none does.

Consumption reads each product's stock, checks it against the requested
quantity in input order and writes the new balance. Production either
creates new product documents (harvests, purchase deliveries) or adds to
existing ones (transfer receipt).

Concurrency:
    - No in-process locks
    - The store re-runs the whole callback on a write conflict
    - Callbacks must only touch the Transaction they receive
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import Any

from django.utils import timezone

from farmstock.conf import farmstock_settings
from farmstock.documents.base import (
    Principal,
    ProducedLine,
    StockLine,
    parse_produced_lines,
    parse_stock_lines,
    to_decimal,
)
from farmstock.documents.product import PRODUCTS
from farmstock.exceptions import (
    InsufficientStockError,
    InvalidStatusError,
    NotFoundError,
    ValidationError,
)
from farmstock.models.enums import (
    TERMINAL_STATUSES,
    DeliveryStatus,
    FieldWorkStatus,
    PurchaseStatus,
    TransferStatus,
)
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction

logger = logging.getLogger('farmstock')

# Line items, or a function of the entity data read inside the transaction
LineSource = Iterable[Any] | Callable[[dict[str, Any]], Iterable[Any]]


# ══════════════════════════════════════════════════════════════════════
# Transaction building blocks
# ══════════════════════════════════════════════════════════════════════


def load_entity(tx: Transaction, ref: DocumentRef,
                allowed: Iterable[str] | None = None) -> dict[str, Any]:
    """
    Read a lifecycle document and check its status.

    With ``allowed`` the status must be one of them; otherwise it must
    not be terminal.

    Raises:
        NotFoundError: If the document does not exist
        InvalidStatusError: If the status does not permit the transition
    """
    snapshot = tx.get(ref)
    if not snapshot.exists:
        raise NotFoundError(ref.collection, ref.id)

    status = snapshot.data.get('status', '')
    if allowed is not None:
        allowed = {str(s) for s in allowed}
        if status not in allowed:
            raise InvalidStatusError(current=status, expected=sorted(allowed), document_id=ref.id)
    elif status in TERMINAL_STATUSES:
        raise InvalidStatusError(current=status, expected='open', document_id=ref.id)
    return snapshot.data


def _project(tx: Transaction, lines: list[StockLine], *,
             allow_insufficient: bool) -> tuple[dict[str, Decimal], list[InsufficientStockError]]:
    """Running balance per product after consuming lines in order."""
    balances: dict[str, Decimal] = {}
    names: dict[str, str] = {}
    shortages: list[InsufficientStockError] = []

    for line in lines:
        if line.product_id not in balances:
            snapshot = tx.get(DocumentRef(PRODUCTS, line.product_id))
            if not snapshot.exists:
                raise NotFoundError(PRODUCTS, line.product_id)
            balances[line.product_id] = to_decimal(snapshot.get('stock'))
            names[line.product_id] = snapshot.get('name', '')

        available = balances[line.product_id]
        if line.quantity > available:
            error = InsufficientStockError(
                product_id=line.product_id,
                required=line.quantity,
                available=available,
                product_name=names[line.product_id],
            )
            if not allow_insufficient:
                raise error
            shortages.append(error)
        balances[line.product_id] = available - line.quantity

    return balances, shortages


def check_stock(tx: Transaction, lines: list[StockLine]) -> None:
    """
    Verify lines can be consumed, without writing.

    Raises:
        NotFoundError: If a product does not exist
        InsufficientStockError: For the first line that does not fit
    """
    _project(tx, lines, allow_insufficient=False)


def consume_stock(tx: Transaction, lines: list[StockLine], *,
                  allow_insufficient: bool = False) -> list[InsufficientStockError]:
    """
    Decrement stock for each line.

    With allow_insufficient the shortages are returned instead of raised
    and stock may go negative.
    """
    balances, shortages = _project(tx, lines, allow_insufficient=allow_insufficient)
    now = timezone.now()
    for product_id, stock in balances.items():
        tx.update(DocumentRef(PRODUCTS, product_id), {'stock': stock, 'updated_at': now})
    return shortages


def restock(tx: Transaction, lines: list[StockLine], *,
            warehouse_id: str | None = None) -> None:
    """
    Add quantities back to existing products.

    When warehouse_id is given the products are moved there.

    Raises:
        NotFoundError: If a product does not exist
    """
    totals: dict[str, Decimal] = {}
    for line in lines:
        if line.product_id not in totals:
            snapshot = tx.get(DocumentRef(PRODUCTS, line.product_id))
            if not snapshot.exists:
                raise NotFoundError(PRODUCTS, line.product_id)
            totals[line.product_id] = to_decimal(snapshot.get('stock'))
        totals[line.product_id] += line.quantity

    now = timezone.now()
    for product_id, stock in totals.items():
        changes: dict[str, Any] = {'stock': stock, 'updated_at': now}
        if warehouse_id:
            changes['warehouse_id'] = warehouse_id
            changes['storage_level'] = 'warehouse'
        tx.update(DocumentRef(PRODUCTS, product_id), changes)


def product_data(line: ProducedLine, principal: Principal, now) -> dict[str, Any]:
    """Initial document of a product created from a produced line."""
    return {
        'name': line.name,
        'category': line.category,
        'unit': line.unit,
        'stock': line.quantity,
        'min_stock': Decimal('0'),
        'warehouse_id': line.warehouse_id,
        'field_id': line.field_id,
        'storage_level': 'warehouse' if line.warehouse_id else 'field',
        'lot_number': line.lot_number,
        'tags': list(line.tags),
        'notes': line.notes,
        'cost': line.cost,
        'supplier_name': line.supplier_name,
        'created_by': principal.label,
        'created_at': now,
        'updated_at': now,
    }


def create_products(tx: Transaction, lines: list[ProducedLine], *,
                    principal: Principal) -> list[str]:
    """Create one new product document per line; returns their ids."""
    now = timezone.now()
    product_ids = []
    for line in lines:
        ref = DocumentRef.new(PRODUCTS)
        tx.set(ref, product_data(line, principal, now))
        product_ids.append(ref.id)
    return product_ids


# ══════════════════════════════════════════════════════════════════════
# Aggregate status
# ══════════════════════════════════════════════════════════════════════


def delivery_quantity(delivery: Mapping[str, Any]) -> Decimal:
    return sum(
        (to_decimal(item.get('quantity')) for item in delivery.get('products') or ()),
        Decimal('0'),
    )


def recompute_aggregate_status(ordered: Decimal, deliveries: Iterable[Mapping[str, Any]],
                               current: str, *, fallback: str | None = None) -> str:
    """
    Derive a purchase status from its deliveries. No I/O.

    - completed: delivered quantity reaches the ordered one
    - partial_delivered: something delivered, or a delivery in transit
    - otherwise fallback if given, else the current status
    """
    ordered = to_decimal(ordered)
    delivered = Decimal('0')
    in_transit = False

    for delivery in deliveries:
        status = delivery.get('status')
        if status == DeliveryStatus.COMPLETED:
            delivered += delivery_quantity(delivery)
        elif status == DeliveryStatus.IN_TRANSIT:
            in_transit = True

    if ordered > 0 and delivered >= ordered:
        return PurchaseStatus.COMPLETED.value
    if delivered > 0 or in_transit:
        return PurchaseStatus.PARTIAL_DELIVERED.value
    return fallback or current


# ══════════════════════════════════════════════════════════════════════
# Executor
# ══════════════════════════════════════════════════════════════════════


def _resolve(source: LineSource, entity: dict[str, Any]) -> Iterable[Any]:
    return source(entity) if callable(source) else source


def _product_ids(lines) -> list[str]:
    return [getattr(line, 'product_id', None) or getattr(line, 'name', '') for line in lines]


class InventoryExecutor:
    """
    Stock-affecting lifecycle transitions over a DocumentStore.

    Usage:
        executor = InventoryExecutor(get_document_store())
        harvest_id = executor.create_with_consumption(
            HARVESTS, data, [{"product_id": seed_id, "quantity": 30}],
            principal=principal,
        )
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def create_with_consumption(self, collection: str,
                                data: Mapping[str, Any] | Callable[[dict[str, dict[str, Any]]], Mapping[str, Any]],
                                consumed: Iterable[Any], *, principal: Principal,
                                status: str | None = FieldWorkStatus.PENDING) -> str:
        """
        Consume stock and create the entity that consumed it.

        ``data`` may be a function of the consumed products (id -> product
        data, as read in the transaction) to copy product fields onto the
        entity. With status=None no status field is written.

        Raises:
            ValidationError: If a line is malformed (before any I/O)
            NotFoundError: If a product does not exist
            InsufficientStockError: For the first line exceeding stock
        """
        lines = parse_stock_lines(consumed)
        ref = DocumentRef.new(collection)

        def apply(tx: Transaction) -> str:
            consume_stock(tx, lines)
            if callable(data):
                products = {
                    line.product_id: tx.get(DocumentRef(PRODUCTS, line.product_id)).data
                    for line in lines
                }
                fields = dict(data(products))
            else:
                fields = dict(data)
            if status is not None:
                fields['status'] = str(status)
            now = timezone.now()
            tx.set(ref, {
                **fields,
                'created_by': principal.label,
                'created_by_id': principal.uid,
                'created_at': now,
                'updated_at': now,
            })
            return ref.id

        entity_id = self.store.transaction(apply)
        logger.info(
            "inventory.create_with_consumption",
            extra={
                "collection": collection,
                "document_id": entity_id,
                "products": _product_ids(lines),
                "user": principal.uid,
            },
        )
        return entity_id

    def complete_with_consumption(self, ref: DocumentRef, consumed: LineSource, *,
                                  principal: Principal,
                                  fields: Mapping[str, Any] | None = None,
                                  allow_insufficient: bool = False,
                                  quantity_key: str = 'quantity') -> list[InsufficientStockError]:
        """
        Consume stock and mark the entity completed.

        Returns the shortages accepted under allow_insufficient (also
        stored on the entity as stock_shortages).

        Raises:
            NotFoundError: If the entity or a product does not exist
            InvalidStatusError: If the entity is already terminal
            InsufficientStockError: Unless allow_insufficient
        """
        static = None if callable(consumed) else parse_stock_lines(consumed, quantity_key=quantity_key)

        def apply(tx: Transaction) -> list[InsufficientStockError]:
            entity = load_entity(tx, ref)
            lines = static if static is not None else parse_stock_lines(
                _resolve(consumed, entity), quantity_key=quantity_key,
            )
            shortages = consume_stock(tx, lines, allow_insufficient=allow_insufficient)
            now = timezone.now()
            tx.update(ref, {
                **(fields or {}),
                'status': FieldWorkStatus.COMPLETED.value,
                'completed_by': principal.label,
                'completed_at': now,
                'updated_at': now,
                'stock_shortages': [s.as_dict()['data'] for s in shortages],
            })
            return shortages

        shortages = self.store.transaction(apply)
        if shortages:
            logger.warning(
                "inventory.consume.override",
                extra={
                    "document": str(ref),
                    "shortages": [s.product_id for s in shortages],
                    "user": principal.uid,
                },
            )
        logger.info(
            "inventory.complete_with_consumption",
            extra={"document": str(ref), "user": principal.uid},
        )
        return shortages

    def complete_with_production(self, ref: DocumentRef, produced: LineSource, *,
                                 principal: Principal,
                                 fields: Mapping[str, Any] | None = None,
                                 transition: Callable[[dict[str, Any]], Mapping[str, Any]] | None = None,
                                 defaults: Mapping[str, Any] | None = None) -> list[str]:
        """
        Create new product documents and complete the entity.

        Every produced line becomes a brand-new product; nothing is merged
        into existing records. ``transition`` replaces the default
        "status = completed" change with fields computed from the entity.

        Returns the ids of the created products.

        Raises:
            NotFoundError: If the entity does not exist
            InvalidStatusError: If the entity is already terminal
        """
        line_defaults = {
            'unit': farmstock_settings.DEFAULT_UNIT,
            'category': farmstock_settings.DEFAULT_CATEGORY,
            **(defaults or {}),
        }
        static = None if callable(produced) else parse_produced_lines(produced, **line_defaults)

        def apply(tx: Transaction) -> list[str]:
            entity = load_entity(tx, ref)
            lines = static if static is not None else parse_produced_lines(
                _resolve(produced, entity), **line_defaults,
            )
            product_ids = create_products(tx, lines, principal=principal)
            now = timezone.now()
            if transition is not None:
                changes = dict(transition(entity))
            else:
                changes = {
                    **(fields or {}),
                    'status': FieldWorkStatus.COMPLETED.value,
                    'completed_by': principal.label,
                    'completed_at': now,
                }
            changes['updated_at'] = now
            tx.update(ref, changes)
            return product_ids

        product_ids = self.store.transaction(apply)
        logger.info(
            "inventory.complete_with_production",
            extra={"document": str(ref), "product_ids": product_ids, "user": principal.uid},
        )
        return product_ids

    def ship_with_consumption(self, ref: DocumentRef, consumed: LineSource, *,
                              principal: Principal) -> None:
        """
        Take stock out of the source and mark the entity shipped.

        Raises:
            NotFoundError: If the entity or a product does not exist
            InvalidStatusError: If the entity is not approved
            InsufficientStockError: For the first line exceeding stock
        """
        static = None if callable(consumed) else parse_stock_lines(consumed)

        def apply(tx: Transaction) -> None:
            entity = load_entity(tx, ref, allowed={TransferStatus.APPROVED})
            lines = static if static is not None else parse_stock_lines(_resolve(consumed, entity))
            consume_stock(tx, lines)
            now = timezone.now()
            tx.update(ref, {
                'status': TransferStatus.SHIPPED.value,
                'shipped_by': principal.label,
                'shipped_date': now,
                'updated_at': now,
            })

        self.store.transaction(apply)
        logger.info(
            "inventory.ship_with_consumption",
            extra={"document": str(ref), "user": principal.uid},
        )

    def receive_with_production(self, ref: DocumentRef, received: LineSource, *,
                                principal: Principal,
                                destination_key: str = 'target_warehouse_id') -> list[StockLine]:
        """
        Add received quantities to the existing products and complete.

        Quantities are the ones confirmed at the destination and may differ
        from what was shipped; zero is allowed. Each product is reassigned
        to the entity's destination warehouse.

        Raises:
            NotFoundError: If the entity or a product does not exist
            InvalidStatusError: If the entity is not shipped
        """
        static = None if callable(received) else parse_stock_lines(received, allow_zero=True)

        def apply(tx: Transaction) -> list[StockLine]:
            entity = load_entity(tx, ref, allowed={TransferStatus.SHIPPED})
            lines = static if static is not None else parse_stock_lines(
                _resolve(received, entity), allow_zero=True,
            )
            restock(tx, lines, warehouse_id=entity.get(destination_key))
            now = timezone.now()
            tx.update(ref, {
                'status': TransferStatus.COMPLETED.value,
                'received_by': principal.label,
                'received_date': now,
                'received_products': [line.as_dict() for line in lines],
                'updated_at': now,
            })
            return lines

        lines = self.store.transaction(apply)
        logger.info(
            "inventory.receive_with_production",
            extra={"document": str(ref), "products": _product_ids(lines), "user": principal.uid},
        )
        return lines

    def update_entity(self, ref: DocumentRef, changes: Mapping[str, Any], *,
                      principal: Principal,
                      allowed: Iterable[str] | None = None,
                      protected: Iterable[str] = (),
                      derive: Callable[[dict[str, Any], dict[str, Any]], Mapping[str, Any]] | None = None,
                      ) -> None:
        """
        Edit fields of an entity without any stock effect.

        ``derive`` receives the stored entity and the requested changes and
        returns extra fields to write (recomputed totals, for instance); it
        may raise ValidationError to refuse the edit.

        Raises:
            ValidationError: If a protected field is in changes
            NotFoundError: If the entity does not exist
            InvalidStatusError: If the status does not allow edits
        """
        changes = dict(changes)
        blocked = sorted(set(changes) & set(protected))
        if blocked:
            raise ValidationError(
                f"Cannot edit {', '.join(blocked)}", field=blocked[0],
            )

        def apply(tx: Transaction) -> None:
            entity = load_entity(tx, ref, allowed=allowed)
            extra = dict(derive(entity, changes)) if derive is not None else {}
            tx.update(ref, {
                **changes,
                **extra,
                'updated_by': principal.label,
                'updated_at': timezone.now(),
            })

        self.store.transaction(apply)
        logger.info(
            "inventory.update",
            extra={"document": str(ref), "fields": sorted(changes), "user": principal.uid},
        )

    def delete_entity(self, ref: DocumentRef, *, principal: Principal,
                      allowed: Iterable[str] | None = None,
                      restocked: LineSource | None = None) -> list[StockLine]:
        """
        Delete an entity, first returning ``restocked`` lines to stock.

        Only statuses in ``allowed`` may be deleted. Lines come from the
        entity read in the same transaction, so stock it consumed is never
        left unaccounted for.

        Returns the lines put back into stock.

        Raises:
            NotFoundError: If the entity or a restocked product does not exist
            InvalidStatusError: If the status does not allow deletion
        """
        def apply(tx: Transaction) -> list[StockLine]:
            entity = load_entity(tx, ref, allowed=allowed)
            lines = []
            if restocked is not None:
                lines = parse_stock_lines(_resolve(restocked, entity))
                restock(tx, lines)
            tx.delete(ref)
            return lines

        lines = self.store.transaction(apply)
        logger.info(
            "inventory.delete",
            extra={"document": str(ref), "restocked": _product_ids(lines), "user": principal.uid},
        )
        return lines

    def shortages(self, consumed: Iterable[Any], *,
                  quantity_key: str = 'quantity') -> list[InsufficientStockError]:
        """
        Shortages a consumption would hit right now. Writes nothing.

        Raises:
            NotFoundError: If a product does not exist
        """
        lines = parse_stock_lines(consumed, quantity_key=quantity_key)

        def apply(tx: Transaction) -> list[InsufficientStockError]:
            return _project(tx, lines, allow_insufficient=True)[1]

        return self.store.transaction(apply)
