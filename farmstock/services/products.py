"""
Products — inventory records edited directly by users.

Stock normally moves through the workflows (fumigations, harvests,
transfers, purchases, expenses). These operations cover the catalogue
itself: registering a product, editing it, counting corrections and
removal. Stock never goes below zero here.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from django.utils import timezone

from farmstock.adapters import get_document_store
from farmstock.conf import farmstock_settings
from farmstock.documents.base import Principal, StockLine, to_decimal
from farmstock.documents.product import PRODUCTS, Product
from farmstock.exceptions import NotFoundError, ValidationError
from farmstock.executor import InventoryExecutor, consume_stock, restock
from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction

logger = logging.getLogger('farmstock')

PROTECTED_FIELDS = frozenset({'created_by', 'created_at'})


def _amount(data: Mapping[str, Any], key: str, default: Decimal | None = Decimal('0')) -> Decimal | None:
    """Read a non-negative number from request data."""
    value = data.get(key)
    if value is None or value == '':
        return default
    amount = to_decimal(value, None)
    if amount is None:
        raise ValidationError(f"'{key}' must be a number", field=key)
    if amount < 0:
        raise ValidationError(f"'{key}' must not be negative", field=key)
    return amount


def clean_product(data: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """
    Validate and coerce product fields.

    With partial only the keys present are checked (edits).

    Raises:
        ValidationError: If name is empty or a quantity is invalid
    """
    cleaned = dict(data)
    if not partial or 'name' in cleaned:
        name = str(cleaned.get('name') or '').strip()
        if not name:
            raise ValidationError("'name' is required", field='name')
        cleaned['name'] = name
    for key in ('stock', 'min_stock'):
        if not partial or key in cleaned:
            cleaned[key] = _amount(cleaned, key)
    if 'cost' in cleaned:
        cleaned['cost'] = _amount(cleaned, 'cost', default=None)
    if 'tags' in cleaned:
        cleaned['tags'] = list(cleaned['tags'] or ())
    return cleaned


class ProductService:
    """Product catalogue: register, edit, adjust stock, delete."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)

    def get(self, product_id: str) -> Product:
        """
        Raises:
            NotFoundError: If the product does not exist
        """
        snapshot = self.store.get(DocumentRef(PRODUCTS, product_id))
        if not snapshot.exists:
            raise NotFoundError(PRODUCTS, product_id)
        return Product.from_snapshot(snapshot)

    def create(self, data: Mapping[str, Any], *, principal: Principal) -> str:
        """
        Register a product.

        unit and category fall back to FARMSTOCK defaults; storage_level is
        'warehouse' when a warehouse is given, else 'field'.

        Raises:
            ValidationError: If name is missing or stock/min_stock/cost invalid
        """
        data = clean_product(data)
        ref = DocumentRef.new(PRODUCTS)
        now = timezone.now()
        self.store.set(ref, {
            **data,
            'unit': data.get('unit') or farmstock_settings.DEFAULT_UNIT,
            'category': data.get('category') or farmstock_settings.DEFAULT_CATEGORY,
            'warehouse_id': data.get('warehouse_id') or None,
            'field_id': data.get('field_id') or None,
            'storage_level': data.get('storage_level') or (
                'warehouse' if data.get('warehouse_id') else 'field'
            ),
            'tags': data.get('tags', []),
            'created_by': principal.label,
            'created_at': now,
            'updated_at': now,
        })
        logger.info(
            "product.created",
            extra={"document_id": ref.id, "stock": str(data['stock']), "user": principal.uid},
        )
        return ref.id

    def update(self, product_id: str, changes: Mapping[str, Any], *,
               principal: Principal) -> None:
        """
        Edit product fields, stock included (a counted value, never negative).

        Raises:
            ValidationError: If a field is invalid or protected
            NotFoundError: If the product does not exist
        """
        self.executor.update_entity(
            DocumentRef(PRODUCTS, product_id),
            clean_product(changes, partial=True),
            principal=principal,
            protected=PROTECTED_FIELDS,
        )

    def adjust_stock(self, product_id: str, delta, *, principal: Principal,
                     reason: str = '') -> Decimal:
        """
        Add (delta > 0) or remove (delta < 0) stock, e.g. after a count.

        Returns:
            The new stock

        Raises:
            ValidationError: If delta is zero or not a number
            NotFoundError: If the product does not exist
            InsufficientStockError: If removing more than is in stock
        """
        delta = to_decimal(delta, None)
        if not delta:
            raise ValidationError("Adjustment must be a non-zero number", field='delta')

        ref = DocumentRef(PRODUCTS, product_id)
        line = StockLine(product_id=product_id, quantity=abs(delta))

        def apply(tx: Transaction) -> Decimal:
            if delta < 0:
                consume_stock(tx, [line])
            else:
                restock(tx, [line])
            tx.update(ref, {'updated_by': principal.label})
            return to_decimal(tx.get(ref).get('stock'))

        stock = self.store.transaction(apply)
        logger.info(
            "product.stock_adjusted",
            extra={
                "document_id": product_id,
                "delta": str(delta),
                "stock": str(stock),
                "reason": reason,
                "user": principal.uid,
            },
        )
        return stock

    def delete(self, product_id: str, *, principal: Principal) -> None:
        """
        Raises:
            NotFoundError: If the product does not exist
        """
        self.executor.delete_entity(DocumentRef(PRODUCTS, product_id), principal=principal)
