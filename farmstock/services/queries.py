"""
Inventory queries — read-only listings.

Each listing is one load cycle: stream the collection, filter in memory,
order newest first and return typed documents. Nothing is cached between
calls.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any

from farmstock.adapters import get_document_store
from farmstock.documents.base import to_datetime
from farmstock.documents.expense import EXPENSES, Expense, parse_expense
from farmstock.documents.fumigation import FUMIGATIONS, Fumigation, parse_fumigation
from farmstock.documents.harvest import HARVESTS, Harvest, parse_harvest
from farmstock.documents.product import PRODUCTS, Product
from farmstock.documents.purchase import PURCHASES, Purchase
from farmstock.documents.transfer import TRANSFERS, Transfer, parse_transfer
from farmstock.protocols.store import DocumentStore, Snapshot

Bound = date | datetime | None


def _in_range(value: Any, start: Bound, end: Bound) -> bool:
    """Documents without the date never match a range."""
    moment = to_datetime(value)
    if moment is None:
        return False
    for bound, inside in ((start, lambda v, b: v >= b), (end, lambda v, b: v <= b)):
        if bound is None:
            continue
        if isinstance(bound, datetime):
            if not inside(moment, bound):
                return False
        elif not inside(moment.date(), bound):
            return False
    return True


def _contains(term: str, *values: Any) -> bool:
    term = term.lower()
    return any(value and term in str(value).lower() for value in values)


def _newest_first(snapshots: list[Snapshot], date_key: str) -> list[Snapshot]:
    def key(snapshot: Snapshot):
        moment = to_datetime(snapshot.get(date_key)) or to_datetime(snapshot.get('created_at'))
        return (moment is not None, moment.timestamp() if moment else 0)

    return sorted(snapshots, key=key, reverse=True)


class InventoryQueries:
    """Read-only listings over the document store."""

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()

    def _load(self, collection: str, date_key: str,
              predicates: Iterable[Callable[[dict[str, Any]], bool]]) -> list[Snapshot]:
        predicates = list(predicates)
        matched = [
            snapshot for snapshot in self.store.stream(collection)
            if all(predicate(snapshot.data) for predicate in predicates)
        ]
        return _newest_first(matched, date_key)

    # ── field work ──

    def _field_work_filters(self, date_key: str, status, crop, field_id, start, end):
        if status:
            yield lambda d: d.get('status') == str(status)
        if crop:
            yield lambda d: d.get('crop') == crop
        if field_id:
            yield lambda d: d.get('field_id') == field_id
        if start or end:
            yield lambda d: _in_range(d.get(date_key), start, end)

    def list_fumigations(self, *, status: str | None = None, crop: str | None = None,
                         field_id: str | None = None, start: Bound = None, end: Bound = None,
                         search: str | None = None) -> list[Fumigation]:
        """
        Fumigations by application date, newest first.

        search matches establishment, applicator, crop and order number.
        """
        filters = list(self._field_work_filters('application_date', status, crop, field_id, start, end))
        if search:
            filters.append(lambda d: _contains(
                search, d.get('establishment'), d.get('applicator'), d.get('crop'),
                d.get('order_number'),
            ))
        return [parse_fumigation(s) for s in self._load(FUMIGATIONS, 'application_date', filters)]

    def list_harvests(self, *, status: str | None = None, crop: str | None = None,
                      field_id: str | None = None, start: Bound = None, end: Bound = None,
                      search: str | None = None) -> list[Harvest]:
        """
        Harvests by planned date, newest first.

        search matches crop, field name and harvest method.
        """
        filters = list(self._field_work_filters('planned_date', status, crop, field_id, start, end))
        if search:
            filters.append(lambda d: _contains(
                search, d.get('crop'), (d.get('field') or {}).get('name'), d.get('harvest_method'),
            ))
        return [parse_harvest(s) for s in self._load(HARVESTS, 'planned_date', filters)]

    # ── transfers & purchases ──

    def list_transfers(self, *, status: str | None = None,
                       source_warehouse_id: str | None = None,
                       target_warehouse_id: str | None = None,
                       start: Bound = None, end: Bound = None,
                       search: str | None = None) -> list[Transfer]:
        """
        Transfers by request date, newest first.

        search matches transfer number, requester and warehouse names.
        """
        filters = []
        if status:
            filters.append(lambda d: d.get('status') == str(status))
        if source_warehouse_id:
            filters.append(lambda d: d.get('source_warehouse_id') == source_warehouse_id)
        if target_warehouse_id:
            filters.append(lambda d: d.get('target_warehouse_id') == target_warehouse_id)
        if start or end:
            filters.append(lambda d: _in_range(d.get('request_date'), start, end))
        if search:
            filters.append(lambda d: _contains(
                search, d.get('transfer_number'), d.get('requested_by'),
                (d.get('source_warehouse') or {}).get('name'),
                (d.get('target_warehouse') or {}).get('name'),
            ))
        return [parse_transfer(s) for s in self._load(TRANSFERS, 'request_date', filters)]

    def list_purchases(self, *, status: str | None = None, supplier: str | None = None,
                       start: Bound = None, end: Bound = None,
                       search: str | None = None) -> list[Purchase]:
        """
        Purchases by purchase date, newest first.

        supplier is a case-insensitive substring; search matches purchase
        number, supplier and product names.
        """
        filters = []
        if status:
            filters.append(lambda d: d.get('status') == str(status))
        if supplier:
            filters.append(lambda d: _contains(supplier, d.get('supplier')))
        if start or end:
            filters.append(lambda d: _in_range(d.get('purchase_date'), start, end))
        if search:
            filters.append(lambda d: _contains(
                search, d.get('purchase_number'), d.get('supplier'),
                *(p.get('name') for p in d.get('products') or ()),
            ))
        return [Purchase.from_snapshot(s) for s in self._load(PURCHASES, 'purchase_date', filters)]

    # ── expenses ──

    def list_expenses(self, *, type: str | None = None, category: str | None = None,
                      start: Bound = None, end: Bound = None,
                      search: str | None = None) -> list[Expense]:
        """
        Expenses by date, newest first.

        category matches a misc expense's category or a sold product's;
        search matches expense number, product, description and supplier.
        """
        filters = []
        if type:
            filters.append(lambda d: d.get('type') == str(type))
        if category:
            filters.append(lambda d: category in (d.get('category'), d.get('product_category')))
        if start or end:
            filters.append(lambda d: _in_range(d.get('date'), start, end))
        if search:
            filters.append(lambda d: _contains(
                search, d.get('expense_number'), d.get('product_name'),
                d.get('description'), d.get('supplier'),
            ))
        return [parse_expense(s) for s in self._load(EXPENSES, 'date', filters)]

    # ── products ──

    def list_products(self, *, warehouse_id: str | None = None, category: str | None = None,
                      search: str | None = None) -> list[Product]:
        """Products ordered by name."""
        products = []
        for snapshot in self.store.stream(PRODUCTS):
            data = snapshot.data
            if warehouse_id and data.get('warehouse_id') != warehouse_id:
                continue
            if category and data.get('category') != category:
                continue
            if search and not _contains(search, data.get('name'), data.get('lot_number')):
                continue
            products.append(Product.from_snapshot(snapshot))
        return sorted(products, key=lambda p: (p.name.lower(), p.id))

    def low_stock_products(self, *, warehouse_id: str | None = None) -> list[Product]:
        """Products with a minimum set and stock at or below it."""
        return [p for p in self.list_products(warehouse_id=warehouse_id) if p.is_low]
