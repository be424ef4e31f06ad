"""
Document numbering — yearly sequences held in counter documents.

Each prefix/year pair has one document in the ``counters`` collection.
Allocation is its own store transaction, so two concurrent requests never
get the same number. A number allocated for a request that later fails
is not reused.
"""

from __future__ import annotations

import logging

from django.utils import timezone

from farmstock.protocols.store import DocumentRef, DocumentStore, Transaction

logger = logging.getLogger('farmstock')

COUNTERS = 'counters'


def allocate(store: DocumentStore, name: str, year: int | None = None) -> tuple[int, int]:
    """
    Reserve the next sequence value for ``name`` in ``year``.

    Returns (year, value).
    """
    year = year or timezone.now().year
    ref = DocumentRef(COUNTERS, f"{name}-{year}")

    def apply(tx: Transaction) -> int:
        snapshot = tx.get(ref)
        value = int(snapshot.get('value', 0)) + 1
        tx.set(ref, {'name': name, 'year': year, 'value': value})
        return value

    value = store.transaction(apply)
    logger.debug("numbering.allocate", extra={"counter": ref.id, "value": value})
    return year, value


def fumigation_number(store: DocumentStore) -> str:
    """Order number ``YYYY-NNN``."""
    year, value = allocate(store, 'fumigation')
    return f"{year}-{value:03d}"


def transfer_number(store: DocumentStore) -> str:
    """``TRF-YYYY-NNNN``."""
    year, value = allocate(store, 'transfer')
    return f"TRF-{year}-{value:04d}"


def purchase_number(store: DocumentStore) -> str:
    """``COMP-YYYY-NNNN``."""
    year, value = allocate(store, 'purchase')
    return f"COMP-{year}-{value:04d}"


def expense_number(store: DocumentStore) -> str:
    """``GAST-YYYY-NNNN``."""
    year, value = allocate(store, 'expense')
    return f"GAST-{year}-{value:04d}"
