"""
Django Document Store — documents persisted as versioned Document rows.

Usage:
    from farmstock.adapters.django_store import DjangoDocumentStore

    store = DjangoDocumentStore()
    store.transaction(lambda tx: tx.update(ref, {"stock": Decimal("70")}))

Concurrency:
    - The callback runs outside any lock; reads record the row version
    - Writes are buffered and applied in one transaction.atomic() block
    - Every read version is re-checked at commit under a row lock;
      writes are conditional UPDATE/DELETE ... WHERE version = seen
    - A mismatch discards the attempt and re-runs the callback
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeVar

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from farmstock.conf import farmstock_settings
from farmstock.exceptions import ConcurrentModificationError, NotFoundError
from farmstock.models.document import Document
from farmstock.protocols.store import DocumentRef, Snapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteConflict(Exception):
    """A document changed between the transaction's read and its commit."""

    def __init__(self, ref: DocumentRef):
        self.ref = ref
        super().__init__(str(ref))


class DjangoTransaction:
    """
    One attempt of a store transaction.

    Tracks the version of every document read (None = read as missing)
    and the buffered state of every document written.
    """

    def __init__(self):
        self._seen: dict[DocumentRef, int | None] = {}
        self._state: dict[DocumentRef, dict[str, Any] | None] = {}
        self._dirty: dict[DocumentRef, None] = {}

    def _load(self, ref: DocumentRef) -> dict[str, Any] | None:
        if ref not in self._state:
            row = Document.objects.at(ref).values('data', 'version').first()
            self._seen[ref] = row['version'] if row else None
            self._state[ref] = row['data'] if row else None
        return self._state[ref]

    def get(self, ref: DocumentRef) -> Snapshot:
        data = self._load(ref)
        return Snapshot(ref, copy.deepcopy(data) if data is not None else None)

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self._state[ref] = copy.deepcopy(dict(data))
        self._dirty[ref] = None

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        current = self._load(ref)
        if current is None:
            raise NotFoundError(ref.collection, ref.id)
        merged = dict(current)
        merged.update(copy.deepcopy(dict(data)))
        self._state[ref] = merged
        self._dirty[ref] = None

    def delete(self, ref: DocumentRef) -> None:
        self._state[ref] = None
        self._dirty[ref] = None

    def commit(self) -> None:
        """
        Validate reads and apply writes. Must run inside transaction.atomic().

        Rows that were only read are locked while their version is checked,
        so they cannot change before the writes land.

        Raises:
            WriteConflict: If any document changed since it was read
        """
        for ref, version in self._seen.items():
            if ref in self._dirty:
                continue
            current = (
                Document.objects.at(ref)
                .select_for_update()
                .values_list('version', flat=True)
                .first()
            )
            if current != version:
                raise WriteConflict(ref)

        now = timezone.now()
        for ref in self._dirty:
            if self._state[ref] is None:
                self._delete(ref)
            else:
                self._write(ref, now)

    def _delete(self, ref: DocumentRef) -> None:
        if ref not in self._seen:
            Document.objects.at(ref).delete()
            return

        version = self._seen[ref]
        if version is None:
            # Read as missing: someone creating it meanwhile is a conflict
            if Document.objects.at(ref).exists():
                raise WriteConflict(ref)
            return

        deleted, _ = Document.objects.at(ref).filter(version=version).delete()
        if not deleted:
            raise WriteConflict(ref)

    def _write(self, ref: DocumentRef, now) -> None:
        data = self._state[ref]

        if ref not in self._seen:
            # Blind set: replace whatever is there
            updated = Document.objects.at(ref).update(
                data=data, version=F('version') + 1, updated_at=now,
            )
            if not updated:
                Document.objects.create(collection=ref.collection, key=ref.id, data=data)
            return

        version = self._seen[ref]
        if version is None:
            # Read as missing: IntegrityError if someone created it meanwhile
            Document.objects.create(collection=ref.collection, key=ref.id, data=data)
            return

        updated = Document.objects.at(ref).filter(version=version).update(
            data=data, version=version + 1, updated_at=now,
        )
        if not updated:
            raise WriteConflict(ref)


class DjangoDocumentStore:
    """
    DocumentStore backed by the Document model.

    Implements the ``DocumentStore`` protocol. Stateless; safe to share.
    """

    def __init__(self, max_attempts: int | None = None):
        self.max_attempts = max_attempts

    def transaction(self, callback: Callable[[DjangoTransaction], T]) -> T:
        """
        Run callback with optimistic concurrency.

        Business exceptions raised by the callback propagate on the first
        attempt; only write conflicts are retried.

        Raises:
            ConcurrentModificationError: If every attempt conflicted
        """
        attempts = self.max_attempts or farmstock_settings.MAX_TRANSACTION_ATTEMPTS

        for attempt in range(1, attempts + 1):
            tx = DjangoTransaction()
            result = callback(tx)
            try:
                with transaction.atomic():
                    tx.commit()
            except WriteConflict as e:
                logger.info(
                    "store.transaction.conflict",
                    extra={"attempt": attempt, "ref": str(e.ref)},
                )
                continue
            except IntegrityError:
                logger.info(
                    "store.transaction.conflict",
                    extra={"attempt": attempt, "ref": "insert"},
                )
                continue
            return result

        logger.warning(
            "store.transaction.exhausted",
            extra={"attempts": attempts},
        )
        raise ConcurrentModificationError(attempts=attempts)

    def get(self, ref: DocumentRef) -> Snapshot:
        row = Document.objects.at(ref).values('data').first()
        return Snapshot(ref, row['data'] if row else None)

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.transaction(lambda tx: tx.set(ref, data))

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        self.transaction(lambda tx: tx.update(ref, data))

    def delete(self, ref: DocumentRef) -> None:
        self.transaction(lambda tx: tx.delete(ref))

    def stream(self, collection: str) -> Iterator[Snapshot]:
        rows = Document.objects.in_collection(collection).order_by('key').values('key', 'data')
        for row in rows.iterator():
            yield Snapshot(DocumentRef(collection, row['key']), row['data'])
