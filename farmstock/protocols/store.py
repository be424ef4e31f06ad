"""
Document Store Protocol — Interface for the backing document database.

Farmstock defines this protocol; the Django adapter (or any managed document
database client) implements it.

Transactions are optimistic: the callback reads and writes through a
Transaction, writes are applied only if nothing it read changed meanwhile,
and the store re-runs the callback when a conflict is detected.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

ID_LENGTH = 20


@dataclass(frozen=True)
class DocumentRef:
    """Address of a document: collection + id."""

    collection: str
    id: str

    @classmethod
    def new(cls, collection: str) -> DocumentRef:
        """Reference to a document that does not exist yet."""
        return cls(collection, uuid.uuid4().hex[:ID_LENGTH])

    def __str__(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time copy of a document. data=None means it does not exist."""

    ref: DocumentRef
    data: dict[str, Any] | None

    @property
    def id(self) -> str:
        return self.ref.id

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, key: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(key, default)


@runtime_checkable
class Transaction(Protocol):
    """
    Read/write handle passed to a transaction callback.

    Writes are buffered until the callback returns. Reads observe the
    transaction's own buffered writes.
    """

    def get(self, ref: DocumentRef) -> Snapshot:
        """Read a document (missing documents give an empty snapshot)."""
        ...

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        """Create or replace a document."""
        ...

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        """
        Merge top-level fields into an existing document.

        Raises:
            NotFoundError: If the document does not exist
        """
        ...

    def delete(self, ref: DocumentRef) -> None:
        """
        Remove a document. Deleting a missing document is a no-op.

        Applied only if the document is unchanged since it was read.
        """
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Protocol for document stores.

    Implementations should provide:
    - Optimistic transactions retried on write conflict
    - Single-document reads and writes
    - Collection scans for listing
    """

    def transaction(self, callback: Callable[[Transaction], T]) -> T:
        """
        Run callback atomically.

        The callback may run more than once; it must not have side effects
        outside the Transaction it receives. Exceptions raised by the
        callback propagate and nothing is written.

        Raises:
            ConcurrentModificationError: If conflicts persist through
                every attempt
        """
        ...

    def get(self, ref: DocumentRef) -> Snapshot:
        ...

    def set(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        ...

    def update(self, ref: DocumentRef, data: Mapping[str, Any]) -> None:
        ...

    def delete(self, ref: DocumentRef) -> None:
        ...

    def stream(self, collection: str) -> Iterator[Snapshot]:
        """Iterate over every document in a collection."""
        ...
