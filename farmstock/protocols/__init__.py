"""
Farmstock Protocols.

Defines interfaces for external system integration.
"""

from farmstock.protocols.store import (
    DocumentRef,
    DocumentStore,
    Snapshot,
    Transaction,
)

__all__ = [
    "DocumentRef",
    "DocumentStore",
    "Snapshot",
    "Transaction",
]
