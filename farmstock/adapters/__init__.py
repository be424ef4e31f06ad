"""
Farmstock Adapters.

Implementations of protocols for external systems.
"""

from farmstock.adapters.backend import get_document_store, reset_document_store
from farmstock.adapters.django_store import DjangoDocumentStore

__all__ = [
    "DjangoDocumentStore",
    "get_document_store",
    "reset_document_store",
]
