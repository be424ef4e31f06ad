"""
Farmstock store backend loader.

This module loads the configured DocumentStore from settings.

Usage:
    from farmstock.adapters import get_document_store

    store = get_document_store()
    snapshot = store.get(DocumentRef("products", "abc"))

Settings:
    FARMSTOCK = {
        "STORE_BACKEND": "farmstock.adapters.django_store.DjangoDocumentStore",
    }
"""

from __future__ import annotations

import logging
import threading

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from farmstock.conf import farmstock_settings
from farmstock.protocols.store import DocumentStore

logger = logging.getLogger(__name__)


# Cached store instance
_lock = threading.Lock()
_document_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """
    Return the configured document store.

    Raises:
        ImproperlyConfigured: If STORE_BACKEND is empty or import fails
    """
    global _document_store

    if _document_store is None:
        with _lock:
            if _document_store is None:  # double-checked
                backend_path = farmstock_settings.STORE_BACKEND

                if not backend_path:
                    raise ImproperlyConfigured(
                        "FARMSTOCK['STORE_BACKEND'] must be configured. "
                        "Example: 'farmstock.adapters.django_store.DjangoDocumentStore'"
                    )

                try:
                    backend_class = import_string(backend_path)
                except ImportError as e:
                    raise ImproperlyConfigured(
                        f"Failed to import store backend '{backend_path}': {e}"
                    ) from e
                _document_store = backend_class()
                logger.debug("Loaded document store: %s", backend_path)

    return _document_store


def reset_document_store() -> None:
    """Reset the cached store. Useful for testing."""
    global _document_store
    _document_store = None
