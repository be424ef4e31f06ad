"""
Farmstock configuration.

Usage in settings.py:
    FARMSTOCK = {
        "STORE_BACKEND": "farmstock.adapters.django_store.DjangoDocumentStore",
        "MAX_TRANSACTION_ATTEMPTS": 5,
        "RECEIVE_TOLERANCE": "0.10",
    }
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.conf import settings


@dataclass
class FarmstockSettings:
    """Farmstock configuration settings."""

    # Document store backend (dotted path)
    STORE_BACKEND: str = "farmstock.adapters.django_store.DjangoDocumentStore"

    # Attempts per transaction before giving up on write conflicts
    MAX_TRANSACTION_ATTEMPTS: int = 5

    # Fraction a received quantity may exceed the shipped one before warning
    RECEIVE_TOLERANCE: Decimal = Decimal("0.10")

    # stock <= min_stock * factor is flagged as "warning"
    LOW_STOCK_WARNING_FACTOR: Decimal = Decimal("1.5")

    DEFAULT_UNIT: str = "kg"
    DEFAULT_CATEGORY: str = "input"

    def __post_init__(self):
        self.RECEIVE_TOLERANCE = Decimal(str(self.RECEIVE_TOLERANCE))
        self.LOW_STOCK_WARNING_FACTOR = Decimal(str(self.LOW_STOCK_WARNING_FACTOR))


def get_farmstock_settings() -> FarmstockSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "FARMSTOCK", {})
    return FarmstockSettings(**{
        k: v for k, v in user_settings.items()
        if k in FarmstockSettings.__dataclass_fields__
    })


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_farmstock_settings(), name)


farmstock_settings = _LazySettings()
