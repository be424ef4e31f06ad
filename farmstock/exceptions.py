"""
Exceptions for Farmstock.

All errors are FarmstockError with a structured code for programmatic handling.
"""

from decimal import Decimal
from typing import Any


class FarmstockError(Exception):
    """
    Structured exception for inventory operations.

    Usage:
        try:
            harvests.create(data, principal=principal)
        except InsufficientStockError as e:
            print(f"Only {e.available} left of {e.product_id}")

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages = {
        'NOT_FOUND': 'Document not found',
        'INSUFFICIENT_STOCK': 'Not enough stock for the requested quantity',
        'INVALID_REQUEST': 'Malformed request',
        'INVALID_STATUS': 'Operation not allowed in the current status',
        'CONCURRENT_MODIFICATION': 'Concurrent modification detected',
    }

    def __init__(self, code: str, message: str | None = None, **data: Any):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.data!r})"


class NotFoundError(FarmstockError):
    """Referenced entity or product does not exist at transaction time."""

    def __init__(self, collection: str, document_id: str, message: str | None = None):
        super().__init__(
            'NOT_FOUND',
            message or f"{collection}/{document_id} does not exist",
            collection=collection,
            document_id=document_id,
        )


class InsufficientStockError(FarmstockError):
    """
    Requested quantity exceeds the product's stock.

    Raised per item; the caller decides whether it is fatal.
    """

    def __init__(self, product_id: str, required: Decimal, available: Decimal,
                 product_name: str = ''):
        label = product_name or product_id
        super().__init__(
            'INSUFFICIENT_STOCK',
            f"Not enough stock of {label}: available {available}, required {required}",
            product_id=product_id,
            required=required,
            available=available,
            product_name=product_name,
        )

    @property
    def product_id(self) -> str:
        return self.data['product_id']

    @property
    def required(self) -> Decimal:
        return self.data['required']

    @property
    def available(self) -> Decimal:
        return self.data['available']


class ValidationError(FarmstockError):
    """Malformed or inconsistent request. Nothing is written."""

    def __init__(self, message: str, **data: Any):
        super().__init__('INVALID_REQUEST', message, **data)


class InvalidStatusError(FarmstockError):
    """Lifecycle transition not allowed from the current status."""

    def __init__(self, current: str, expected, document_id: str = ''):
        super().__init__(
            'INVALID_STATUS',
            current=current,
            expected=expected,
            document_id=document_id,
        )


class ConcurrentModificationError(FarmstockError):
    """Write conflicts persisted through every transaction attempt."""

    def __init__(self, attempts: int):
        super().__init__('CONCURRENT_MODIFICATION', attempts=attempts)
