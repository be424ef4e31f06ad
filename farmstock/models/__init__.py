"""
Farmstock Models.

- Document: versioned JSON document, the storage behind the document store
- Status enums for fumigations, harvests, transfers, purchases and deliveries
- ExpenseType: product sale or miscellaneous expense
"""

from farmstock.models.document import Document
from farmstock.models.enums import (
    DeliveryStatus,
    ExpenseType,
    FieldWorkStatus,
    PurchaseStatus,
    StockLevel,
    TransferStatus,
)

__all__ = [
    'Document',
    'FieldWorkStatus',
    'TransferStatus',
    'PurchaseStatus',
    'DeliveryStatus',
    'ExpenseType',
    'StockLevel',
]
