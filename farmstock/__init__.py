"""
Farmstock — farm inventory transactions.

Stock-affecting workflows (fumigations, harvests, transfers, purchases, expenses)
over an optimistic document store.

Usage:
    from farmstock import Inventory, Principal, InsufficientStockError

    inventory = Inventory()
    try:
        inventory.transfers.ship(transfer_id, principal=principal)
    except InsufficientStockError as e:
        print(e.product_id, e.available)
"""


def __getattr__(name):
    """Lazy import to avoid circular imports during app loading."""
    if name == 'Inventory':
        from farmstock.service import Inventory
        return Inventory
    elif name == 'InventoryExecutor':
        from farmstock.executor import InventoryExecutor
        return InventoryExecutor
    elif name == 'Principal':
        from farmstock.documents.base import Principal
        return Principal
    elif name == 'DocumentRef':
        from farmstock.protocols.store import DocumentRef
        return DocumentRef
    elif name in ('FarmstockError', 'NotFoundError', 'InsufficientStockError',
                  'ValidationError', 'InvalidStatusError', 'ConcurrentModificationError'):
        from farmstock import exceptions
        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'Inventory',
    'InventoryExecutor',
    'Principal',
    'DocumentRef',
    'FarmstockError',
    'NotFoundError',
    'InsufficientStockError',
    'ValidationError',
    'InvalidStatusError',
    'ConcurrentModificationError',
]

__version__ = '0.1.0'
