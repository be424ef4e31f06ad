"""
Inventory — the single entry point bundling every workflow over one store.

Usage:
    from farmstock import Inventory, Principal

    inventory = Inventory()
    principal = Principal.from_user(request.user)

    harvest_id = inventory.harvests.create(data, principal=principal)
    inventory.transfers.ship(transfer_id, principal=principal)
    inventory.products.adjust_stock(product_id, -5, principal=principal)
    inventory.queries.low_stock_products()
"""

from farmstock.adapters import get_document_store
from farmstock.executor import InventoryExecutor
from farmstock.protocols.store import DocumentStore
from farmstock.services import (
    ExpenseService,
    FumigationService,
    HarvestService,
    InventoryQueries,
    ProductService,
    PurchaseService,
    TransferService,
)


class Inventory:
    """
    Workflows sharing one document store.

    The store is injected (or loaded from FARMSTOCK['STORE_BACKEND']);
    nothing here holds state between calls.
    """

    def __init__(self, store: DocumentStore | None = None):
        self.store = store or get_document_store()
        self.executor = InventoryExecutor(self.store)
        self.products = ProductService(self.store)
        self.fumigations = FumigationService(self.store)
        self.harvests = HarvestService(self.store)
        self.transfers = TransferService(self.store)
        self.purchases = PurchaseService(self.store)
        self.expenses = ExpenseService(self.store)
        self.queries = InventoryQueries(self.store)
