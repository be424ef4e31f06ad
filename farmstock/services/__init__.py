"""
Farmstock services — workflows over the inventory executor.

    from farmstock.services import HarvestService, TransferService

    harvests = HarvestService()
    harvest_id = harvests.create(data, principal=principal)
"""

from farmstock.services.expenses import ExpenseService
from farmstock.services.fumigations import FumigationService
from farmstock.services.harvests import HarvestService
from farmstock.services.products import ProductService
from farmstock.services.purchases import PurchaseService
from farmstock.services.queries import InventoryQueries
from farmstock.services.transfers import ReceiptDiscrepancy, TransferService

__all__ = [
    'ProductService',
    'FumigationService',
    'HarvestService',
    'TransferService',
    'ReceiptDiscrepancy',
    'PurchaseService',
    'ExpenseService',
    'InventoryQueries',
]
