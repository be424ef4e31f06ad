"""
Farmstock Documents.

Typed views over stored documents, one dataclass per lifecycle state:
- Product: inventory record with on-hand stock
- Fumigation: open / completed / cancelled
- Harvest: planned / completed / cancelled
- Transfer: requested / approved / rejected / shipped / completed / cancelled
- Purchase: with in-transit / completed / cancelled deliveries
- Expense: product sale / miscellaneous
"""

from farmstock.documents.base import (
    Principal,
    ProducedLine,
    StockLine,
    parse_produced_lines,
    parse_stock_lines,
    to_datetime,
    to_decimal,
)
from farmstock.documents.expense import (
    EXPENSES,
    Expense,
    MiscExpense,
    ProductExpense,
    parse_expense,
)
from farmstock.documents.fumigation import (
    FUMIGATIONS,
    CancelledFumigation,
    CompletedFumigation,
    Fumigation,
    OpenFumigation,
    parse_fumigation,
)
from farmstock.documents.harvest import (
    HARVESTS,
    CancelledHarvest,
    CompletedHarvest,
    Harvest,
    PlannedHarvest,
    parse_harvest,
)
from farmstock.documents.product import PRODUCTS, Product
from farmstock.documents.purchase import (
    PURCHASES,
    CancelledDelivery,
    CompletedDelivery,
    Delivery,
    InTransitDelivery,
    Purchase,
    parse_delivery,
)
from farmstock.documents.transfer import (
    TRANSFERS,
    ApprovedTransfer,
    CancelledTransfer,
    CompletedTransfer,
    RejectedTransfer,
    RequestedTransfer,
    ShippedTransfer,
    Transfer,
    parse_transfer,
)

__all__ = [
    'PRODUCTS',
    'FUMIGATIONS',
    'HARVESTS',
    'TRANSFERS',
    'PURCHASES',
    'EXPENSES',
    'Principal',
    'StockLine',
    'ProducedLine',
    'parse_stock_lines',
    'parse_produced_lines',
    'to_decimal',
    'to_datetime',
    'Product',
    'Fumigation',
    'OpenFumigation',
    'CompletedFumigation',
    'CancelledFumigation',
    'parse_fumigation',
    'Harvest',
    'PlannedHarvest',
    'CompletedHarvest',
    'CancelledHarvest',
    'parse_harvest',
    'Transfer',
    'RequestedTransfer',
    'ApprovedTransfer',
    'RejectedTransfer',
    'ShippedTransfer',
    'CompletedTransfer',
    'CancelledTransfer',
    'parse_transfer',
    'Purchase',
    'Delivery',
    'InTransitDelivery',
    'CompletedDelivery',
    'CancelledDelivery',
    'parse_delivery',
    'Expense',
    'ProductExpense',
    'MiscExpense',
    'parse_expense',
]
