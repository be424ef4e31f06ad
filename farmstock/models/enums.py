"""
Enums for Farmstock documents.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class FieldWorkStatus(models.TextChoices):
    """Fumigation and harvest lifecycle status."""
    PENDING = 'pending', _('Pending')
    SCHEDULED = 'scheduled', _('Scheduled')
    IN_PROGRESS = 'in_progress', _('In progress')
    COMPLETED = 'completed', _('Completed')      # Terminal, stock effect applied
    CANCELLED = 'cancelled', _('Cancelled')      # Terminal


class TransferStatus(models.TextChoices):
    """
    Transfer lifecycle status.

    PENDING -> APPROVED | REJECTED | CANCELLED
    APPROVED -> SHIPPED (stock leaves source) | CANCELLED
    SHIPPED -> COMPLETED (stock arrives at target)
    """
    PENDING = 'pending', _('Pending')
    APPROVED = 'approved', _('Approved')
    REJECTED = 'rejected', _('Rejected')
    SHIPPED = 'shipped', _('Shipped')
    COMPLETED = 'completed', _('Completed')
    CANCELLED = 'cancelled', _('Cancelled')


class PurchaseStatus(models.TextChoices):
    """Purchase status. PARTIAL_DELIVERED and COMPLETED are derived from deliveries."""
    PENDING = 'pending', _('Pending')
    APPROVED = 'approved', _('Approved')
    PARTIAL_DELIVERED = 'partial_delivered', _('Partially delivered')
    COMPLETED = 'completed', _('Completed')
    CANCELLED = 'cancelled', _('Cancelled')


class DeliveryStatus(models.TextChoices):
    """Purchase delivery status."""
    IN_TRANSIT = 'in_transit', _('In transit')
    COMPLETED = 'completed', _('Completed')    # Products added to inventory
    CANCELLED = 'cancelled', _('Cancelled')


class ExpenseType(models.TextChoices):
    """Expense kind. Product sales take stock out; miscellaneous ones do not."""
    PRODUCT = 'product', _('Product sale')
    MISC = 'misc', _('Miscellaneous')


class StockLevel(models.TextChoices):
    """Product stock level relative to its minimum."""
    OK = 'ok', _('OK')
    WARNING = 'warning', _('Warning')
    LOW = 'low', _('Low')


OPEN_FIELD_WORK = frozenset({
    FieldWorkStatus.PENDING.value,
    FieldWorkStatus.SCHEDULED.value,
    FieldWorkStatus.IN_PROGRESS.value,
})

# Statuses after which no executor transition is accepted
TERMINAL_STATUSES = frozenset({'completed', 'cancelled', 'rejected'})
