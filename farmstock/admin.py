"""
Farmstock Admin — read-only document browser for production debugging.

Documents only change through the services (stock and status must move
together), so the admin never adds, edits or deletes them.
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from farmstock.models import Document


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    """Document admin — read-only."""

    list_display = ['key', 'collection', 'status_display', 'stock_display', 'version', 'updated_at']
    list_filter = ['collection']
    search_fields = ['key']
    readonly_fields = ['collection', 'key', 'data', 'version', 'created_at', 'updated_at']
    date_hierarchy = 'updated_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.display(description=_('Status'))
    def status_display(self, obj):
        return (obj.data or {}).get('status', '-')

    @admin.display(description=_('Stock'))
    def stock_display(self, obj):
        return (obj.data or {}).get('stock', '-')
