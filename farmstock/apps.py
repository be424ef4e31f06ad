"""Django app configuration for Farmstock."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class FarmstockConfig(AppConfig):
    """Configuration for Farmstock app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "farmstock"
    verbose_name = _("Farm Inventory")
