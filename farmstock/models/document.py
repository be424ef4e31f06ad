"""
Document model — JSON document addressed by (collection, key).
"""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils.translation import gettext_lazy as _


class DocumentQuerySet(models.QuerySet):
    """QuerySet helpers for Document lookups."""

    def at(self, ref):
        """Filter the row addressed by a DocumentRef."""
        return self.filter(collection=ref.collection, key=ref.id)

    def in_collection(self, collection: str):
        return self.filter(collection=collection)


class Document(models.Model):
    """
    A schemaless document in a named collection.

    Rules:
    - Only the document store adapter writes rows
    - version increases by one on every committed write
    - Writes are conditional on the version seen when the document was read

    The version column is what makes transactions optimistic: a writer
    that read version N only succeeds if the row is still at N.
    """

    collection = models.CharField(
        max_length=64,
        verbose_name=_('Collection'),
    )
    key = models.CharField(
        max_length=64,
        verbose_name=_('Document ID'),
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        verbose_name=_('Data'),
    )
    version = models.PositiveIntegerField(
        default=1,
        verbose_name=_('Version'),
    )
    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created at'))
    updated_at = models.DateTimeField(auto_now=True, verbose_name=_('Updated at'))

    objects = DocumentQuerySet.as_manager()

    class Meta:
        verbose_name = _('Document')
        verbose_name_plural = _('Documents')
        ordering = ['collection', 'key']
        constraints = [
            models.UniqueConstraint(
                fields=['collection', 'key'],
                name='unique_document_key',
            )
        ]
        indexes = [
            models.Index(fields=['collection', 'updated_at'], name='farmstock_doc_coll_upd_idx'),
        ]

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.key}"

    def __str__(self) -> str:
        return f"{self.path} (v{self.version})"
