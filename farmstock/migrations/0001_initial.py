"""
Initial migration for Farmstock models.
"""

import django.core.serializers.json
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create the Document model."""

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('collection', models.CharField(max_length=64, verbose_name='Collection')),
                ('key', models.CharField(max_length=64, verbose_name='Document ID')),
                ('data', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder, verbose_name='Data')),
                ('version', models.PositiveIntegerField(default=1, verbose_name='Version')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated at')),
            ],
            options={
                'verbose_name': 'Document',
                'verbose_name_plural': 'Documents',
                'ordering': ['collection', 'key'],
                'indexes': [models.Index(fields=['collection', 'updated_at'], name='farmstock_doc_coll_upd_idx')],
                'constraints': [models.UniqueConstraint(fields=('collection', 'key'), name='unique_document_key')],
            },
        ),
    ]
