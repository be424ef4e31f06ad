"""
Management command to list products at or below their minimum stock.

Usage:
    python manage.py low_stock
    python manage.py low_stock --warehouse WH-NORTH
"""

from django.core.management.base import BaseCommand

from farmstock.services import InventoryQueries


class Command(BaseCommand):
    """Low stock report command."""

    help = 'Lists products whose stock is at or below their minimum'

    def add_arguments(self, parser):
        parser.add_argument(
            '--warehouse',
            default=None,
            help='Only products stored in this warehouse'
        )

    def handle(self, *args, **options):
        products = InventoryQueries().low_stock_products(warehouse_id=options['warehouse'])

        if not products:
            self.stdout.write(self.style.SUCCESS('No products below minimum stock'))
            return

        for product in products:
            self.stdout.write(
                f'{product.name} ({product.id}): {product.stock} {product.unit} '
                f'[min {product.min_stock}] {product.warehouse_id or "-"}'
            )
        self.stdout.write(
            self.style.WARNING(f'{len(products)} product(s) below minimum stock')
        )
