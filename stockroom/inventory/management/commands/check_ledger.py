"""
Django management command to reconcile product quantities with the stock ledger
"""
from django.core.management.base import BaseCommand, CommandError
from stockroom.catalog.models import Product
from stockroom.inventory.services import ledger_balance


class Command(BaseCommand):
    help = 'Check that every product quantity equals opening quantity + IN - OUT from the ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--product-id',
            type=int,
            help='Check specific product ID only',
        )
        parser.add_argument(
            '--show-all',
            action='store_true',
            help='Show all products, not just discrepancies',
        )

    def handle(self, *args, **options):
        product_id = options.get('product_id')
        show_all = options.get('show_all', False)

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("PRODUCT QUANTITY vs LEDGER RECONCILIATION"))
        self.stdout.write("=" * 80)

        if product_id:
            products = Product.objects.filter(id=product_id)
            if not products.exists():
                raise CommandError(f"Product {product_id} does not exist")
        else:
            products = Product.objects.all()
        products = products.order_by('id')

        self.stdout.write(f"Total Products: {products.count()}")
        self.stdout.write("")

        discrepancies = 0
        for product in products:
            balance = ledger_balance(product)
            difference = product.quantity - balance
            if difference:
                discrepancies += 1
                self.stdout.write(self.style.ERROR(
                    f"  ✗ #{product.id} {product.name}: quantity={product.quantity} "
                    f"ledger={balance} (difference {difference:+d})"
                ))
            elif show_all:
                self.stdout.write(f"  ✓ #{product.id} {product.name}: quantity={product.quantity}")

        self.stdout.write("")
        if discrepancies:
            raise CommandError(f"{discrepancies} product(s) disagree with the ledger")
        self.stdout.write(self.style.SUCCESS("All products reconcile with the ledger"))
