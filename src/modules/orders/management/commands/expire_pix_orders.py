"""Expire overdue PIX orders from the command line.

Usage::

    python manage.py expire_pix_orders
"""

from django.core.management.base import BaseCommand

from modules.orders.services import build_order_service


class Command(BaseCommand):
    help = "Reconcile awaiting_payment PIX orders whose payment window has closed."

    def handle(self, *args, **options):
        summary = build_order_service().sweep_overdue_payments()
        if not summary:
            self.stdout.write("No overdue PIX orders.")
            return
        for status, count in sorted(summary.items()):
            self.stdout.write(f"{status}: {count}")
        self.stdout.write(self.style.SUCCESS("Sweep finished."))
