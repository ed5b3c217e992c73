"""
Health check for the transload BOL system
Usage: python manage.py health_check
"""
import django
from django.core.management.base import BaseCommand
from django.db import connection
from django.db.models import Count, Sum
from bol_system.models import BOL, GroundInventoryLot


class Command(BaseCommand):
    help = 'Report system health: database, BOL counts by status, ground inventory totals, Django version'

    def handle(self, *args, **options):
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write(self.style.SUCCESS("Transload BOL System Health Check"))
        self.stdout.write("=" * 60 + "\n")

        # 1. Database connection status
        self.stdout.write("Database Connection:")
        try:
            connection.ensure_connection()
            self.stdout.write(self.style.SUCCESS("  ✓ Connected"))
            self.stdout.write(f"  Engine: {connection.vendor}")
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Failed: {e}"))
            return

        # 2. BOL counts
        self.stdout.write("\nBOL Statistics:")
        try:
            counts = dict(BOL.objects.values_list('status').annotate(total=Count('id')))
            self.stdout.write(f"  Draft BOLs: {counts.get(BOL.STATUS_DRAFT, 0)}")
            self.stdout.write(f"  Completed BOLs: {counts.get(BOL.STATUS_COMPLETED, 0)}")
            last_bol = BOL.objects.filter(status=BOL.STATUS_COMPLETED).order_by('-completed_at').first()
            if last_bol:
                self.stdout.write(f"  Last BOL Completed: {last_bol.completed_at}")
            else:
                self.stdout.write("  Last BOL Completed: No completed BOLs in system")
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Could not read BOLs: {e}"))

        # 3. Ground inventory
        self.stdout.write("\nGround Inventory:")
        try:
            rows = (
                GroundInventoryLot.objects
                .values('status')
                .annotate(lots=Count('id'), remaining=Sum('remaining_weight'))
                .order_by('status')
            )
            if not rows:
                self.stdout.write("  No ground inventory lots")
            for row in rows:
                self.stdout.write(
                    f"  {row['status']}: {row['lots']} lots, {row['remaining'] or 0} lbs remaining"
                )
        except Exception as e:
            self.stdout.write(self.style.ERROR(f"  ✗ Could not read ground inventory: {e}"))

        # 4. Django version
        self.stdout.write(f"\nDjango Version: {django.get_version()}")

        self.stdout.write("\n" + "=" * 60 + "\n")
