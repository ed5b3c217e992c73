"""
Rebuild missing ground inventory allocation rows.

Completed ground-source BOLs debit their lots before allocation history is
written. If that last write failed, the BOL still carries the weight taken
from each lot; this command appends the missing allocation rows.

Usage:
    python manage.py reconcile_allocations
    python manage.py reconcile_allocations --dry-run
"""
from django.core.management.base import BaseCommand
from django.db.models import Sum
import logging

from bol_system.models import BOL, GroundInventoryAllocation
from bol_system.services.inventory_ledger import AllocationEntry, InventoryLedger

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Append allocation rows missing for completed ground-source BOLs'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Report missing allocations without writing')

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        bols = BOL.objects.filter(
            status=BOL.STATUS_COMPLETED,
            inventory_source=BOL.SOURCE_GROUND,
        ).order_by('completed_at')

        repaired = 0
        for bol in bols:
            legs = [
                (bol.ground_inventory_lot_id, bol.ground_inventory_allocated_weight),
                (bol.secondary_ground_inventory_lot_id, bol.secondary_ground_inventory_allocated_weight),
            ]
            entries = []
            for lot_id, weight in legs:
                if lot_id is None or not weight or weight <= 0:
                    continue
                recorded = GroundInventoryAllocation.objects.filter(bol=bol, lot_id=lot_id).aggregate(
                    total=Sum('allocated_weight')
                )['total'] or 0
                missing = weight - recorded
                if missing > 0:
                    entries.append(AllocationEntry(
                        lot_id=lot_id,
                        bol_id=bol.pk,
                        customer_id=bol.customer_id,
                        material_id=bol.material_id,
                        weight=missing,
                        actor=bol.completed_by,
                        notes='Rebuilt by reconcile_allocations',
                    ))

            if not entries:
                continue

            for entry in entries:
                self.stdout.write(f"BOL {bol.pk}: lot {entry.lot_id} missing {entry.weight} lbs")
            if not dry_run:
                InventoryLedger.record_allocations(entries)
                logger.info(f"Rebuilt {len(entries)} allocation rows for BOL {bol.pk}")
            repaired += len(entries)

        verb = 'Would rebuild' if dry_run else 'Rebuilt'
        self.stdout.write(self.style.SUCCESS(f"{verb} {repaired} allocation rows"))
