"""
Ground inventory ledger.

Owns lot remaining-weight and status transitions and the append-only
allocation history. Consumption and compensation change remaining weight
only through conditional F() updates so concurrent completions can never
drive a lot negative or consume more than it holds. Manual adjustment edits
run under a row lock and keep remaining within starting minus allocated.
"""
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import Case, F, Sum, Value, When
from django.utils import timezone
import logging

from ..exceptions import (
    Conflict,
    InsufficientQuantity,
    NotFound,
    ScopeMismatch,
    Unavailable,
    ValidationError,
)
from .weights import to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


@dataclass
class ConsumeResult:
    lot: object
    consumed_weight: Decimal


@dataclass
class AllocationEntry:
    lot_id: int
    bol_id: int
    customer_id: int
    material_id: int
    weight: Decimal
    actor: object = None
    notes: str = ''


def _status_for(remaining_weight):
    from ..models import GroundInventoryLot

    if remaining_weight > 0:
        return GroundInventoryLot.STATUS_AVAILABLE
    return GroundInventoryLot.STATUS_DEPLETED


class InventoryLedger:
    """Consumption, compensation and bookkeeping for ground inventory lots."""

    @staticmethod
    def check_usable(lot_id, customer_id, material_id):
        """
        Read-only check that a lot can be drawn from for this customer and material.

        Raises:
            ValidationError: no lot id given
            NotFound: lot does not exist
            ScopeMismatch: lot belongs to another customer or material
            Unavailable: lot is archived or empty
        """
        from ..models import GroundInventoryLot

        if not lot_id:
            raise ValidationError('Ground inventory lot is required for ground-source BOLs')

        try:
            lot = GroundInventoryLot.objects.get(pk=lot_id)
        except (GroundInventoryLot.DoesNotExist, ValueError, TypeError):
            raise NotFound('Ground inventory lot not found')

        if str(lot.customer_id) != str(customer_id or ''):
            raise ScopeMismatch('Ground inventory lot does not belong to this customer')
        if str(lot.material_id) != str(material_id or ''):
            raise ScopeMismatch('Ground inventory lot does not match this material')
        if lot.status == GroundInventoryLot.STATUS_ARCHIVED or lot.remaining_weight <= 0:
            raise Unavailable('Ground inventory lot is not available')
        return lot

    @staticmethod
    def consume(lot_id, customer_id, material_id, weight):
        """
        Atomically debit weight from a lot.

        The decrement is a single conditional UPDATE that only matches when the
        lot is in scope, not archived, and holds at least ``weight``. A lot that
        reaches zero is marked depleted by a second write.

        Returns:
            ConsumeResult with the refreshed lot and the weight taken
        """
        from ..models import GroundInventoryLot

        weight = to_decimal(weight, 'consume weight')
        if weight is None or weight < 0:
            raise ValidationError('Invalid ground inventory consume weight')

        scoped = GroundInventoryLot.objects.filter(
            pk=lot_id,
            customer_id=customer_id,
            material_id=material_id,
            status__in=GroundInventoryLot.CONSUMABLE_STATUSES,
        )

        if weight == 0:
            lot = scoped.first()
            if lot is None:
                raise NotFound('Ground inventory lot not found while completing BOL')
            return ConsumeResult(lot=lot, consumed_weight=ZERO)

        updated = scoped.filter(remaining_weight__gte=weight).update(
            remaining_weight=F('remaining_weight') - weight,
            status=GroundInventoryLot.STATUS_AVAILABLE,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.warning(f"Insufficient ground inventory on lot {lot_id} for {weight} lbs")
            raise InsufficientQuantity()

        lot = GroundInventoryLot.objects.get(pk=lot_id)
        if lot.remaining_weight <= 0 and lot.status != GroundInventoryLot.STATUS_DEPLETED:
            GroundInventoryLot.objects.filter(pk=lot_id, remaining_weight__lte=0).update(
                status=GroundInventoryLot.STATUS_DEPLETED,
                updated_at=timezone.now(),
            )
            lot.refresh_from_db()

        logger.info(f"Consumed {weight} lbs from lot {lot_id} ({lot.remaining_weight} lbs remaining)")
        return ConsumeResult(lot=lot, consumed_weight=weight)

    @staticmethod
    def restore(lot_id, weight):
        """
        Compensating increment for a consume that must be undone.

        A lot archived in the meantime keeps its archived status.
        """
        from ..models import GroundInventoryLot

        weight = to_decimal(weight, 'restore weight')
        if not weight or weight <= 0:
            return
        GroundInventoryLot.objects.filter(pk=lot_id).update(
            remaining_weight=F('remaining_weight') + weight,
            status=Case(
                When(status=GroundInventoryLot.STATUS_ARCHIVED, then=Value(GroundInventoryLot.STATUS_ARCHIVED)),
                default=Value(GroundInventoryLot.STATUS_AVAILABLE),
            ),
            updated_at=timezone.now(),
        )
        logger.info(f"Restored {weight} lbs to lot {lot_id}")

    @staticmethod
    @transaction.atomic
    def record_allocations(entries):
        """Append several allocation entries. All are written or none are."""
        from ..models import GroundInventoryAllocation

        rows = [
            GroundInventoryAllocation(
                lot_id=entry.lot_id,
                bol_id=entry.bol_id,
                customer_id=entry.customer_id,
                material_id=entry.material_id,
                allocated_weight=entry.weight,
                allocation_type=GroundInventoryAllocation.TYPE_BOL_COMPLETION,
                created_by=entry.actor,
                notes=entry.notes,
            )
            for entry in entries
        ]
        if not rows:
            return []
        return GroundInventoryAllocation.objects.bulk_create(rows)

    @staticmethod
    def allocated_weight(lot):
        from ..models import GroundInventoryAllocation

        lot_id = getattr(lot, 'pk', lot)
        total = GroundInventoryAllocation.objects.filter(lot_id=lot_id).aggregate(
            total=Sum('allocated_weight')
        )['total']
        return total or ZERO

    @staticmethod
    def _validate_adjustment_target(customer, material):
        if material.customer_id != customer.pk:
            raise ValidationError('Material must belong to the selected customer')
        if not material.is_active:
            raise ValidationError('Inactive material cannot be used for ground inventory adjustments')

    @staticmethod
    def _validate_adjustment_weights(starting_weight, remaining_weight):
        starting_weight = to_decimal(starting_weight, 'starting_weight')
        if starting_weight is None or starting_weight < 0:
            raise ValidationError('Starting weight must be a non-negative number')
        if remaining_weight is None or remaining_weight == '':
            remaining_weight = starting_weight
        remaining_weight = to_decimal(remaining_weight, 'remaining_weight')
        if remaining_weight < 0:
            raise ValidationError('Remaining weight must be non-negative')
        if remaining_weight > starting_weight:
            raise ValidationError('Remaining weight cannot exceed starting weight')
        return starting_weight, remaining_weight

    @staticmethod
    def create_adjustment_lot(customer, material, starting_weight, remaining_weight=None,
                              source_railcar_number='', notes='', actor=None):
        """Create a manual-adjustment lot (stock counted on the ground)."""
        from ..models import GroundInventoryLot

        InventoryLedger._validate_adjustment_target(customer, material)
        starting_weight, remaining_weight = InventoryLedger._validate_adjustment_weights(
            starting_weight, remaining_weight
        )

        lot = GroundInventoryLot.objects.create(
            customer=customer,
            material=material,
            source_type=GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT,
            source_railcar_number=(source_railcar_number or '').strip(),
            starting_weight=starting_weight,
            remaining_weight=remaining_weight,
            received_at=timezone.now(),
            received_by=actor,
            status=_status_for(remaining_weight),
            notes=(notes or '').strip(),
        )
        logger.info(
            f"Created adjustment lot {lot.pk} for customer {customer.pk} material {material.pk}: "
            f"{remaining_weight}/{starting_weight} lbs"
        )
        return lot

    @staticmethod
    @transaction.atomic
    def update_adjustment_lot(lot, customer, material, starting_weight, remaining_weight,
                              source_railcar_number='', notes=''):
        """
        Edit a manual-adjustment lot.

        Once a lot has allocations, the weight already drawn stays accounted
        for: remaining may not exceed starting minus allocated, and the lot
        cannot move to another customer or material.
        """
        from ..models import GroundInventoryLot

        if lot.source_type != GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT:
            raise ValidationError('Only manual adjustment lots can be edited')

        InventoryLedger._validate_adjustment_target(customer, material)
        if remaining_weight is None or remaining_weight == '':
            raise ValidationError('Remaining weight is required')
        starting_weight, remaining_weight = InventoryLedger._validate_adjustment_weights(
            starting_weight, remaining_weight
        )

        lot = GroundInventoryLot.objects.select_for_update().get(pk=lot.pk)
        allocated = InventoryLedger.allocated_weight(lot)
        if allocated > 0:
            if lot.customer_id != customer.pk or lot.material_id != material.pk:
                raise Conflict('Cannot change customer or material of a lot with existing allocations')
            if starting_weight < allocated:
                raise ValidationError(
                    f"Starting weight cannot be less than allocated weight ({allocated})"
                )
            if remaining_weight > starting_weight - allocated:
                raise ValidationError(
                    f"Remaining weight cannot exceed starting weight minus allocated weight "
                    f"({starting_weight - allocated})"
                )

        lot.customer = customer
        lot.material = material
        lot.source_railcar_number = (source_railcar_number or '').strip()
        lot.starting_weight = starting_weight
        lot.remaining_weight = remaining_weight
        lot.status = _status_for(remaining_weight)
        lot.notes = (notes or '').strip()
        lot.save()
        logger.info(f"Updated adjustment lot {lot.pk}: {remaining_weight}/{starting_weight} lbs")
        return lot

    @staticmethod
    def delete_adjustment_lot(lot):
        from ..models import GroundInventoryLot

        if lot.source_type != GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT:
            raise ValidationError('Only manual adjustment lots can be deleted')
        if lot.allocations.exists():
            raise Conflict('Cannot delete lot with existing allocations')
        lot_id = lot.pk
        lot.delete()
        logger.info(f"Deleted adjustment lot {lot_id}")

    @staticmethod
    def archive_lot(lot):
        from ..models import GroundInventoryLot

        if lot.allocations.exists():
            raise Conflict('Cannot archive lot with existing allocations')
        lot.status = GroundInventoryLot.STATUS_ARCHIVED
        lot.save(update_fields=['status', 'updated_at'])
        logger.info(f"Archived lot {lot.pk}")
        return lot

    @staticmethod
    def summarize_lots(lots):
        """
        Per-material totals for a set of lots.

        Returns:
            (summary_by_material, totals) where summary rows are sorted by
            material name, case-insensitive
        """
        summary = {}
        for lot in lots:
            material = lot.material
            row = summary.setdefault(lot.material_id, {
                'material_id': lot.material_id,
                'material_name': material.material_name if material else 'Material',
                'ref_num': material.ref_num if material else '',
                'total_starting_weight': ZERO,
                'total_remaining_weight': ZERO,
                'lot_count': 0,
            })
            row['total_starting_weight'] += lot.starting_weight or ZERO
            row['total_remaining_weight'] += lot.remaining_weight or ZERO
            row['lot_count'] += 1

        summary_by_material = sorted(summary.values(), key=lambda row: row['material_name'].casefold())
        totals = {
            'total_starting_weight': sum((row['total_starting_weight'] for row in summary_by_material), ZERO),
            'total_remaining_weight': sum((row['total_remaining_weight'] for row in summary_by_material), ZERO),
        }
        return summary_by_material, totals
