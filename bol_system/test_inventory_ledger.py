"""
Tests for ground inventory lot consumption, compensation and adjustments.
"""

import pytest
from decimal import Decimal

from bol_system.exceptions import (
    Conflict, InsufficientQuantity, NotFound, ScopeMismatch, Unavailable, ValidationError
)
from bol_system.models import BOL, GroundInventoryAllocation, GroundInventoryLot, Material
from bol_system.services import BOLLifecycleService
from bol_system.services.inventory_ledger import AllocationEntry, InventoryLedger


def _allocate(lot, bol, weight):
    InventoryLedger.record_allocations([
        AllocationEntry(lot.pk, bol.pk, lot.customer_id, lot.material_id, Decimal(weight)),
    ])
    return GroundInventoryAllocation.objects.filter(lot_id=lot.pk).latest('id')


@pytest.mark.django_db
class TestCheckUsable:

    def test_usable_lot_is_returned(self, make_lot, customer, material):
        lot = make_lot()
        assert InventoryLedger.check_usable(lot.pk, customer.pk, material.pk) == lot

    def test_missing_lot_id(self, customer, material):
        with pytest.raises(ValidationError):
            InventoryLedger.check_usable(None, customer.pk, material.pk)

    def test_unknown_lot(self, customer, material):
        with pytest.raises(NotFound):
            InventoryLedger.check_usable(999999, customer.pk, material.pk)

    def test_other_customer(self, make_lot, other_customer, material):
        lot = make_lot()
        with pytest.raises(ScopeMismatch):
            InventoryLedger.check_usable(lot.pk, other_customer.pk, material.pk)

    def test_other_material(self, make_lot, customer, other_material):
        lot = make_lot()
        with pytest.raises(ScopeMismatch):
            InventoryLedger.check_usable(lot.pk, customer.pk, other_material.pk)

    def test_archived_lot(self, make_lot, customer, material):
        lot = make_lot(status=GroundInventoryLot.STATUS_ARCHIVED)
        with pytest.raises(Unavailable):
            InventoryLedger.check_usable(lot.pk, customer.pk, material.pk)

    def test_empty_lot(self, make_lot, customer, material):
        lot = make_lot(remaining_weight=Decimal('0'))
        with pytest.raises(Unavailable):
            InventoryLedger.check_usable(lot.pk, customer.pk, material.pk)


@pytest.mark.django_db
class TestConsume:

    def test_partial_consume(self, make_lot, customer, material):
        lot = make_lot()
        result = InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('600'))

        assert result.consumed_weight == Decimal('600')
        assert result.lot.remaining_weight == Decimal('400')
        assert result.lot.status == GroundInventoryLot.STATUS_AVAILABLE

    def test_consume_to_zero_depletes(self, make_lot, customer, material):
        lot = make_lot()
        result = InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('1000'))

        assert result.lot.remaining_weight == Decimal('0')
        assert result.lot.status == GroundInventoryLot.STATUS_DEPLETED

    def test_overdraw_leaves_lot_untouched(self, make_lot, customer, material):
        lot = make_lot(remaining_weight=Decimal('500'))
        with pytest.raises(InsufficientQuantity):
            InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('600'))

        lot.refresh_from_db()
        assert lot.remaining_weight == Decimal('500')
        assert lot.status == GroundInventoryLot.STATUS_AVAILABLE

    def test_out_of_scope_consume_is_refused(self, make_lot, other_customer, material):
        lot = make_lot()
        with pytest.raises(InsufficientQuantity):
            InventoryLedger.consume(lot.pk, other_customer.pk, material.pk, Decimal('10'))
        lot.refresh_from_db()
        assert lot.remaining_weight == Decimal('1000')

    def test_archived_lot_cannot_be_consumed(self, make_lot, customer, material):
        lot = make_lot(status=GroundInventoryLot.STATUS_ARCHIVED)
        with pytest.raises(InsufficientQuantity):
            InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('10'))

    def test_zero_weight_changes_nothing(self, make_lot, customer, material):
        lot = make_lot()
        result = InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('0'))

        assert result.consumed_weight == Decimal('0')
        lot.refresh_from_db()
        assert lot.remaining_weight == Decimal('1000')

    def test_negative_weight_rejected(self, make_lot, customer, material):
        lot = make_lot()
        with pytest.raises(ValidationError):
            InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('-5'))


@pytest.mark.django_db
def test_restore_reopens_depleted_lot(make_lot, customer, material):
    lot = make_lot()
    InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('1000'))

    InventoryLedger.restore(lot.pk, Decimal('1000'))

    lot.refresh_from_db()
    assert lot.remaining_weight == Decimal('1000')
    assert lot.status == GroundInventoryLot.STATUS_AVAILABLE


@pytest.mark.django_db
def test_restore_keeps_archived_lot_archived(make_lot, customer, material):
    lot = make_lot()
    InventoryLedger.consume(lot.pk, customer.pk, material.pk, Decimal('250'))
    GroundInventoryLot.objects.filter(pk=lot.pk).update(status=GroundInventoryLot.STATUS_ARCHIVED)

    InventoryLedger.restore(lot.pk, Decimal('250'))

    lot.refresh_from_db()
    assert lot.remaining_weight == Decimal('1000')
    assert lot.status == GroundInventoryLot.STATUS_ARCHIVED


@pytest.mark.django_db
def test_record_allocations_writes_every_entry(make_lot, make_draft_bol, customer, material, operator):
    first = make_lot()
    second = make_lot()
    bol = make_draft_bol()

    rows = InventoryLedger.record_allocations([
        AllocationEntry(first.pk, bol.pk, customer.pk, material.pk, Decimal('600'), actor=operator),
        AllocationEntry(second.pk, bol.pk, customer.pk, material.pk, Decimal('150'), actor=operator),
    ])

    assert len(rows) == 2
    assert InventoryLedger.allocated_weight(first) == Decimal('600')
    assert InventoryLedger.allocated_weight(second) == Decimal('150')
    assert InventoryLedger.record_allocations([]) == []


@pytest.mark.django_db
def test_allocations_are_append_only(make_lot, make_draft_bol, customer, material):
    lot = make_lot()
    bol = make_draft_bol()
    allocation = _allocate(lot, bol, '10')

    allocation.allocated_weight = Decimal('5')
    with pytest.raises(Conflict):
        allocation.save()
    with pytest.raises(Conflict):
        allocation.delete()
    assert GroundInventoryAllocation.objects.count() == 1


@pytest.mark.django_db
class TestAdjustmentLots:

    def test_create_defaults_remaining_to_starting(self, customer, material, operator):
        lot = InventoryLedger.create_adjustment_lot(customer, material, '2500', actor=operator)

        assert lot.source_type == GroundInventoryLot.SOURCE_MANUAL_ADJUSTMENT
        assert lot.remaining_weight == Decimal('2500')
        assert lot.status == GroundInventoryLot.STATUS_AVAILABLE
        assert lot.received_by == operator

    def test_create_empty_lot_is_depleted(self, customer, material):
        lot = InventoryLedger.create_adjustment_lot(customer, material, '0')
        assert lot.status == GroundInventoryLot.STATUS_DEPLETED

    def test_create_rejects_remaining_above_starting(self, customer, material):
        with pytest.raises(ValidationError):
            InventoryLedger.create_adjustment_lot(customer, material, '100', remaining_weight='200')

    def test_create_rejects_foreign_material(self, other_customer, material):
        with pytest.raises(ValidationError):
            InventoryLedger.create_adjustment_lot(other_customer, material, '100')

    def test_create_rejects_inactive_material(self, customer):
        retired = Material.objects.create(customer=customer, material_name='Old Mix', ref_num='OM', is_active=False)
        with pytest.raises(ValidationError):
            InventoryLedger.create_adjustment_lot(customer, retired, '100')

    def test_update_cannot_go_below_allocated(self, make_lot, make_draft_bol, customer, material):
        lot = make_lot(remaining_weight=Decimal('400'))
        bol = make_draft_bol()
        _allocate(lot, bol, '600')

        with pytest.raises(ValidationError):
            InventoryLedger.update_adjustment_lot(lot, customer, material, '500', '100')

        updated = InventoryLedger.update_adjustment_lot(lot, customer, material, '900', '300', notes=' recount ')
        assert updated.starting_weight == Decimal('900')
        assert updated.remaining_weight == Decimal('300')
        assert updated.notes == 'recount'

    def test_update_keeps_drawn_weight_accounted(self, make_lot, make_draft_bol, customer, material):
        lot = make_lot(remaining_weight=Decimal('400'))
        _allocate(lot, make_draft_bol(), '600')

        with pytest.raises(ValidationError):
            InventoryLedger.update_adjustment_lot(lot, customer, material, '1000', '500')

        updated = InventoryLedger.update_adjustment_lot(lot, customer, material, '1000', '400')
        assert updated.remaining_weight == Decimal('400')

    def test_refilling_a_drawn_lot_is_refused(self, make_lot, make_draft_bol, customer, material, operator,
                                              completion_payload):
        lot = make_lot(starting_weight=Decimal('500'))
        first = make_draft_bol(inventory_source=BOL.SOURCE_GROUND, ground_inventory_lot=lot, railcar_id='')
        BOLLifecycleService.complete_bol(first.pk, operator, completion_payload)
        lot.refresh_from_db()
        assert lot.remaining_weight == Decimal('0')

        with pytest.raises(ValidationError):
            InventoryLedger.update_adjustment_lot(lot, customer, material, '500', '500')

        second = make_draft_bol(inventory_source=BOL.SOURCE_GROUND, ground_inventory_lot=lot, railcar_id='')
        with pytest.raises(Unavailable):
            BOLLifecycleService.complete_bol(second.pk, operator, completion_payload)

        lot.refresh_from_db()
        assert InventoryLedger.allocated_weight(lot) == Decimal('500')
        assert InventoryLedger.allocated_weight(lot) <= lot.starting_weight
        assert lot.remaining_weight == Decimal('0')

    def test_drawn_lot_cannot_change_material(self, make_lot, make_draft_bol, customer, other_material):
        lot = make_lot(remaining_weight=Decimal('900'))
        _allocate(lot, make_draft_bol(), '100')

        with pytest.raises(Conflict):
            InventoryLedger.update_adjustment_lot(lot, customer, other_material, '1000', '900')

        lot.refresh_from_db()
        assert lot.material_id != other_material.pk

    def test_update_requires_remaining(self, make_lot, customer, material):
        lot = make_lot()
        with pytest.raises(ValidationError):
            InventoryLedger.update_adjustment_lot(lot, customer, material, '1000', None)

    def test_converted_lots_are_not_editable(self, make_lot, customer, material):
        lot = make_lot(source_type=GroundInventoryLot.SOURCE_RAILCAR_CONVERSION)
        with pytest.raises(ValidationError):
            InventoryLedger.update_adjustment_lot(lot, customer, material, '1000', '1000')
        with pytest.raises(ValidationError):
            InventoryLedger.delete_adjustment_lot(lot)

    def test_delete_refused_with_allocations(self, make_lot, make_draft_bol, customer, material):
        lot = make_lot()
        bol = make_draft_bol()
        _allocate(lot, bol, '10')

        with pytest.raises(Conflict):
            InventoryLedger.delete_adjustment_lot(lot)
        assert GroundInventoryLot.objects.filter(pk=lot.pk).exists()

    def test_delete_unused_lot(self, make_lot):
        lot = make_lot()
        InventoryLedger.delete_adjustment_lot(lot)
        assert not GroundInventoryLot.objects.filter(pk=lot.pk).exists()


@pytest.mark.django_db
def test_archive_lot(make_lot):
    lot = make_lot()
    InventoryLedger.archive_lot(lot)
    lot.refresh_from_db()
    assert lot.status == GroundInventoryLot.STATUS_ARCHIVED


@pytest.mark.django_db
def test_summarize_lots_groups_by_material(make_lot, material, other_material):
    make_lot(starting_weight=Decimal('1000'), remaining_weight=Decimal('400'))
    make_lot(starting_weight=Decimal('500'))
    make_lot(material=other_material, starting_weight=Decimal('200'))

    summary, totals = InventoryLedger.summarize_lots(
        GroundInventoryLot.objects.select_related('material')
    )

    assert [row['material_name'] for row in summary] == ['Bag Lime', 'Frac Sand 40/70']
    sand = summary[1]
    assert sand['lot_count'] == 2
    assert sand['total_starting_weight'] == Decimal('1500')
    assert sand['total_remaining_weight'] == Decimal('900')
    assert totals == {
        'total_starting_weight': Decimal('1700'),
        'total_remaining_weight': Decimal('1100'),
    }
