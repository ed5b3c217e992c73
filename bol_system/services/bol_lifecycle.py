"""
BOL lifecycle service.

Draft -> Completed state machine for truck BOLs, including ground inventory
consumption. Completion runs as a saga: lots are debited first, the BOL is
flipped to Completed with a version-guarded UPDATE, and any debit is restored
if that write fails. Allocation history is appended only after the BOL is
saved.
"""
from datetime import date, datetime

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
import logging

from ..exceptions import Conflict, DomainError, NotFound, PersistenceFailure, ValidationError
from .inventory_ledger import AllocationEntry, InventoryLedger
from .railcar_lookup import find_active_shipment_number
from .weights import to_decimal

logger = logging.getLogger(__name__)

REQUIRED_CREATE_FIELDS = (
    'order', 'bol_date', 'customer', 'shipper', 'project', 'material', 'truck_id', 'trailer_id',
)
COMPLETION_REQUIRED_FIELDS = ('gross_weight', 'tare_weight', 'weigh_in_time', 'weigh_out_time')
REQUIRED_REF_FIELDS = ('customer', 'shipper', 'project', 'material')

EDITABLE_FIELDS = (
    'bol_date', 'customer', 'shipper', 'project', 'material',
    'inventory_source', 'ground_inventory_lot', 'secondary_ground_inventory_lot',
    'split_load', 'railcar_id', 'secondary_railcar_id',
    'rail_shipment_bol_number', 'secondary_rail_shipment_bol_number',
    'gross_weight', 'tare_weight', 'secondary_gross_weight', 'secondary_tare_weight',
    'weigh_in_time', 'weigh_out_time',
    'driver_name', 'driver_signature_image', 'signed_at',
    'truck_id', 'trailer_id', 'comments',
)
FK_FIELDS = {
    'customer': 'Customer',
    'shipper': 'Shipper',
    'project': 'Project',
    'material': 'Material',
    'ground_inventory_lot': 'GroundInventoryLot',
    'secondary_ground_inventory_lot': 'GroundInventoryLot',
}
WEIGHT_FIELDS = ('gross_weight', 'tare_weight', 'secondary_gross_weight', 'secondary_tare_weight')
DATETIME_FIELDS = ('weigh_in_time', 'weigh_out_time', 'signed_at')

# Columns written by the guarded completion UPDATE
COMPLETION_COLUMNS = (
    'bol_date', 'customer_id', 'shipper_id', 'project_id', 'material_id',
    'inventory_source', 'ground_inventory_lot_id', 'secondary_ground_inventory_lot_id',
    'ground_inventory_allocated_weight', 'secondary_ground_inventory_allocated_weight',
    'status', 'gross_weight', 'tare_weight', 'primary_net_weight', 'primary_ton_weight',
    'split_load', 'secondary_railcar_id', 'secondary_gross_weight', 'secondary_tare_weight',
    'secondary_net_weight', 'secondary_ton_weight', 'net_weight', 'ton_weight',
    'weigh_in_time', 'weigh_out_time', 'driver_name', 'driver_signature_image', 'signed_at',
    'railcar_id', 'rail_shipment_bol_number', 'secondary_rail_shipment_bol_number',
    'comments', 'completed_at', 'completed_by_id',
)


def normalize_inventory_source(value):
    from ..models import BOL

    if str(value or '').strip().lower() == BOL.SOURCE_GROUND:
        return BOL.SOURCE_GROUND
    return BOL.SOURCE_RAILCAR


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _trim(value):
    return str(value or '').strip()


def _to_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'on')
    return bool(value)


def _pk(value):
    return getattr(value, 'pk', value) or None


def _to_datetime(value, field_name):
    if value is None or isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value).strip())
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f"{field_name} must be a valid date and time")
    if parsed is not None and timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _to_date(value, field_name):
    if value is None or isinstance(value, date):
        return value.date() if isinstance(value, datetime) else value
    try:
        parsed = parse_date(str(value).strip())
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{field_name} must be a valid date")
    return parsed


def _check_leg(gross, tare, label):
    if gross is not None and gross < 0:
        raise ValidationError(f"{label} gross weight cannot be negative")
    if tare is not None and tare < 0:
        raise ValidationError(f"{label} tare weight cannot be negative")
    if gross is not None and tare is not None and gross < tare:
        raise ValidationError(
            f"{label} gross weight must be greater than or equal to {label.lower()} tare weight"
        )


def _get_instance(model_name, pk, label):
    from .. import models

    model = getattr(models, model_name)
    try:
        return model.objects.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"{label} not found")


class BOLLifecycleService:
    """
    Create, complete, update and delete truck BOLs.

    All methods raise bol_system.exceptions.DomainError subclasses on failure.
    """

    @staticmethod
    def create_bol(data, actor):
        """
        Create a BOL in Draft or Completed status.

        A BOL created as Completed is saved as Draft and completed through
        complete_bol() in the same transaction, so ground inventory is debited
        and allocations are recorded exactly as for a normal completion.
        """
        from ..models import BOL

        data = dict(data)
        source = normalize_inventory_source(data.get('inventory_source'))
        requested_status = data.get('status') or BOL.STATUS_DRAFT
        if requested_status not in (BOL.STATUS_DRAFT, BOL.STATUS_COMPLETED):
            raise ValidationError('Invalid status. Use Draft or Completed.')

        missing = [field for field in REQUIRED_CREATE_FIELDS if _is_blank(_pk(data.get(field)))]
        if source == BOL.SOURCE_RAILCAR and _is_blank(data.get('railcar_id')):
            missing.append('railcar_id')
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

        if requested_status == BOL.STATUS_COMPLETED:
            for field in COMPLETION_REQUIRED_FIELDS:
                if _is_blank(data.get(field)):
                    raise ValidationError(f"Missing required completion field: {field}")

        gross = to_decimal(data.get('gross_weight'), 'gross_weight')
        tare = to_decimal(data.get('tare_weight'), 'tare_weight')
        secondary_gross = to_decimal(data.get('secondary_gross_weight'), 'secondary_gross_weight')
        secondary_tare = to_decimal(data.get('secondary_tare_weight'), 'secondary_tare_weight')
        _check_leg(gross, tare, 'Primary')
        _check_leg(secondary_gross, secondary_tare, 'Secondary')

        order = _get_instance('Order', _pk(data['order']), 'Order')
        customer = _get_instance('Customer', _pk(data['customer']), 'Customer')
        shipper = _get_instance('Shipper', _pk(data['shipper']), 'Shipper')
        project = _get_instance('Project', _pk(data['project']), 'Project')
        material = _get_instance('Material', _pk(data['material']), 'Material')

        split_load = _to_bool(data.get('split_load'))
        railcar_id = _trim(data.get('railcar_id'))
        secondary_railcar_id = _trim(data.get('secondary_railcar_id'))
        rail_shipment_bol_number = _trim(data.get('rail_shipment_bol_number'))
        secondary_rail_shipment_bol_number = _trim(data.get('secondary_rail_shipment_bol_number'))
        primary_lot_id = _pk(data.get('ground_inventory_lot'))
        secondary_lot_id = _pk(data.get('secondary_ground_inventory_lot'))

        if source == BOL.SOURCE_GROUND:
            railcar_id = secondary_railcar_id = ''
            rail_shipment_bol_number = secondary_rail_shipment_bol_number = ''
            InventoryLedger.check_usable(primary_lot_id, customer.pk, material.pk)
            if split_load:
                if not secondary_lot_id:
                    raise ValidationError('Secondary ground inventory lot is required for split ground loads')
                if str(secondary_lot_id) == str(primary_lot_id):
                    raise ValidationError('Primary and secondary ground inventory lots must be different')
                InventoryLedger.check_usable(secondary_lot_id, customer.pk, material.pk)
            else:
                secondary_lot_id = None
                secondary_gross = secondary_tare = None
        else:
            primary_lot_id = secondary_lot_id = None
            if not rail_shipment_bol_number:
                rail_shipment_bol_number = find_active_shipment_number(customer.pk, railcar_id)

        bol = BOL(
            order=order,
            bol_date=_to_date(data.get('bol_date'), 'bol_date'),
            customer=customer,
            shipper=shipper,
            project=project,
            material=material,
            inventory_source=source,
            ground_inventory_lot_id=primary_lot_id,
            secondary_ground_inventory_lot_id=secondary_lot_id,
            status=BOL.STATUS_DRAFT,
            gross_weight=gross,
            tare_weight=tare,
            split_load=split_load,
            secondary_railcar_id=secondary_railcar_id,
            secondary_gross_weight=secondary_gross,
            secondary_tare_weight=secondary_tare,
            weigh_in_time=_to_datetime(data.get('weigh_in_time'), 'weigh_in_time'),
            weigh_out_time=_to_datetime(data.get('weigh_out_time'), 'weigh_out_time'),
            driver_name=_trim(data.get('driver_name')),
            driver_signature_image=data.get('driver_signature_image') or '',
            signed_at=_to_datetime(data.get('signed_at'), 'signed_at'),
            railcar_id=railcar_id,
            rail_shipment_bol_number=rail_shipment_bol_number,
            secondary_rail_shipment_bol_number=secondary_rail_shipment_bol_number,
            truck_id=_trim(data.get('truck_id')),
            trailer_id=_trim(data.get('trailer_id')),
            comments=data.get('comments') or '',
            created_by=actor,
        )

        if requested_status == BOL.STATUS_DRAFT:
            bol.save()
            logger.info(f"Created Draft BOL {bol.pk} for order {order.order_number} ({source} source)")
            return bol

        completion = {
            'gross_weight': gross,
            'tare_weight': tare,
            'weigh_in_time': data.get('weigh_in_time'),
            'weigh_out_time': data.get('weigh_out_time'),
            'split_load': split_load,
            'secondary_railcar_id': secondary_railcar_id,
            'secondary_gross_weight': secondary_gross,
            'inventory_source': source,
            'ground_inventory_lot': primary_lot_id,
            'secondary_ground_inventory_lot': secondary_lot_id,
            'driver_name': data.get('driver_name'),
            'driver_signature_image': data.get('driver_signature_image'),
            'signed_at': data.get('signed_at'),
            'rail_shipment_bol_number': rail_shipment_bol_number,
            'secondary_rail_shipment_bol_number': secondary_rail_shipment_bol_number,
            'comments': data.get('comments'),
        }
        with transaction.atomic():
            bol.save()
            logger.info(f"Created BOL {bol.pk} for order {order.order_number}; completing at creation")
            return BOLLifecycleService.complete_bol(bol.pk, actor, completion)

    @staticmethod
    def complete_bol(bol_id, actor, payload):
        """
        Complete a Draft BOL.

        Steps, in order:
            1. Refuse if already Completed
            2. Backfill references and BOL date from the Order
            3. Split-load and ground lot consistency
            4. Weight and weigh-time validation
            5. Derived weights
            6. Carrier shipment numbers (railcar source)
            7. Ground inventory consumption (secondary failure restores primary)
            8. Version-guarded save; any debit is restored on failure
            9. Allocation history

        Raises:
            Conflict, NotFound, ValidationError, ScopeMismatch, Unavailable,
            InsufficientQuantity, PersistenceFailure
        """
        from ..models import BOL

        try:
            bol = BOL.objects.select_related('order').get(pk=bol_id)
        except (BOL.DoesNotExist, ValueError, TypeError):
            raise NotFound('BOL not found')

        # 1. terminal lock
        if bol.status == BOL.STATUS_COMPLETED:
            raise Conflict('Completed BOLs are locked and cannot be modified')
        expected_version = bol.version

        # 2. backfill from order
        missing = [field for field in REQUIRED_REF_FIELDS if getattr(bol, f'{field}_id') is None]
        if (missing or bol.bol_date is None) and bol.order_id:
            order = bol.order
            for field in REQUIRED_REF_FIELDS:
                if getattr(bol, f'{field}_id') is None and getattr(order, f'{field}_id') is not None:
                    setattr(bol, f'{field}_id', getattr(order, f'{field}_id'))
            if bol.bol_date is None:
                bol.bol_date = order.order_date or timezone.localdate()
        missing = [field for field in REQUIRED_REF_FIELDS if getattr(bol, f'{field}_id') is None]
        if missing:
            raise ValidationError(f"BOL is missing required fields: {', '.join(missing)}", fields=missing)

        # 3. split / lot consistency
        split_load = _to_bool(payload['split_load']) if 'split_load' in payload else bol.split_load
        source = normalize_inventory_source(payload.get('inventory_source') or bol.inventory_source)
        primary_lot_id = _pk(payload.get('ground_inventory_lot')) or bol.ground_inventory_lot_id
        secondary_lot_id = (
            _pk(payload.get('secondary_ground_inventory_lot')) or bol.secondary_ground_inventory_lot_id
        )
        secondary_railcar_id = _trim(payload.get('secondary_railcar_id', bol.secondary_railcar_id))
        secondary_gross_input = payload.get('secondary_gross_weight')

        if source == BOL.SOURCE_GROUND:
            InventoryLedger.check_usable(primary_lot_id, bol.customer_id, bol.material_id)
            if split_load:
                if not secondary_lot_id:
                    raise ValidationError('Secondary ground inventory lot is required for split ground loads')
                if str(secondary_lot_id) == str(primary_lot_id):
                    raise ValidationError('Primary and secondary ground inventory lots must be different')
                InventoryLedger.check_usable(secondary_lot_id, bol.customer_id, bol.material_id)
        elif split_load:
            if not secondary_railcar_id:
                raise ValidationError('Secondary railcar ID is required for split loads')
            if secondary_railcar_id.upper() == _trim(bol.railcar_id).upper():
                raise ValidationError('Secondary railcar ID must be different from primary railcar ID')
        if split_load and _is_blank(secondary_gross_input):
            raise ValidationError('Secondary gross weight is required for split loads')

        # 4. weights and times
        for field in ('gross_weight', 'tare_weight', 'weigh_in_time', 'weigh_out_time'):
            if _is_blank(payload.get(field)):
                raise ValidationError(f"Missing required completion field: {field}")
        gross = to_decimal(payload.get('gross_weight'), 'gross_weight')
        tare = to_decimal(payload.get('tare_weight'), 'tare_weight')
        _check_leg(gross, tare, 'Primary')
        weigh_in_time = _to_datetime(payload.get('weigh_in_time'), 'weigh_in_time')
        weigh_out_time = _to_datetime(payload.get('weigh_out_time'), 'weigh_out_time')

        secondary_gross = secondary_tare = None
        if split_load:
            secondary_gross = to_decimal(secondary_gross_input, 'secondary_gross_weight')
            # the truck's gross after the first leg is the tare for the second
            secondary_tare = gross
            _check_leg(secondary_gross, secondary_tare, 'Secondary')

        bol.gross_weight = gross
        bol.tare_weight = tare
        bol.inventory_source = source
        bol.split_load = split_load
        bol.ground_inventory_lot_id = primary_lot_id if source == BOL.SOURCE_GROUND else None
        bol.secondary_ground_inventory_lot_id = (
            secondary_lot_id if source == BOL.SOURCE_GROUND and split_load else None
        )
        bol.railcar_id = '' if source == BOL.SOURCE_GROUND else _trim(bol.railcar_id)
        bol.secondary_railcar_id = secondary_railcar_id if source == BOL.SOURCE_RAILCAR and split_load else ''
        bol.secondary_gross_weight = secondary_gross
        bol.secondary_tare_weight = secondary_tare
        bol.weigh_in_time = weigh_in_time
        bol.weigh_out_time = weigh_out_time
        bol.driver_name = _trim(payload.get('driver_name', bol.driver_name))
        bol.driver_signature_image = payload.get('driver_signature_image') or bol.driver_signature_image
        bol.signed_at = _to_datetime(payload.get('signed_at'), 'signed_at') or timezone.now()
        if payload.get('comments') is not None:
            bol.comments = payload['comments']

        # 5. derived weights
        bol.normalize_source_fields()
        bol.apply_derived_weights()

        # 6. shipment numbers; supplied numbers win, lookup fills blanks
        if source == BOL.SOURCE_RAILCAR:
            bol.rail_shipment_bol_number = (
                _trim(payload.get('rail_shipment_bol_number'))
                or find_active_shipment_number(bol.customer_id, bol.railcar_id)
            )
            bol.secondary_rail_shipment_bol_number = (
                _trim(payload.get('secondary_rail_shipment_bol_number'))
                or find_active_shipment_number(bol.customer_id, bol.secondary_railcar_id)
            ) if split_load else ''
        else:
            bol.rail_shipment_bol_number = ''
            bol.secondary_rail_shipment_bol_number = ''

        # 7. ground inventory consumption
        debits = []
        if source == BOL.SOURCE_GROUND:
            consumed_primary = gross - tare
            consumed_secondary = (secondary_gross - secondary_tare) if split_load else to_decimal(0)
            if consumed_primary < 0 or consumed_secondary < 0:
                raise ValidationError('Computed ground inventory consumption cannot be negative')

            primary = InventoryLedger.consume(
                primary_lot_id, bol.customer_id, bol.material_id, consumed_primary
            )
            debits.append(primary)
            if split_load:
                try:
                    secondary = InventoryLedger.consume(
                        secondary_lot_id, bol.customer_id, bol.material_id, consumed_secondary
                    )
                except (DomainError, DatabaseError):
                    BOLLifecycleService._restore_debits(bol, debits)
                    raise
                debits.append(secondary)

            bol.ground_inventory_allocated_weight = consumed_primary
            bol.secondary_ground_inventory_allocated_weight = consumed_secondary if split_load else None

        # 8. status flip
        bol.status = BOL.STATUS_COMPLETED
        bol.completed_at = timezone.now()
        bol.completed_by = actor

        try:
            updated = BOLLifecycleService._persist_completion(bol, expected_version)
        except DatabaseError as e:
            logger.error(f"Failed to save completed BOL {bol.pk}: {e}", exc_info=True)
            BOLLifecycleService._restore_debits(bol, debits)
            raise PersistenceFailure('Storage error while completing BOL')
        if not updated:
            BOLLifecycleService._restore_debits(bol, debits)
            logger.warning(f"BOL {bol.pk} changed during completion (expected version {expected_version})")
            raise Conflict('BOL was modified or completed by another request')

        bol.refresh_from_db()
        logger.info(
            f"BOL {bol.pk} completed by {getattr(actor, 'email', actor)}: "
            f"net {bol.net_weight} lbs ({bol.ton_weight} tons), source {source}"
        )

        # 9. allocation history
        entries = [
            AllocationEntry(
                lot_id=debit.lot.pk,
                bol_id=bol.pk,
                customer_id=bol.customer_id,
                material_id=bol.material_id,
                weight=debit.consumed_weight,
                actor=actor,
            )
            for debit in debits
            if debit.consumed_weight > 0
        ]
        if entries:
            try:
                InventoryLedger.record_allocations(entries)
            except DatabaseError as e:
                logger.error(
                    f"Allocation history not recorded for completed BOL {bol.pk} "
                    f"(lots {[entry.lot_id for entry in entries]}): {e}. "
                    f"Run reconcile_allocations to rebuild.",
                    exc_info=True,
                )
        return bol

    @staticmethod
    def _persist_completion(bol, expected_version):
        """Compare-and-set write of a completed BOL. Returns rows updated."""
        from ..models import BOL

        fields = {column: getattr(bol, column) for column in COMPLETION_COLUMNS}
        with transaction.atomic():
            return BOL.objects.filter(
                pk=bol.pk,
                status=BOL.STATUS_DRAFT,
                version=expected_version,
            ).update(version=F('version') + 1, updated_at=timezone.now(), **fields)

    @staticmethod
    def _restore_debits(bol, debits):
        for debit in debits:
            if debit.consumed_weight <= 0:
                continue
            try:
                InventoryLedger.restore(debit.lot.pk, debit.consumed_weight)
            except DatabaseError as e:
                logger.error(
                    f"Failed to restore {debit.consumed_weight} lbs to lot {debit.lot.pk} "
                    f"for BOL {bol.pk}: {e}",
                    exc_info=True,
                )

    @staticmethod
    @transaction.atomic
    def update_bol(bol_id, patch, actor):
        """Edit a Draft BOL. Derived, status and completion fields are not patchable."""
        from ..models import BOL

        rejected = sorted(set(patch) - set(EDITABLE_FIELDS))
        if rejected:
            raise ValidationError(f"Fields cannot be edited: {', '.join(rejected)}", fields=rejected)

        try:
            bol = BOL.objects.select_for_update().get(pk=bol_id)
        except (BOL.DoesNotExist, ValueError, TypeError):
            raise NotFound('BOL not found')
        if bol.status != BOL.STATUS_DRAFT:
            raise Conflict('Completed BOLs are locked and cannot be modified')

        for field, value in patch.items():
            if field in FK_FIELDS:
                pk = _pk(value)
                setattr(bol, f'{field}_id', _get_instance(FK_FIELDS[field], pk, field).pk if pk else None)
            elif field in WEIGHT_FIELDS:
                setattr(bol, field, to_decimal(value, field))
            elif field in DATETIME_FIELDS:
                setattr(bol, field, _to_datetime(value, field))
            elif field == 'bol_date':
                bol.bol_date = _to_date(value, field)
            elif field == 'split_load':
                bol.split_load = _to_bool(value)
            elif field == 'inventory_source':
                bol.inventory_source = normalize_inventory_source(value)
            elif field == 'driver_signature_image' or field == 'comments':
                setattr(bol, field, value or '')
            else:
                setattr(bol, field, _trim(value))

        _check_leg(bol.gross_weight, bol.tare_weight, 'Primary')
        _check_leg(bol.secondary_gross_weight, bol.secondary_tare_weight, 'Secondary')
        if bol.inventory_source == BOL.SOURCE_GROUND and 'ground_inventory_lot' in patch:
            InventoryLedger.check_usable(bol.ground_inventory_lot_id, bol.customer_id, bol.material_id)

        bol.version = F('version') + 1
        bol.save()
        bol.refresh_from_db()
        logger.info(f"Updated Draft BOL {bol.pk} ({', '.join(sorted(patch))}) by {getattr(actor, 'email', actor)}")
        return bol

    @staticmethod
    def delete_bol(bol_id, actor):
        from ..models import BOL

        try:
            bol = BOL.objects.get(pk=bol_id)
        except (BOL.DoesNotExist, ValueError, TypeError):
            raise NotFound('BOL not found')
        if bol.status != BOL.STATUS_DRAFT:
            raise Conflict('Only Draft BOLs can be deleted')
        bol.delete()
        logger.info(f"Deleted Draft BOL {bol_id} by {getattr(actor, 'email', actor)}")
