"""
Railcar release and residual-weight conversion.

When a railcar is released as empty with weight still on the books, that
residual weight becomes a ground inventory lot. Conversion is keyed by a
token derived from stable identifiers so a retried release never creates a
second lot.
"""
import hashlib

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
import logging

from ..exceptions import Conflict, ValidationError
from .weights import to_decimal

logger = logging.getLogger(__name__)


def build_conversion_token(customer_id, railcar_id, shipment_number, railcar_pk):
    parts = [
        str(customer_id or '').strip(),
        str(railcar_id or '').strip().upper(),
        str(shipment_number or '').strip(),
        str(railcar_pk or '').strip(),
    ]
    digest = hashlib.sha256('|'.join(parts).encode('utf-8')).hexdigest()
    return f"railcar-release:{digest}"


def ground_inventory_enabled_for(customer):
    return bool(getattr(settings, 'GROUND_INVENTORY_ENABLED', True) and customer.enable_ground_inventory)


class ReleaseConversionService:

    @staticmethod
    def convert(railcar, remaining_weight, actor=None):
        """
        Convert a released railcar's residual weight into a ground inventory lot.

        Returns:
            (lot, created) - the existing lot is returned unchanged when this
            release was already converted
        """
        from ..models import GroundInventoryLot

        remaining_weight = to_decimal(remaining_weight, 'remaining_weight')
        if remaining_weight is None or remaining_weight <= 0:
            raise ValidationError('Remaining weight must be positive to convert a railcar')
        if railcar.material_id is None:
            raise ValidationError('Railcar has no assigned material')

        shipment_number = (railcar.railcar_bol_number or '').strip()
        token = build_conversion_token(railcar.customer_id, railcar.railcar_id, shipment_number, railcar.pk)

        existing = GroundInventoryLot.objects.filter(conversion_token=token).first()
        if existing is not None:
            logger.info(f"Railcar {railcar.railcar_id} already converted to lot {existing.pk}")
            return existing, False

        try:
            with transaction.atomic():
                lot = GroundInventoryLot.objects.create(
                    customer_id=railcar.customer_id,
                    material_id=railcar.material_id,
                    source_type=GroundInventoryLot.SOURCE_RAILCAR_CONVERSION,
                    source_railcar=railcar,
                    source_railcar_number=railcar.railcar_id,
                    source_rail_shipment_bol_number=shipment_number,
                    conversion_token=token,
                    starting_weight=remaining_weight,
                    remaining_weight=remaining_weight,
                    received_at=timezone.now(),
                    received_by=actor,
                    status=GroundInventoryLot.STATUS_AVAILABLE,
                    notes=f"Converted from railcar {railcar.railcar_id} released as empty",
                )
        except IntegrityError:
            # A concurrent release won the unique token
            lot = GroundInventoryLot.objects.get(conversion_token=token)
            logger.info(f"Railcar {railcar.railcar_id} conversion raced; using lot {lot.pk}")
            return lot, False

        logger.info(
            f"Converted railcar {railcar.railcar_id} residual {remaining_weight} lbs into lot {lot.pk}"
        )
        return lot, True

    @staticmethod
    def release_as_empty(railcar, actor=None):
        """
        Mark an Available railcar as Released and convert any residual weight.

        Returns:
            (railcar, lot) where lot is None when no conversion happened
        """
        from ..models import Railcar

        if railcar.current_status != Railcar.STATUS_AVAILABLE:
            raise Conflict('Only Available railcars can be released as empty')

        railcar.current_status = Railcar.STATUS_RELEASED
        railcar.le_status = railcar.le_status or settings.RAILCAR_RELEASE_LE_STATUS
        railcar.released_as_empty_at = timezone.now()
        if actor is not None:
            railcar.released_as_empty_by = actor
        railcar.save()
        logger.info(f"Railcar {railcar.railcar_id} released as empty")

        if not ground_inventory_enabled_for(railcar.customer) or railcar.material_id is None:
            return railcar, None

        remaining = railcar.remaining_weight
        if remaining <= 0:
            return railcar, None

        lot, _created = ReleaseConversionService.convert(railcar, remaining, actor=actor)
        return railcar, lot
