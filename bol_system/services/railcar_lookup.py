"""Carrier shipment number lookup for railcar-source BOLs."""
import logging

logger = logging.getLogger(__name__)


def find_active_shipment_number(customer_id, railcar_id):
    """
    Return the carrier shipment BOL number of the customer's active railcar.

    Returns '' when either input is blank or no active railcar matches.
    """
    from ..models import Railcar

    customer_id = str(customer_id or '').strip()
    railcar_id = str(railcar_id or '').strip()
    if not customer_id or not railcar_id:
        return ''

    railcar = (
        Railcar.objects
        .filter(customer_id=customer_id, railcar_id__iexact=railcar_id, is_active=True)
        .only('railcar_bol_number')
        .first()
    )
    if railcar is None:
        logger.debug(f"No active railcar {railcar_id} for customer {customer_id}")
        return ''
    return (railcar.railcar_bol_number or '').strip()
