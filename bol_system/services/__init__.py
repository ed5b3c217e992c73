"""
BOL system services.

Centralized business logic for BOL completion and ground inventory.
"""
from .bol_lifecycle import BOLLifecycleService
from .inventory_ledger import InventoryLedger
from .railcar_lookup import find_active_shipment_number
from .release_conversion import ReleaseConversionService
from .weights import compute_bol_weights

__all__ = [
    'BOLLifecycleService',
    'InventoryLedger',
    'ReleaseConversionService',
    'compute_bol_weights',
    'find_active_shipment_number',
]
