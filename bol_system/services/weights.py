"""
Weight calculations for truck loads.

All weights are pounds held as Decimal; tons are short tons (2000 lbs).
Callers are responsible for checking gross >= tare before calling.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from ..exceptions import ValidationError

TON_DIVISOR = Decimal('2000')
TON_PLACES = Decimal('0.000001')


@dataclass(frozen=True)
class LegWeights:
    gross_weight: Decimal
    tare_weight: Decimal
    net_weight: Decimal
    ton_weight: Decimal


@dataclass(frozen=True)
class BOLWeights:
    primary: LegWeights
    secondary: Optional[LegWeights]
    net_weight: Decimal
    ton_weight: Decimal


def to_decimal(value, field_name='weight'):
    """Coerce user input to Decimal. None and '' pass through as None."""
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    return result


def to_tons(net_weight):
    return (net_weight / TON_DIVISOR).quantize(TON_PLACES)


def leg_weights(gross, tare):
    gross = to_decimal(gross, 'gross_weight')
    tare = to_decimal(tare, 'tare_weight')
    net = gross - tare
    return LegWeights(gross_weight=gross, tare_weight=tare, net_weight=net, ton_weight=to_tons(net))


def combine(primary, secondary=None):
    net = primary.net_weight + (secondary.net_weight if secondary is not None else Decimal('0'))
    return BOLWeights(primary=primary, secondary=secondary, net_weight=net, ton_weight=to_tons(net))


def compute_bol_weights(gross, tare, secondary_gross=None, secondary_tare=None, split_load=False):
    """
    Derive per-leg and combined net/ton weights.

    Returns None when the primary leg has not been weighed yet (Draft BOLs).
    The secondary leg only counts when split_load is set and both of its
    weights are present.
    """
    if gross is None or tare is None:
        return None

    primary = leg_weights(gross, tare)
    secondary = None
    if split_load and secondary_gross is not None and secondary_tare is not None:
        secondary = leg_weights(secondary_gross, secondary_tare)
    return combine(primary, secondary)
