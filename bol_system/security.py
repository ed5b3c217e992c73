"""
Customer scope utilities.

Provides shared helpers for customer-level access control on top of the
scope set by transload_project.middleware.CustomerScopeMiddleware.
"""

import logging

security_logger = logging.getLogger('transload.security')


def get_customer_scope(request):
    """Customer ids the request is limited to, or None when unrestricted."""
    return getattr(request, 'customer_scope', None)


def get_customer_filter(request, field_prefix=''):
    """
    Get a filter dict for queryset filtering by customer scope.

    Args:
        request: Django request object
        field_prefix: Prefix for the customer field (e.g., 'order__' for related lookups)

    Returns:
        Dict to use in .filter() or empty dict if the request is unrestricted

    Example:
        bols = BOL.objects.filter(**get_customer_filter(request))
        lots = GroundInventoryLot.objects.filter(**get_customer_filter(request))
    """
    scope = get_customer_scope(request)
    if scope is None:
        return {}
    return {f'{field_prefix}customer_id__in': scope}


def validate_customer_access(request, customer_id):
    """
    Check that the requesting user may see the given customer.

    Cross-customer attempts are logged as security warnings. Returns a bool
    rather than raising so callers can respond with 404.
    """
    scope = get_customer_scope(request)
    if scope is None:
        return True
    try:
        allowed = int(customer_id) in scope
    except (TypeError, ValueError):
        allowed = False
    if not allowed:
        security_logger.warning(
            f"Cross-customer access attempt: scope={scope} "
            f"tried to access customer_id={customer_id} "
            f"user={getattr(request.user, 'email', 'anonymous')} "
            f"path={request.path}"
        )
    return allowed
