"""
RBAC decorators for the transload API.

The role is stored in the session at login as
``request.session['transload_role'] = {'role': <role>}``.
Decorators read the session and enforce permissions.

Roles:
- admin: Full access (read + write + ground inventory adjustments)
- internal: Yard and office staff (read + write)
- customer: Read-only access limited to the customers linked in
  UserCustomerAccess

Usage:
    from transload_project.decorators import require_role

    @require_role('admin', 'internal')
    def complete_bol(request, bol_id):
        ...
"""

from functools import wraps
from django.http import JsonResponse
import logging

logger = logging.getLogger('transload.security')

ROLE_ADMIN = 'admin'
ROLE_INTERNAL = 'internal'
ROLE_CUSTOMER = 'customer'
ALL_ROLES = (ROLE_ADMIN, ROLE_INTERNAL, ROLE_CUSTOMER)


def get_session_role(request):
    """Return the role stored in the session, or None."""
    role_info = request.session.get('transload_role') or {}
    return role_info.get('role')


def _deny(request, view_func, allowed_roles, user_role):
    user_email = request.user.email if request.user.is_authenticated else 'unknown'
    logger.warning(
        f"Access denied: {user_email} (role={user_role or 'none'}) "
        f"attempted {view_func.__name__} {request.method}. "
        f"Required roles: {', '.join(allowed_roles)}"
    )
    return JsonResponse(
        {
            'error': (
                f"Access denied. This action requires one of the following roles: "
                f"{', '.join(allowed_roles)}. Your current role: {user_role or 'none'}."
            )
        },
        status=403,
    )


def require_role(*allowed_roles):
    """
    Require specific role(s) for view access.

    - If the session holds one of the allowed roles: execute the view
    - Otherwise: 403 with a JSON error, logged to the security logger
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            user_role = get_session_role(request)

            if not user_role:
                user_email = request.user.email if request.user.is_authenticated else 'unknown'
                logger.error(
                    f"Missing transload_role in session for {user_email} "
                    f"attempting {view_func.__name__}"
                )
                return JsonResponse(
                    {'error': 'Session expired or missing role data. Please log in again.'},
                    status=403,
                )

            if user_role in allowed_roles:
                return view_func(request, *args, **kwargs)

            return _deny(request, view_func, allowed_roles, user_role)

        return wrapped_view
    return decorator


def require_role_for_writes(*allowed_roles):
    """
    Require specific role(s) for write operations (POST, PUT, PATCH, DELETE).

    GET requests only need a valid role; any role may read (customer users
    are then scoped by CustomerScopeMiddleware).
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapped_view(request, *args, **kwargs):
            user_role = get_session_role(request)

            if user_role not in ALL_ROLES:
                return _deny(request, view_func, allowed_roles, user_role)

            if request.method == 'GET' or user_role in allowed_roles:
                return view_func(request, *args, **kwargs)

            return _deny(request, view_func, allowed_roles, user_role)

        return wrapped_view
    return decorator
