"""
Customer scope middleware.

Sets ``request.customer_scope`` on every request:
- None for admin and internal users (no restriction)
- a list of customer ids for customer-role users, taken from
  UserCustomerAccess (empty list when the user has no links)

All API views filter by request.customer_scope for data isolation
(see bol_system.security.get_customer_filter).
"""
import logging

from .decorators import ROLE_CUSTOMER, get_session_role

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('transload.security')


class CustomerScopeMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.customer_scope = None

        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated and get_session_role(request) == ROLE_CUSTOMER:
            request.customer_scope = self._customer_ids_for(user)
            if not request.customer_scope:
                security_logger.warning(
                    f"[CustomerScopeMiddleware] Customer user {user.email or user.username} "
                    f"has no customer access records"
                )
            else:
                logger.debug(f"[CustomerScopeMiddleware] Scope for {user.email}: {request.customer_scope}")

        return self.get_response(request)

    def _customer_ids_for(self, user):
        from bol_system.models import UserCustomerAccess

        if not user.email:
            return []
        return list(
            UserCustomerAccess.objects.filter(
                user_email__iexact=user.email,
                customer__is_active=True,
            ).values_list('customer_id', flat=True)
        )
