from rest_framework.permissions import BasePermission

from .exceptions import SubscriptionRequired
from .models import Admin, StationOwner
from .services import check_subscription


class IsOwner(BasePermission):
    message = 'Owner access required'

    def has_permission(self, request, view):
        return isinstance(request.user, StationOwner)


class IsAdmin(BasePermission):
    message = 'Admin access required'

    def has_permission(self, request, view):
        return isinstance(request.user, Admin)


class IsSuperAdmin(BasePermission):
    message = 'Superadmin access required'

    def has_permission(self, request, view):
        return isinstance(request.user, Admin) and request.user.role == Admin.ROLE_SUPERADMIN


class HasActiveSubscription(BasePermission):
    """
    Owner write actions need a valid subscription (grace period included).
    Read-only methods are always allowed. The computed status is kept on the
    request so views can add grace-period warning headers.
    """

    def has_permission(self, request, view):
        if not isinstance(request.user, StationOwner):
            return False
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return True

        subscription = check_subscription(request.user)
        request.subscription_status = subscription
        if not subscription.is_valid:
            raise SubscriptionRequired(subscription)
        return True
