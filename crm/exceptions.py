import logging
import math

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base class for subscription and payment failures"""


class UnknownPlan(BillingError):
    pass


class PaymentRecordNotFound(BillingError):
    pass


class PaymentGatewayError(BillingError):
    pass


class GatewayNotConfigured(PaymentGatewayError):
    pass


class SubscriptionRequired(exceptions.APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Please purchase or renew your subscription to access this feature'
    default_code = 'subscription_required'

    def __init__(self, subscription):
        self.subscription = subscription
        super().__init__(subscription.message or self.default_detail)


def api_exception_handler(exc, context):
    """Render framework errors as {"error": ...} like the hand-written responses"""
    response = exception_handler(exc, context)
    if response is None:
        logger.exception("Unhandled error in %s", context.get('view').__class__.__name__, exc_info=exc)
        set_rollback()
        return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, SubscriptionRequired):
        subscription = exc.subscription
        response.data = {
            'error': 'Subscription required',
            'message': str(exc.detail),
            'subscription_status': {
                'is_expired': subscription.is_expired,
                'expiry_date': subscription.expiry_date,
                'days_remaining': subscription.days_remaining,
            },
        }
    elif isinstance(exc, exceptions.Throttled):
        response.data = {
            'error': 'Too many requests',
            'message': f"Rate limit exceeded. Please try again in {math.ceil(exc.wait or 0)} seconds.",
        }
    elif isinstance(exc, exceptions.ValidationError):
        response.data = {'error': 'Invalid input', 'details': exc.detail}
    elif isinstance(exc.detail, (list, dict)):
        response.data = {'error': 'Request failed', 'details': exc.detail}
    else:
        response.data = {'error': str(exc.detail)}

    if response.status_code >= 500:
        logger.error("API error in %s: %s", context.get('view').__class__.__name__, exc)
    return response
