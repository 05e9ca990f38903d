import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional

import razorpay
import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError

from .exceptions import GatewayNotConfigured, PaymentGatewayError, PaymentRecordNotFound, UnknownPlan
from .models import ActivityLog, Notification, PaymentHistory, StationOwner, SupportTicket

logger = logging.getLogger(__name__)

# Anything the SDK or its HTTP session raises while talking to the gateway
GATEWAY_ERRORS = (
    BadRequestError,
    GatewayError,
    ServerError,
    requests.RequestException,
)

GRACE_PERIOD_DAYS = 3

PLANS = {
    'basic': {'name': 'Basic', 'price': 999, 'duration': 30},
    'standard': {'name': 'Standard', 'price': 2499, 'duration': 30},
    'premium': {'name': 'Premium', 'price': 4999, 'duration': 30},
    'trial': {'name': '7-Day Trial', 'price': 1, 'duration': 7},
}

# Per-station listing plans an admin can attach when adding a station
LISTING_PLANS = {
    'basic': {'amount': Decimal('999'), 'duration_days': 30},
    'premium': {'amount': Decimal('9999'), 'duration_days': 360},
}


def get_plan(plan_id: str) -> Dict:
    try:
        return PLANS[plan_id]
    except KeyError:
        raise UnknownPlan(f"Invalid plan: {plan_id}")


def log_activity(action: str, description: str, owner=None, admin=None, station=None,
                 metadata: Optional[Dict] = None, request=None) -> ActivityLog:
    ip_address = user_agent = ''
    if request is not None:
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
        ip_address = (forwarded.split(',')[0].strip() or
                      request.META.get('HTTP_X_REAL_IP') or
                      request.META.get('REMOTE_ADDR') or 'unknown')
        user_agent = request.META.get('HTTP_USER_AGENT', 'unknown')[:500]

    return ActivityLog.objects.create(
        owner=owner,
        admin=admin,
        station=station,
        action=action,
        description=description,
        metadata=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def notify(owner, title: str, message: str, type: str = 'info', category: str = 'general') -> Notification:
    return Notification.objects.create(
        owner=owner, title=title, message=message, type=type, category=category,
    )


def generate_ticket_number(today=None) -> str:
    """FBT-YYYYMMDD-NNNN, retried until unused"""
    today = today or timezone.now()
    while True:
        number = f"FBT-{today:%Y%m%d}-{random.randint(0, 9999):04d}"
        if not SupportTicket.objects.filter(ticket_number=number).exists():
            return number


@dataclass
class SubscriptionStatus:
    is_valid: bool
    is_expired: bool
    is_in_grace_period: bool
    days_remaining: int
    subscription_type: Optional[str]
    expiry_date: Optional[datetime]
    message: str = ''

    def as_dict(self):
        return {
            'is_valid': self.is_valid,
            'is_expired': self.is_expired,
            'is_in_grace_period': self.is_in_grace_period,
            'days_remaining': self.days_remaining,
            'subscription_type': self.subscription_type,
            'expiry_date': self.expiry_date,
            'message': self.message,
        }


def check_subscription(owner: StationOwner, now: Optional[datetime] = None) -> SubscriptionStatus:
    """
    Classify an owner's subscription.

    Days remaining is rounded up, so a plan ending later today still counts a
    full day. After expiry the owner keeps access for GRACE_PERIOD_DAYS with a
    warning, after which the subscription is invalid.
    """
    if not owner.subscription_type or not owner.subscription_ends_at:
        return SubscriptionStatus(
            is_valid=False, is_expired=False, is_in_grace_period=False, days_remaining=0,
            subscription_type=None, expiry_date=None, message='No active subscription',
        )

    now = now or timezone.now()
    expiry = owner.subscription_ends_at
    days_remaining = math.ceil((expiry - now).total_seconds() / 86400)

    if days_remaining > 0:
        return SubscriptionStatus(
            is_valid=True, is_expired=False, is_in_grace_period=False,
            days_remaining=days_remaining, subscription_type=owner.subscription_type,
            expiry_date=expiry,
        )

    if days_remaining >= -GRACE_PERIOD_DAYS:
        return SubscriptionStatus(
            is_valid=True, is_expired=True, is_in_grace_period=True,
            days_remaining=days_remaining, subscription_type=owner.subscription_type,
            expiry_date=expiry,
            message=(f"Subscription expired {abs(days_remaining)} day(s) ago. "
                     f"Grace period ends in {GRACE_PERIOD_DAYS + days_remaining} day(s)"),
        )

    return SubscriptionStatus(
        is_valid=False, is_expired=True, is_in_grace_period=False,
        days_remaining=days_remaining, subscription_type=owner.subscription_type,
        expiry_date=expiry, message='Subscription has expired. Please renew to continue.',
    )


def activate_subscription(owner: StationOwner, plan_id: str, order_id: str, payment_id: str,
                          signature: Optional[str] = None) -> StationOwner:
    """
    Mark a gateway order as paid and extend the owner's plan.

    Safe to call more than once for the same order: an order already marked
    successful returns the owner unchanged.
    """
    plan = get_plan(plan_id)

    with transaction.atomic():
        payment = (PaymentHistory.objects
                   .select_for_update()
                   .filter(razorpay_order_id=order_id, owner=owner)
                   .first())
        if payment is None:
            raise PaymentRecordNotFound(f"Payment record not found: {order_id}")

        if payment.status == PaymentHistory.STATUS_SUCCESS:
            owner.refresh_from_db()
            return owner

        now = timezone.now()
        expiry = now + timedelta(days=plan['duration'])

        owner.subscription_type = plan_id
        owner.subscription_ends_at = expiry
        owner.save(update_fields=['subscription_type', 'subscription_ends_at', 'updated_at'])

        payment.razorpay_payment_id = payment_id
        payment.razorpay_signature = signature
        payment.status = PaymentHistory.STATUS_SUCCESS
        payment.subscription_starts_at = now
        payment.subscription_ends_at = expiry
        payment.save()

        log_activity(
            'subscription_purchased',
            f"Purchased {plan['name']} plan for ₹{plan['price']}",
            owner=owner,
            metadata={
                'plan_id': plan_id,
                'amount': plan['price'],
                'payment_id': payment_id,
                'order_id': order_id,
            },
        )
        notify(
            owner,
            'Subscription Activated',
            f"Your {plan['name']} plan is now active! Valid until {expiry:%d %b %Y}",
            type='success',
            category='subscription',
        )

    logger.info("Activated %s plan for owner %s (order %s)", plan_id, owner.pk, order_id)
    return owner


class RazorpayClient:
    """Wraps the Razorpay SDK: order creation and signature checks"""

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None,
                 webhook_secret: Optional[str] = None):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.RAZORPAY_WEBHOOK_SECRET
        self.client = razorpay.Client(auth=(self.key_id, self.key_secret))

    def create_order(self, amount_rupees: int, receipt: str, notes: Optional[Dict] = None,
                     currency: str = 'INR') -> Dict:
        if not self.key_id or not self.key_secret:
            raise GatewayNotConfigured('Razorpay credentials not configured')

        payload = {
            'amount': amount_rupees * 100,  # paise
            'currency': currency,
            'receipt': receipt,
            'notes': notes or {},
        }
        try:
            return self.client.order.create(data=payload)
        except GATEWAY_ERRORS as e:
            raise PaymentGatewayError(f"Order creation failed: {e}") from e

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            raise GatewayNotConfigured('Razorpay credentials not configured')
        try:
            self.client.utility.verify_payment_signature({
                'razorpay_order_id': order_id,
                'razorpay_payment_id': payment_id,
                'razorpay_signature': signature,
            })
        except SignatureVerificationError:
            return False
        return True

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        if not self.webhook_secret:
            raise GatewayNotConfigured('RAZORPAY_WEBHOOK_SECRET not configured')
        try:
            self.client.utility.verify_webhook_signature(body.decode('utf-8'), signature, self.webhook_secret)
        except (UnicodeDecodeError, SignatureVerificationError):
            return False
        return True
