import json
import logging

import requests
from django.db import IntegrityError, transaction
from django.utils import timezone
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from stations.models import Station
from stations.serializers import StationDetailSerializer, StationWriteSerializer
from stations.services import GeocodingService
from stations.views import invalid_input

from .authentication import issue_token, revoke_token
from .exceptions import GatewayNotConfigured, PaymentGatewayError, PaymentRecordNotFound
from .models import Admin, PaymentHistory, StationOwner, SupportTicket, TicketReply
from .permissions import HasActiveSubscription, IsOwner
from .serializers import (
    CngStatusSerializer,
    CngStatusUpdateSerializer,
    LoginSerializer,
    NotificationReadSerializer,
    NotificationSerializer,
    OwnerProfileSerializer,
    OwnerSignupSerializer,
    OwnerSummarySerializer,
    PaymentHistorySerializer,
    PlanSerializer,
    ReplyCreateSerializer,
    StationSummarySerializer,
    SupportTicketSerializer,
    TicketCreateSerializer,
    VerifyPaymentSerializer,
)
from .services import (
    RazorpayClient,
    activate_subscription,
    check_subscription,
    generate_ticket_number,
    get_plan,
    log_activity,
    notify,
)
from .throttling import LoginRateThrottle

logger = logging.getLogger(__name__)


def server_error(message):
    return Response({"error": message}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class OwnerAPIView(APIView):
    """
    Base for subscriber endpoints.

    While an expired plan is still inside its grace period, every response
    carries X-Subscription-* warning headers.
    """
    permission_classes = [IsOwner]

    def finalize_response(self, request, response, *args, **kwargs):
        response = super().finalize_response(request, response, *args, **kwargs)
        subscription = getattr(request, 'subscription_status', None)
        if subscription is not None and subscription.is_in_grace_period:
            response['X-Subscription-Warning'] = 'true'
            response['X-Subscription-Message'] = subscription.message
            response['X-Days-Remaining'] = str(subscription.days_remaining)
        return response


class OwnerSignupView(APIView):
    """Register a station owner"""
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        request=OwnerSignupSerializer,
        examples=[
            OpenApiExample(
                'Owner with first station',
                value={
                    "name": "Ravi Kumar", "email": "ravi@example.com", "phone": "9876543210",
                    "password": "secret123", "company_name": "Kumar Fuels",
                    "station_name": "Kumar CNG", "address": "NH 48, Kherki Daula",
                    "city": "Gurugram", "state": "Haryana", "lat": 28.4089, "lng": 77.0424,
                },
                request_only=True,
            ),
        ],
        description="""
Create a pending owner account and return a bearer token.

When the station fields (`station_name`, `address`, `city`, `state`, `lat`,
`lng`) are all present, a pending station is created as well. Duplicate
emails answer 409.
        """
    )
    def post(self, request):
        serializer = OwnerSignupSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        if StationOwner.objects.filter(email=data['email']).exists():
            return Response({"error": "Email already registered"}, status=status.HTTP_409_CONFLICT)

        try:
            with transaction.atomic():
                owner = StationOwner(
                    name=data['name'],
                    email=data['email'],
                    phone=data['phone'],
                    company_name=data.get('company_name', ''),
                    gst_number=data.get('gst_number', ''),
                    pan_number=data.get('pan_number', ''),
                )
                owner.set_password(data['password'])
                owner.save()

                station = None
                if serializer.has_station():
                    station = Station.objects.create(
                        name=data['station_name'],
                        address=data['address'],
                        city=data['city'],
                        state=data['state'],
                        latitude=data['lat'],
                        longitude=data['lng'],
                        owner=owner,
                    )

                notify(
                    owner,
                    'Welcome to CNG Finder',
                    'Your account has been created and is awaiting approval.',
                    category='account',
                )
                log_activity(
                    'owner_signup', f"Owner {owner.name} signed up",
                    owner=owner, station=station, request=request,
                )

            return Response({
                'success': True,
                'token': issue_token(owner),
                'owner': OwnerSummarySerializer(owner).data,
                'station': StationSummarySerializer(station).data if station else None,
            }, status=status.HTTP_201_CREATED)

        except IntegrityError:
            return Response({"error": "Email already registered"}, status=status.HTTP_409_CONFLICT)
        except Exception:
            logger.exception("Owner signup failed")
            return server_error("Signup failed")


class OwnerLoginView(APIView):
    """Owner login"""
    authentication_classes = []
    permission_classes = []
    throttle_classes = [LoginRateThrottle]

    @extend_schema(
        request=LoginSerializer,
        description="Exchange owner credentials for a bearer token. Limited to 5 attempts per 15 minutes per client.",
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        owner = StationOwner.objects.filter(email=data['email']).first()
        if owner is None or not owner.check_password(data['password']):
            return Response({"error": "Invalid email or password"}, status=status.HTTP_401_UNAUTHORIZED)

        if owner.status == StationOwner.STATUS_SUSPENDED:
            return Response({"error": "Account suspended"}, status=status.HTTP_403_FORBIDDEN)

        owner.last_login_at = timezone.now()
        owner.save(update_fields=['last_login_at', 'updated_at'])
        log_activity('owner_login', f"Owner {owner.email} logged in", owner=owner, request=request)

        return Response({
            'success': True,
            'token': issue_token(owner),
            'owner': OwnerSummarySerializer(owner).data,
            'stations': StationSummarySerializer(owner.stations.all(), many=True).data,
        })


class AdminLoginView(APIView):
    """Admin login"""
    authentication_classes = []
    permission_classes = []
    throttle_classes = [LoginRateThrottle]

    @extend_schema(
        request=LoginSerializer,
        description="Exchange admin credentials for a bearer token. Limited to 5 attempts per 15 minutes per client.",
    )
    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        admin = Admin.objects.filter(email=data['email']).first()
        if admin is None or not admin.check_password(data['password']):
            return Response({"error": "Invalid email or password"}, status=status.HTTP_401_UNAUTHORIZED)

        log_activity('admin_login', f"Admin {admin.email} logged in", admin=admin, request=request)
        return Response({
            'success': True,
            'token': issue_token(admin),
            'admin': {'id': admin.id, 'name': admin.name, 'email': admin.email, 'role': admin.role},
        })


class LogoutView(APIView):
    """Revoke the presented token"""
    permission_classes = [IsAuthenticated]

    @extend_schema(description="Revoke the bearer token used for this request until it expires.")
    def post(self, request):
        revoke_token(request.auth)
        if isinstance(request.user, StationOwner):
            log_activity('owner_logout', f"Owner {request.user.email} logged out",
                         owner=request.user, request=request)
        else:
            log_activity('admin_logout', f"Admin {request.user.email} logged out",
                         admin=request.user, request=request)
        return Response({'success': True, 'message': 'Logged out successfully'})


class OwnerProfileView(OwnerAPIView):
    """The authenticated owner's profile"""

    @extend_schema(responses={200: OwnerProfileSerializer})
    def get(self, request):
        return Response({'owner': OwnerProfileSerializer(request.user).data})

    @extend_schema(
        request=OwnerProfileSerializer,
        responses={200: OwnerProfileSerializer},
        description="Update contact and business details; `profile_complete` is recomputed.",
    )
    def put(self, request):
        owner = request.user
        serializer = OwnerProfileSerializer(owner, data=request.data, partial=True)
        if not serializer.is_valid():
            return invalid_input(serializer)

        owner = serializer.save()
        owner.profile_complete = owner.compute_profile_complete()
        owner.save(update_fields=['profile_complete', 'updated_at'])
        log_activity('profile_updated', 'Profile updated', owner=owner, request=request)

        return Response({
            'message': 'Profile updated successfully',
            'owner': OwnerProfileSerializer(owner).data,
        })


class OwnerStationsView(OwnerAPIView):
    """Stations belonging to the authenticated owner"""
    permission_classes = [IsOwner, HasActiveSubscription]

    @extend_schema(responses={200: StationDetailSerializer(many=True)})
    def get(self, request):
        stations = request.user.stations.order_by('-created_at')
        return Response({'stations': StationDetailSerializer(stations, many=True).data})

    @extend_schema(
        request=StationWriteSerializer,
        responses={201: StationDetailSerializer},
        description="""
Register a station for admin review (requires an active subscription).

When `latitude`/`longitude` are omitted the address is geocoded.
        """
    )
    def post(self, request):
        serializer = StationWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        if data.get('latitude') is None:
            location = f"{data['address']}, {data['city']}, {data['state']}"
            try:
                place = GeocodingService().geocode(location)
            except ValueError:
                return Response(
                    {"error": "Could not locate the station address; please provide coordinates"},
                    status=status.HTTP_400_BAD_REQUEST
                )
            except requests.RequestException:
                logger.exception("Geocoding failed for new station")
                return Response(
                    {"error": "Geocoding service unavailable"},
                    status=status.HTTP_502_BAD_GATEWAY
                )
            data['latitude'], data['longitude'] = place['lat'], place['lng']

        try:
            station = serializer.save(
                owner=request.user,
                approval_status=Station.APPROVAL_PENDING,
                is_verified=False,
                is_partner=False,
            )
            log_activity(
                'station_created', f"Station {station.name} submitted for approval",
                owner=request.user, station=station, request=request,
            )
            return Response({
                'message': 'Station created successfully',
                'station': StationDetailSerializer(station).data,
            }, status=status.HTTP_201_CREATED)

        except Exception:
            logger.exception("Failed to create station")
            return server_error("Failed to create station")


class OwnerStationDetailView(OwnerAPIView):
    permission_classes = [IsOwner, HasActiveSubscription]

    @extend_schema(request=StationWriteSerializer, responses={200: StationDetailSerializer})
    def put(self, request, station_id):
        station = request.user.stations.filter(pk=station_id).first()
        if station is None:
            return Response({"error": "Station not found"}, status=status.HTTP_404_NOT_FOUND)

        serializer = StationWriteSerializer(station, data=request.data, partial=True)
        if not serializer.is_valid():
            return invalid_input(serializer)

        station = serializer.save()
        log_activity(
            'station_updated', f"Station {station.name} updated",
            owner=request.user, station=station, request=request,
        )
        return Response({
            'message': 'Station updated successfully',
            'station': StationDetailSerializer(station).data,
        })


class CngStatusView(OwnerAPIView):
    """Live CNG availability of the owner's stations"""
    permission_classes = [IsOwner, HasActiveSubscription]

    @extend_schema(responses={200: CngStatusSerializer(many=True)})
    def get(self, request):
        stations = request.user.stations.order_by('name')
        return Response({'stations': CngStatusSerializer(stations, many=True).data})

    @extend_schema(
        request=CngStatusUpdateSerializer,
        examples=[
            OpenApiExample(
                'Stock for one station',
                value={"station_id": 12, "cng_quantity_kg": 850},
                request_only=True,
            ),
        ],
        description="""
Set CNG availability for one station (`station_id`) or for all of the owner's
stations. A `cng_quantity_kg` implies availability: stock above zero means
available.
        """
    )
    def put(self, request):
        serializer = CngStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        quantity = data.get('cng_quantity_kg')
        available = quantity > 0 if quantity is not None else data.get('cng_available', True)
        changes = {'cng_available': available, 'cng_updated_at': timezone.now()}
        if quantity is not None:
            changes['cng_quantity_kg'] = quantity
        quantity_text = f" ({quantity:g} kg)" if quantity is not None else ''
        availability_text = 'Available' if available else 'Not Available'

        stations = request.user.stations.all()
        station_id = data.get('station_id')
        if station_id is not None:
            station = stations.filter(pk=station_id).first()
            if station is None:
                return Response({"error": "Station not found"}, status=status.HTTP_404_NOT_FOUND)

            for field, value in changes.items():
                setattr(station, field, value)
            station.save(update_fields=list(changes) + ['updated_at'])
            log_activity(
                'cng_status_updated', f"CNG availability set to {availability_text}{quantity_text}",
                owner=request.user, station=station, request=request,
            )
            return Response({
                'message': 'CNG status updated successfully',
                'station': CngStatusSerializer(station).data,
            })

        updated = stations.update(**changes)
        log_activity(
            'cng_status_updated',
            f"CNG availability for all stations set to {availability_text}{quantity_text}",
            owner=request.user, request=request,
        )
        return Response({
            'message': f"CNG status updated for {updated} station(s)",
            'updated_count': updated,
            'cng_available': available,
            'cng_quantity_kg': quantity,
        })

    def post(self, request):
        return self.put(request)


class SubscriptionStatusView(OwnerAPIView):

    @extend_schema(description="Current plan, expiry, days remaining and grace-period state.")
    def get(self, request):
        subscription = check_subscription(request.user)
        request.subscription_status = subscription
        return Response({
            'subscription': {
                'plan': subscription.subscription_type,
                'is_active': subscription.is_valid and not subscription.is_expired,
                **subscription.as_dict(),
            }
        })


class CreateOrderView(OwnerAPIView):
    """Start a plan purchase with the payment gateway"""

    @extend_schema(
        request=PlanSerializer,
        examples=[OpenApiExample('Standard plan', value={"plan_id": "standard"}, request_only=True)],
        description="""
Create a gateway order for `plan_id` and a pending payment record.

| Plan | Price (INR) | Days |
|---|---|---|
| basic | 999 | 30 |
| standard | 2499 | 30 |
| premium | 4999 | 30 |
| trial | 1 | 7 |
        """
    )
    def post(self, request):
        serializer = PlanSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer, "Invalid plan selected")
        plan_id = serializer.validated_data['plan_id']
        plan = get_plan(plan_id)
        owner = request.user
        client = RazorpayClient()

        try:
            order = client.create_order(
                plan['price'],
                receipt=f"receipt_{int(timezone.now().timestamp() * 1000)}",
                notes={'plan_id': plan_id, 'owner_id': str(owner.pk), 'owner_email': owner.email},
            )
            PaymentHistory.objects.create(
                owner=owner,
                razorpay_order_id=order['id'],
                plan_id=plan_id,
                plan_name=plan['name'],
                amount=plan['price'],
                currency='INR',
            )
        except GatewayNotConfigured:
            logger.error("Payment gateway credentials are not configured")
            return server_error("Failed to create order")
        except PaymentGatewayError:
            logger.exception("Gateway order creation failed")
            return Response({"error": "Failed to create order"}, status=status.HTTP_502_BAD_GATEWAY)

        return Response({
            'order_id': order['id'],
            'amount': order['amount'],
            'currency': order['currency'],
            'owner_name': owner.name,
            'owner_email': owner.email,
            'owner_phone': owner.phone,
            'key_id': client.key_id,
            'plan': {'id': plan_id, **plan},
        })


class VerifyPaymentView(OwnerAPIView):
    """Confirm a completed checkout"""

    @extend_schema(
        request=VerifyPaymentSerializer,
        description="""
Verify the checkout signature, `HMAC-SHA256(key_secret, "order_id|payment_id")`,
and activate the plan. Verifying an order twice is harmless.
        """
    )
    def post(self, request):
        serializer = VerifyPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer, "Invalid payment data")
        data = serializer.validated_data
        order_id, payment_id = data['razorpay_order_id'], data['razorpay_payment_id']

        try:
            if not RazorpayClient().verify_payment_signature(order_id, payment_id, data['razorpay_signature']):
                return Response({"error": "Invalid payment signature"}, status=status.HTTP_400_BAD_REQUEST)

            payment = request.user.payment_history.filter(razorpay_order_id=order_id).first()
            if payment is not None and payment.plan_id != data['plan_id']:
                return Response({"error": "Plan does not match the order"}, status=status.HTTP_400_BAD_REQUEST)

            owner = activate_subscription(
                request.user, data['plan_id'], order_id, payment_id, data['razorpay_signature'],
            )

        except PaymentRecordNotFound:
            return Response({"error": "Payment record not found"}, status=status.HTTP_404_NOT_FOUND)
        except GatewayNotConfigured:
            logger.error("Payment gateway credentials are not configured")
            return server_error("Payment verification failed")
        except Exception:
            logger.exception("Payment verification failed for order %s", order_id)
            return server_error("Payment verification failed")

        return Response({
            'success': True,
            'message': 'Subscription activated successfully',
            'subscription': {
                'type': owner.subscription_type,
                'ends_at': owner.subscription_ends_at,
            },
        })


class PaymentHistoryView(OwnerAPIView):

    @extend_schema(responses={200: PaymentHistorySerializer(many=True)})
    def get(self, request):
        payments = request.user.payment_history.all()
        return Response({'payments': PaymentHistorySerializer(payments, many=True).data})


class OwnerSupportView(OwnerAPIView):
    """Owner support tickets"""

    @extend_schema(
        parameters=[OpenApiParameter('status', str, enum=[choice for choice, _ in SupportTicket.STATUS_CHOICES])],
        responses={200: SupportTicketSerializer(many=True)},
    )
    def get(self, request):
        tickets = (request.user.support_tickets
                   .select_related('station')
                   .prefetch_related('replies'))
        if request.query_params.get('status'):
            tickets = tickets.filter(status=request.query_params['status'])
        return Response({'tickets': SupportTicketSerializer(tickets, many=True).data})

    @extend_schema(request=TicketCreateSerializer, responses={201: SupportTicketSerializer})
    def post(self, request):
        serializer = TicketCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data
        owner = request.user

        station = None
        if data.get('station_id') is not None:
            station = owner.stations.filter(pk=data['station_id']).first()
            if station is None:
                return Response({"error": "Station not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            with transaction.atomic():
                ticket = SupportTicket.objects.create(
                    ticket_number=generate_ticket_number(),
                    subject=data['subject'],
                    description=data['description'],
                    category=data['category'],
                    priority=data['priority'],
                    owner=owner,
                    station=station,
                )
                log_activity(
                    'support_ticket_created', f"Support ticket {ticket.ticket_number} created",
                    owner=owner, station=station, request=request,
                    metadata={'ticket_id': ticket.id, 'category': ticket.category},
                )
                notify(
                    owner,
                    'Support Ticket Created',
                    f"Your ticket {ticket.ticket_number} has been created. We'll respond soon.",
                    category='support',
                )
            return Response({
                'message': 'Support ticket created successfully',
                'ticket': SupportTicketSerializer(ticket).data,
            }, status=status.HTTP_201_CREATED)

        except Exception:
            logger.exception("Failed to create support ticket")
            return server_error("Failed to create support ticket")


class OwnerTicketReplyView(OwnerAPIView):

    @extend_schema(
        request=ReplyCreateSerializer,
        description="Reply to one of your tickets; a resolved or closed ticket is reopened.",
    )
    def post(self, request, ticket_id):
        ticket = request.user.support_tickets.filter(pk=ticket_id).first()
        if ticket is None:
            return Response({"error": "Ticket not found"}, status=status.HTTP_404_NOT_FOUND)

        serializer = ReplyCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        with transaction.atomic():
            reply = TicketReply.objects.create(
                ticket=ticket,
                message=serializer.validated_data['message'],
                created_by=request.user.name,
                created_by_type='owner',
            )
            if ticket.status in (SupportTicket.STATUS_RESOLVED, SupportTicket.STATUS_CLOSED):
                ticket.status = SupportTicket.STATUS_OPEN
                ticket.save(update_fields=['status', 'updated_at'])

        return Response({
            'message': 'Reply added successfully',
            'reply': {
                'id': reply.id,
                'message': reply.message,
                'created_by': reply.created_by,
                'created_by_type': reply.created_by_type,
                'created_at': reply.created_at,
            },
            'ticket_status': ticket.status,
        }, status=status.HTTP_201_CREATED)


class NotificationListView(OwnerAPIView):

    @extend_schema(
        parameters=[OpenApiParameter('unread', bool, description='Only unread notifications')],
        responses={200: NotificationSerializer(many=True)},
    )
    def get(self, request):
        notifications = request.user.notifications.all()
        if request.query_params.get('unread', '').lower() in ('1', 'true'):
            notifications = notifications.filter(is_read=False)
        return Response({
            'notifications': NotificationSerializer(notifications[:50], many=True).data,
            'unread_count': request.user.notifications.filter(is_read=False).count(),
        })


class NotificationReadView(OwnerAPIView):

    @extend_schema(
        request=NotificationReadSerializer,
        description="Mark the given notification `ids` as read, or all of them when `ids` is omitted.",
    )
    def post(self, request):
        serializer = NotificationReadSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        notifications = request.user.notifications.filter(is_read=False)
        ids = serializer.validated_data.get('ids')
        if ids:
            notifications = notifications.filter(pk__in=ids)
        updated = notifications.update(is_read=True)
        return Response({'success': True, 'updated_count': updated})


class RazorpayWebhookView(APIView):
    """Payment gateway event receiver"""
    authentication_classes = []
    permission_classes = []

    @extend_schema(
        request=None,
        parameters=[OpenApiParameter('X-Razorpay-Signature', str, OpenApiParameter.HEADER, required=True)],
        description="""
Signed with `HMAC-SHA256(webhook_secret, raw_body)`.

- `payment.captured`: activates the plan of the matching pending order
- `payment.failed`: marks the pending order failed
- any other event is acknowledged

Once the signature checks out the answer is always 200 so the gateway does
not retry.
        """
    )
    def post(self, request):
        signature = request.META.get('HTTP_X_RAZORPAY_SIGNATURE')
        if not signature:
            logger.error("Missing webhook signature")
            return Response({"error": "Missing signature"}, status=status.HTTP_400_BAD_REQUEST)

        body = request.body
        try:
            verified = RazorpayClient().verify_webhook_signature(body, signature)
        except GatewayNotConfigured:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured")
            return server_error("Webhook not configured")
        if not verified:
            logger.error("Invalid webhook signature")
            return Response({"error": "Invalid signature"}, status=status.HTTP_401_UNAUTHORIZED)

        try:
            payload = json.loads(body)
            return Response(self.handle_event(payload))
        except Exception:
            logger.exception("Webhook processing failed")
            return Response({'received': True, 'error': 'Processing failed'})

    def handle_event(self, payload):
        event = payload.get('event')
        entity = (payload.get('payload') or {}).get('payment', {}).get('entity') or {}
        order_id, payment_id = entity.get('order_id'), entity.get('id')
        logger.info("Webhook received: event=%s order=%s payment=%s", event, order_id, payment_id)

        if event == 'payment.captured' and entity:
            payment = PaymentHistory.objects.select_related('owner').filter(razorpay_order_id=order_id).first()
            if payment is None:
                logger.error("Payment record not found: %s", order_id)
                return {'received': True, 'error': 'Payment record not found'}
            if payment.status == PaymentHistory.STATUS_SUCCESS:
                return {'received': True, 'message': 'Payment already processed'}

            activate_subscription(payment.owner, payment.plan_id, order_id, payment_id)
            return {'received': True, 'message': 'Subscription activated'}

        if event == 'payment.failed' and entity:
            (PaymentHistory.objects
             .filter(razorpay_order_id=order_id, status=PaymentHistory.STATUS_PENDING)
             .update(status=PaymentHistory.STATUS_FAILED, razorpay_payment_id=payment_id))
            logger.info("Payment failed: %s", order_id)
            return {'received': True, 'message': 'Payment failed'}

        return {'received': True, 'message': 'Event acknowledged'}
