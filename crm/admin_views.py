import logging
import math
from datetime import timedelta

from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from stations.models import Station
from stations.serializers import AdminStationWriteSerializer, StationDetailSerializer
from stations.views import invalid_input

from .models import ActivityLog, Admin, StationOwner, Subscription, SupportTicket, TicketReply
from .permissions import IsAdmin, IsSuperAdmin
from .serializers import (
    ActivityLogSerializer,
    AdminAccountSerializer,
    AdminCreateSerializer,
    AdminOwnerDetailSerializer,
    AdminOwnerSerializer,
    AdminOwnerUpdateSerializer,
    AdminRoleSerializer,
    AdminTicketUpdateSerializer,
    PageQuerySerializer,
    ReplyCreateSerializer,
    SupportTicketSerializer,
)
from .services import LISTING_PLANS, log_activity, notify

logger = logging.getLogger(__name__)

OWNER_STATUS_NOTICES = {
    StationOwner.STATUS_ACTIVE: ('Account Activated', 'Your account has been activated!', 'success'),
    StationOwner.STATUS_SUSPENDED: ('Account Suspended', 'Your account has been suspended.', 'warning'),
    StationOwner.STATUS_REJECTED: ('Account Rejected', 'Your account registration was rejected.', 'error'),
}

STATION_APPROVAL_NOTICES = {
    Station.APPROVAL_APPROVED: ('Your station "{name}" has been approved and is now listed.', 'success'),
    Station.APPROVAL_REJECTED: ('Your station "{name}" was rejected. {reason}', 'warning'),
}


def paginate(queryset, params):
    page, limit = params['page'], params['limit']
    total = queryset.count()
    offset = (page - 1) * limit
    return queryset[offset:offset + limit], {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit),
    }


def not_found(what):
    return Response({"error": f"{what} not found"}, status=status.HTTP_404_NOT_FOUND)


class AdminAPIView(APIView):
    permission_classes = [IsAdmin]


class AdminStationListView(AdminAPIView):
    """All stations, whatever their approval state"""

    @extend_schema(
        parameters=[
            PageQuerySerializer,
            OpenApiParameter('status', str, enum=['verified', 'unverified']),
            OpenApiParameter('approval_status', str, enum=[choice for choice, _ in Station.APPROVAL_CHOICES]),
        ],
        responses={200: StationDetailSerializer(many=True)},
    )
    def get(self, request):
        query = PageQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)
        params = query.validated_data

        stations = Station.objects.select_related('owner').order_by('-created_at')
        if params['search']:
            term = params['search']
            stations = stations.filter(
                Q(name__icontains=term) | Q(city__icontains=term) |
                Q(state__icontains=term) | Q(address__icontains=term)
            )
        verified = request.query_params.get('status')
        if verified == 'verified':
            stations = stations.filter(is_verified=True)
        elif verified == 'unverified':
            stations = stations.filter(is_verified=False)
        if request.query_params.get('approval_status'):
            stations = stations.filter(approval_status=request.query_params['approval_status'])

        page, pagination = paginate(stations, params)
        return Response({
            'stations': StationDetailSerializer(page, many=True).data,
            'pagination': pagination,
        })

    @extend_schema(
        request=AdminStationWriteSerializer,
        responses={201: StationDetailSerializer},
        description="""
Add a station directly; it is listed immediately (approved and verified).

A paid `subscription_type` also records a listing plan for the station:
basic is 30 days for ₹999, premium is 360 days for ₹9999.
        """
    )
    def post(self, request):
        serializer = AdminStationWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        try:
            with transaction.atomic():
                station = serializer.save(
                    added_by=request.user,
                    approval_status=Station.APPROVAL_APPROVED,
                    is_verified=True,
                )

                listing = LISTING_PLANS.get(station.subscription_type)
                if listing is not None:
                    now = timezone.now()
                    premium = station.subscription_type == Station.LISTING_PREMIUM
                    Subscription.objects.create(
                        station=station,
                        plan_type=station.subscription_type,
                        start_date=now,
                        end_date=now + timedelta(days=listing['duration_days']),
                        amount=listing['amount'],
                        features={'priority': premium, 'analytics': premium, 'promotions': True},
                    )

                log_activity(
                    'station_created', f'Station "{station.name}" added by admin',
                    admin=request.user, station=station, request=request,
                )

            return Response({
                'message': 'Station created successfully',
                'station': StationDetailSerializer(station).data,
            }, status=status.HTTP_201_CREATED)

        except Exception:
            logger.exception("Admin station create failed")
            return Response(
                {"error": "Failed to create station"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )


class AdminStationDetailView(AdminAPIView):

    def get_station(self, station_id):
        return Station.objects.select_related('owner', 'added_by').filter(pk=station_id).first()

    @extend_schema(responses={200: StationDetailSerializer})
    def get(self, request, station_id):
        station = self.get_station(station_id)
        if station is None:
            return not_found('Station')

        subscriptions = station.subscriptions.values('plan_type', 'start_date', 'end_date', 'amount', 'status')
        return Response({
            'station': StationDetailSerializer(station).data,
            'subscriptions': list(subscriptions),
        })

    @extend_schema(
        request=AdminStationWriteSerializer,
        responses={200: StationDetailSerializer},
        description="Edit or moderate a station. Approval changes notify the owning subscriber.",
    )
    def put(self, request, station_id):
        station = self.get_station(station_id)
        if station is None:
            return not_found('Station')

        previous_approval = station.approval_status
        serializer = AdminStationWriteSerializer(station, data=request.data, partial=True)
        if not serializer.is_valid():
            return invalid_input(serializer)

        station = serializer.save()
        log_activity(
            'station_updated', f'Station "{station.name}" updated by admin',
            admin=request.user, station=station, request=request,
            metadata={'fields': sorted(serializer.validated_data)},
        )

        notice = STATION_APPROVAL_NOTICES.get(station.approval_status)
        if station.owner_id and notice and station.approval_status != previous_approval:
            message, kind = notice
            notify(
                station.owner,
                f"Station {station.approval_status}",
                message.format(name=station.name, reason=station.rejection_reason).strip(),
                type=kind,
                category='station',
            )

        return Response({
            'message': 'Station updated successfully',
            'station': StationDetailSerializer(station).data,
        })

    def delete(self, request, station_id):
        station = self.get_station(station_id)
        if station is None:
            return not_found('Station')

        name = station.name
        station.delete()
        log_activity(
            'station_deleted', f'Station "{name}" deleted by admin',
            admin=request.user, request=request,
        )
        return Response({'message': 'Station deleted successfully'})


class AdminOwnerListView(AdminAPIView):

    @extend_schema(
        parameters=[
            PageQuerySerializer,
            OpenApiParameter('status', str, enum=[choice for choice, _ in StationOwner.STATUS_CHOICES]),
            OpenApiParameter('kyc_status', str, enum=[choice for choice, _ in StationOwner.KYC_CHOICES]),
        ],
        responses={200: AdminOwnerSerializer(many=True)},
    )
    def get(self, request):
        query = PageQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)
        params = query.validated_data

        owners = StationOwner.objects.annotate(
            station_count=Count('stations', distinct=True),
            ticket_count=Count('support_tickets', distinct=True),
        )
        if params['search']:
            term = params['search']
            owners = owners.filter(
                Q(name__icontains=term) | Q(email__icontains=term) |
                Q(company_name__icontains=term) | Q(phone__icontains=term)
            )
        if request.query_params.get('status'):
            owners = owners.filter(status=request.query_params['status'])
        if request.query_params.get('kyc_status'):
            owners = owners.filter(kyc_status=request.query_params['kyc_status'])

        page, pagination = paginate(owners, params)
        return Response({
            'owners': AdminOwnerSerializer(page, many=True).data,
            'pagination': pagination,
        })


class AdminOwnerDetailView(AdminAPIView):

    def get_owner(self, owner_id):
        return (StationOwner.objects
                .annotate(station_count=Count('stations', distinct=True),
                          ticket_count=Count('support_tickets', distinct=True))
                .filter(pk=owner_id)
                .first())

    @extend_schema(responses={200: AdminOwnerDetailSerializer})
    def get(self, request, owner_id):
        owner = self.get_owner(owner_id)
        if owner is None:
            return not_found('Owner')
        return Response({'owner': AdminOwnerDetailSerializer(owner).data})

    @extend_schema(
        request=AdminOwnerUpdateSerializer,
        responses={200: AdminOwnerSerializer},
        description="Update an owner's account, KYC or subscription. The owner is notified of each change.",
    )
    def put(self, request, owner_id):
        owner = self.get_owner(owner_id)
        if owner is None:
            return not_found('Owner')

        before = {
            'status': owner.status,
            'kyc_status': owner.kyc_status,
            'subscription_type': owner.subscription_type,
        }
        serializer = AdminOwnerUpdateSerializer(owner, data=request.data, partial=True)
        if not serializer.is_valid():
            return invalid_input(serializer)

        with transaction.atomic():
            owner = serializer.save()
            log_activity(
                'owner_updated', f"Owner {owner.email} updated by admin",
                owner=owner, admin=request.user, request=request,
                metadata={'fields': sorted(serializer.validated_data)},
            )
            self.notify_changes(owner, before)

        return Response({
            'message': 'Owner updated successfully',
            'owner': AdminOwnerSerializer(owner).data,
        })

    def notify_changes(self, owner, before):
        if owner.status != before['status'] and owner.status in OWNER_STATUS_NOTICES:
            title, message, kind = OWNER_STATUS_NOTICES[owner.status]
            notify(owner, title, message, type=kind, category='account')

        if owner.kyc_status != before['kyc_status']:
            if owner.kyc_status == StationOwner.KYC_VERIFIED:
                notify(owner, 'KYC Verified', 'Your KYC documents have been verified!',
                       type='success', category='kyc')
            elif owner.kyc_status == StationOwner.KYC_REJECTED:
                reason = owner.kyc_rejection_reason or 'Please contact support.'
                notify(owner, 'KYC Rejected', f"KYC rejected: {reason}", type='error', category='kyc')

        if owner.subscription_type and owner.subscription_type != before['subscription_type']:
            notify(
                owner,
                'Subscription Updated',
                f"Your subscription has been changed to {owner.subscription_type} plan.",
                type='info',
                category='subscription',
            )

    def delete(self, request, owner_id):
        owner = StationOwner.objects.filter(pk=owner_id).first()
        if owner is None:
            return not_found('Owner')

        email = owner.email
        owner.delete()
        log_activity(
            'owner_deleted', f"Owner {email} deleted by admin",
            admin=request.user, request=request,
        )
        return Response({'message': 'Owner deleted successfully'})


class AdminSupportView(AdminAPIView):
    """Support queue"""

    @extend_schema(
        parameters=[
            PageQuerySerializer,
            OpenApiParameter('status', str, enum=[choice for choice, _ in SupportTicket.STATUS_CHOICES]),
            OpenApiParameter('category', str),
            OpenApiParameter('priority', str, enum=[choice for choice, _ in SupportTicket.PRIORITY_CHOICES]),
        ],
        responses={200: SupportTicketSerializer(many=True)},
    )
    def get(self, request):
        query = PageQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)
        params = query.validated_data

        tickets = (SupportTicket.objects
                   .select_related('owner', 'station')
                   .prefetch_related('replies'))
        for field in ('status', 'category', 'priority'):
            if request.query_params.get(field):
                tickets = tickets.filter(**{field: request.query_params[field]})
        if params['search']:
            term = params['search']
            tickets = tickets.filter(
                Q(ticket_number__icontains=term) | Q(subject__icontains=term) |
                Q(description__icontains=term)
            )

        page, pagination = paginate(tickets, params)
        serializer = SupportTicketSerializer(page, many=True, context={'include_internal': True})
        return Response({'tickets': serializer.data, 'pagination': pagination})

    @extend_schema(
        request=AdminTicketUpdateSerializer,
        parameters=[OpenApiParameter('id', int, description='Ticket id when not given in the path')],
        description="Update status, assignment, resolution or priority. Resolving stamps `resolved_at`.",
    )
    def put(self, request, ticket_id=None):
        ticket_id = ticket_id or request.query_params.get('id')
        if not ticket_id:
            return Response({"error": "Ticket ID required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            ticket_id = int(ticket_id)
        except ValueError:
            return Response({"error": "Ticket ID must be an integer"}, status=status.HTTP_400_BAD_REQUEST)

        ticket = SupportTicket.objects.select_related('owner').filter(pk=ticket_id).first()
        if ticket is None:
            return not_found('Ticket')

        serializer = AdminTicketUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        for field, value in data.items():
            setattr(ticket, field, value)
        if data.get('status') == SupportTicket.STATUS_RESOLVED:
            ticket.resolved_at = timezone.now()
        ticket.save()

        log_activity(
            'ticket_updated', f"Ticket {ticket.ticket_number} updated",
            owner=ticket.owner, admin=request.user, request=request,
            metadata={'ticket_id': ticket.id, **{k: v for k, v in data.items() if k != 'resolution'}},
        )
        if 'status' in data:
            notify(
                ticket.owner,
                'Support Ticket Updated',
                f"Your ticket {ticket.ticket_number} status has been updated to: "
                f"{ticket.status.replace('_', ' ')}",
                category='support',
            )

        return Response({
            'message': 'Ticket updated successfully',
            'ticket': SupportTicketSerializer(ticket, context={'include_internal': True}).data,
        })


class AdminTicketReplyView(AdminAPIView):

    @extend_schema(
        request=ReplyCreateSerializer,
        description="""
Reply to a ticket. Internal notes stay hidden from the owner; a public reply
moves an open ticket to in progress and notifies the owner.
        """
    )
    def post(self, request, ticket_id):
        ticket = SupportTicket.objects.select_related('owner').filter(pk=ticket_id).first()
        if ticket is None:
            return not_found('Ticket')

        serializer = ReplyCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        with transaction.atomic():
            reply = TicketReply.objects.create(
                ticket=ticket,
                message=data['message'],
                is_internal=data['is_internal'],
                created_by=request.user.name,
                created_by_type='admin',
            )
            if not reply.is_internal:
                if ticket.status == SupportTicket.STATUS_OPEN:
                    ticket.status = SupportTicket.STATUS_IN_PROGRESS
                    ticket.save(update_fields=['status', 'updated_at'])
                notify(
                    ticket.owner,
                    'New Reply on Your Ticket',
                    f"Support has replied to ticket {ticket.ticket_number}",
                    category='support',
                )

        return Response({
            'message': 'Reply added successfully',
            'reply': {
                'id': reply.id,
                'message': reply.message,
                'is_internal': reply.is_internal,
                'created_by': reply.created_by,
                'created_at': reply.created_at,
            },
            'ticket_status': ticket.status,
        }, status=status.HTTP_201_CREATED)


class AdminAccountListView(APIView):
    """Platform operators (superadmin only)"""
    permission_classes = [IsSuperAdmin]

    @extend_schema(responses={200: AdminAccountSerializer(many=True)})
    def get(self, request):
        return Response({'admins': AdminAccountSerializer(Admin.objects.all(), many=True).data})

    @extend_schema(request=AdminCreateSerializer, responses={201: AdminAccountSerializer})
    def post(self, request):
        serializer = AdminCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)
        data = serializer.validated_data

        if Admin.objects.filter(email=data['email']).exists():
            return Response({"error": "Email already registered"}, status=status.HTTP_409_CONFLICT)

        admin = Admin(name=data['name'], email=data['email'], role=data['role'])
        admin.set_password(data['password'])
        admin.save()
        log_activity(
            'admin_created', f"Admin {admin.email} created with role {admin.role}",
            admin=request.user, request=request,
        )
        return Response({
            'message': 'Admin created successfully',
            'admin': AdminAccountSerializer(admin).data,
        }, status=status.HTTP_201_CREATED)


class AdminAccountDetailView(APIView):
    permission_classes = [IsSuperAdmin]

    @extend_schema(request=AdminRoleSerializer, responses={200: AdminAccountSerializer})
    def put(self, request, admin_id):
        admin = Admin.objects.filter(pk=admin_id).first()
        if admin is None:
            return not_found('Admin')

        serializer = AdminRoleSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        role = serializer.validated_data['role']
        demoting = admin.role == Admin.ROLE_SUPERADMIN and role != Admin.ROLE_SUPERADMIN
        if demoting and not Admin.objects.filter(role=Admin.ROLE_SUPERADMIN).exclude(pk=admin.pk).exists():
            return Response(
                {"error": "Cannot demote the last superadmin"}, status=status.HTTP_400_BAD_REQUEST,
            )

        admin.role = role
        admin.save(update_fields=['role', 'updated_at'])
        log_activity(
            'admin_updated', f"Admin {admin.email} role set to {admin.role}",
            admin=request.user, request=request,
        )
        return Response({
            'message': 'Admin updated successfully',
            'admin': AdminAccountSerializer(admin).data,
        })

    def delete(self, request, admin_id):
        if str(admin_id) == str(request.user.pk):
            return Response({"error": "Cannot delete your own account"}, status=status.HTTP_400_BAD_REQUEST)

        admin = Admin.objects.filter(pk=admin_id).first()
        if admin is None:
            return not_found('Admin')

        email = admin.email
        admin.delete()
        log_activity('admin_deleted', f"Admin {email} deleted", admin=request.user, request=request)
        return Response({'message': 'Admin deleted successfully'})


class ActivityLogView(AdminAPIView):

    @extend_schema(
        parameters=[
            OpenApiParameter('action', str),
            OpenApiParameter('owner_id', int),
            OpenApiParameter('limit', int, description='1-200, default 50'),
        ],
        responses={200: ActivityLogSerializer(many=True)},
    )
    def get(self, request):
        params = request.query_params
        logs = ActivityLog.objects.select_related('owner', 'admin', 'station')
        if params.get('action'):
            logs = logs.filter(action=params['action'])

        try:
            if params.get('owner_id'):
                logs = logs.filter(owner_id=int(params['owner_id']))
            limit = min(max(int(params.get('limit', 50)), 1), 200)
        except ValueError:
            return Response(
                {"error": "owner_id and limit must be integers"},
                status=status.HTTP_400_BAD_REQUEST
            )

        return Response({'activity': ActivityLogSerializer(logs[:limit], many=True).data})
