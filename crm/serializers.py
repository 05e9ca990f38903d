from rest_framework import serializers

from stations.serializers import StationDetailSerializer

from .models import (
    ActivityLog,
    Admin,
    Notification,
    PaymentHistory,
    StationOwner,
    SupportTicket,
    TicketReply,
)
from .services import PLANS


class LowercaseEmailField(serializers.EmailField):

    def to_internal_value(self, data):
        return super().to_internal_value(data).strip().lower()


class LoginSerializer(serializers.Serializer):
    email = LowercaseEmailField()
    password = serializers.CharField(min_length=6, max_length=100, write_only=True)


class OwnerSignupSerializer(serializers.Serializer):
    """Owner registration, optionally with a first station"""
    name = serializers.CharField(max_length=200)
    email = LowercaseEmailField()
    phone = serializers.CharField(max_length=20)
    password = serializers.CharField(min_length=6, max_length=100, write_only=True)
    company_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    gst_number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    pan_number = serializers.CharField(max_length=20, required=False, allow_blank=True)

    station_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    address = serializers.CharField(max_length=500, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    state = serializers.CharField(max_length=100, required=False, allow_blank=True)
    lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    lng = serializers.FloatField(min_value=-180, max_value=180, required=False)

    def has_station(self):
        data = self.validated_data
        return all(data.get(key) not in (None, '') for key in
                   ('station_name', 'address', 'city', 'state', 'lat', 'lng'))


class OwnerSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = StationOwner
        fields = ['id', 'name', 'email', 'phone', 'company_name', 'status',
                  'profile_complete', 'onboarding_step']


class StationSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    city = serializers.CharField()
    state = serializers.CharField()
    approval_status = serializers.CharField()


class OwnerProfileSerializer(serializers.ModelSerializer):
    """Owner's own profile; only contact and business details are editable"""

    stations = StationDetailSerializer(many=True, read_only=True)

    class Meta:
        model = StationOwner
        fields = ['id', 'email', 'name', 'phone', 'company_name', 'gst_number', 'pan_number',
                  'address', 'city', 'state', 'postal_code', 'status', 'email_verified',
                  'phone_verified', 'kyc_status', 'profile_complete', 'onboarding_step',
                  'subscription_type', 'subscription_ends_at', 'last_login_at',
                  'created_at', 'updated_at', 'stations']
        read_only_fields = ['id', 'email', 'status', 'email_verified', 'phone_verified',
                            'kyc_status', 'profile_complete', 'onboarding_step',
                            'subscription_type', 'subscription_ends_at', 'last_login_at',
                            'created_at', 'updated_at']


class AdminOwnerSerializer(serializers.ModelSerializer):
    """Owner as seen by admins; never exposes the password hash"""

    station_count = serializers.IntegerField(read_only=True)
    ticket_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = StationOwner
        exclude = ['password_hash']


class AdminOwnerDetailSerializer(AdminOwnerSerializer):
    stations = StationDetailSerializer(many=True, read_only=True)


class AdminOwnerUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = StationOwner
        fields = ['name', 'phone', 'company_name', 'address', 'city', 'state', 'status',
                  'kyc_status', 'kyc_rejection_reason', 'email_verified', 'phone_verified',
                  'subscription_type', 'subscription_ends_at']
        extra_kwargs = {'name': {'min_length': 1}}


class CngStatusUpdateSerializer(serializers.Serializer):
    station_id = serializers.IntegerField(required=False)
    cng_available = serializers.BooleanField(required=False)
    cng_quantity_kg = serializers.FloatField(min_value=0, required=False)


class CngStatusSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    city = serializers.CharField()
    cng_available = serializers.BooleanField()
    cng_quantity_kg = serializers.FloatField()
    cng_updated_at = serializers.DateTimeField(allow_null=True)


class PlanSerializer(serializers.Serializer):
    plan_id = serializers.ChoiceField(choices=list(PLANS))


class VerifyPaymentSerializer(PlanSerializer):
    razorpay_order_id = serializers.CharField(max_length=100)
    razorpay_payment_id = serializers.CharField(max_length=100)
    razorpay_signature = serializers.CharField(max_length=256)


class PaymentHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentHistory
        fields = ['id', 'razorpay_order_id', 'razorpay_payment_id', 'plan_id', 'plan_name',
                  'amount', 'currency', 'status', 'subscription_starts_at',
                  'subscription_ends_at', 'created_at']


class TicketReplySerializer(serializers.ModelSerializer):
    class Meta:
        model = TicketReply
        fields = ['id', 'message', 'is_internal', 'created_by', 'created_by_type', 'created_at']


class SupportTicketSerializer(serializers.ModelSerializer):
    station = serializers.SerializerMethodField()
    replies = serializers.SerializerMethodField()

    class Meta:
        model = SupportTicket
        fields = ['id', 'ticket_number', 'subject', 'description', 'category', 'priority',
                  'status', 'owner', 'station', 'assigned_to', 'resolution', 'resolved_at',
                  'created_at', 'updated_at', 'replies']

    def get_station(self, ticket):
        if ticket.station is None:
            return None
        return {'id': ticket.station.id, 'name': ticket.station.name, 'city': ticket.station.city}

    def get_replies(self, ticket):
        replies = ticket.replies.all()
        # Internal notes are hidden from owners
        if not self.context.get('include_internal'):
            replies = [reply for reply in replies if not reply.is_internal]
        return TicketReplySerializer(replies, many=True).data


class TicketCreateSerializer(serializers.Serializer):
    subject = serializers.CharField(max_length=200)
    description = serializers.CharField()
    category = serializers.CharField(max_length=50)
    priority = serializers.ChoiceField(choices=SupportTicket.PRIORITY_CHOICES, default='medium')
    station_id = serializers.IntegerField(required=False, allow_null=True)


class ReplyCreateSerializer(serializers.Serializer):
    message = serializers.CharField()
    is_internal = serializers.BooleanField(default=False)


class AdminTicketUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SupportTicket.STATUS_CHOICES, required=False)
    assigned_to = serializers.CharField(max_length=200, required=False, allow_blank=True)
    resolution = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=SupportTicket.PRIORITY_CHOICES, required=False)


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'message', 'type', 'category', 'is_read', 'created_at']


class NotificationReadSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), required=False)


class AdminAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = Admin
        fields = ['id', 'name', 'email', 'role', 'created_at']


class AdminCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    email = LowercaseEmailField()
    password = serializers.CharField(min_length=6, max_length=100, write_only=True)
    role = serializers.ChoiceField(choices=Admin.ROLE_CHOICES, default=Admin.ROLE_ADMIN)


class AdminRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=Admin.ROLE_CHOICES)


class ActivityLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = ActivityLog
        fields = ['id', 'owner', 'admin', 'station', 'action', 'description', 'metadata',
                  'ip_address', 'created_at']


class PageQuerySerializer(serializers.Serializer):
    """Pagination and free-text filter shared by admin listings"""
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False, default=20)
    search = serializers.CharField(required=False, allow_blank=True, default='')
