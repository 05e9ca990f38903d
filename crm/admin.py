from django.contrib import admin
from .models import (
    ActivityLog,
    Admin,
    Notification,
    PaymentHistory,
    StationOwner,
    Subscription,
    SupportTicket,
    TicketReply,
)


@admin.register(StationOwner)
class StationOwnerAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'company_name', 'status', 'kyc_status',
                    'subscription_type', 'subscription_ends_at']
    list_filter = ['status', 'kyc_status', 'subscription_type']
    search_fields = ['name', 'email', 'company_name', 'phone']
    ordering = ['-created_at']
    list_per_page = 50
    exclude = ['password_hash']

    fieldsets = (
        ('Account', {
            'fields': ('name', 'email', 'phone', 'status', 'email_verified', 'phone_verified')
        }),
        ('Business', {
            'fields': ('company_name', 'gst_number', 'pan_number', 'address', 'city',
                       'state', 'postal_code')
        }),
        ('KYC', {
            'fields': ('kyc_status', 'kyc_rejection_reason', 'profile_complete', 'onboarding_step')
        }),
        ('Subscription', {
            'fields': ('subscription_type', 'subscription_ends_at', 'last_login_at')
        }),
    )


@admin.register(Admin)
class AdminAccountAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'role', 'created_at']
    list_filter = ['role']
    search_fields = ['name', 'email']
    exclude = ['password_hash']


class TicketReplyInline(admin.TabularInline):
    model = TicketReply
    extra = 0


@admin.register(SupportTicket)
class SupportTicketAdmin(admin.ModelAdmin):
    list_display = ['ticket_number', 'subject', 'owner', 'category', 'priority', 'status', 'created_at']
    list_filter = ['status', 'priority', 'category']
    search_fields = ['ticket_number', 'subject', 'description']
    raw_id_fields = ['owner', 'station']
    inlines = [TicketReplyInline]


@admin.register(PaymentHistory)
class PaymentHistoryAdmin(admin.ModelAdmin):
    list_display = ['razorpay_order_id', 'owner', 'plan_id', 'amount', 'status', 'created_at']
    list_filter = ['status', 'plan_id']
    search_fields = ['razorpay_order_id', 'razorpay_payment_id', 'owner__email']
    raw_id_fields = ['owner']


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ['station', 'plan_type', 'start_date', 'end_date', 'amount', 'status']
    list_filter = ['plan_type', 'status']
    raw_id_fields = ['station']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'owner', 'type', 'category', 'is_read', 'created_at']
    list_filter = ['type', 'category', 'is_read']


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['action', 'description', 'owner', 'admin', 'created_at']
    list_filter = ['action']
    search_fields = ['description']
    raw_id_fields = ['owner', 'admin', 'station']
