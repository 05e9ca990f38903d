from django.urls import path

from . import admin_views, views

urlpatterns = [
    # Authentication
    path('auth/owner/signup/', views.OwnerSignupView.as_view(), name='owner-signup'),
    path('auth/owner/login/', views.OwnerLoginView.as_view(), name='owner-login'),
    path('auth/admin/login/', views.AdminLoginView.as_view(), name='admin-login'),
    path('auth/logout/', views.LogoutView.as_view(), name='logout'),

    # Station owners
    path('owner/profile/', views.OwnerProfileView.as_view(), name='owner-profile'),
    path('owner/stations/', views.OwnerStationsView.as_view(), name='owner-stations'),
    path('owner/stations/<int:station_id>/', views.OwnerStationDetailView.as_view(), name='owner-station-detail'),
    path('owner/cng-status/', views.CngStatusView.as_view(), name='owner-cng-status'),
    path('owner/subscription/', views.SubscriptionStatusView.as_view(), name='owner-subscription'),
    path('owner/subscription/create-order/', views.CreateOrderView.as_view(), name='owner-create-order'),
    path('owner/subscription/verify-payment/', views.VerifyPaymentView.as_view(), name='owner-verify-payment'),
    path('owner/payment-history/', views.PaymentHistoryView.as_view(), name='owner-payment-history'),
    path('owner/support/', views.OwnerSupportView.as_view(), name='owner-support'),
    path('owner/support/<int:ticket_id>/replies/', views.OwnerTicketReplyView.as_view(), name='owner-ticket-reply'),
    path('owner/notifications/', views.NotificationListView.as_view(), name='owner-notifications'),
    path('owner/notifications/read/', views.NotificationReadView.as_view(), name='owner-notifications-read'),

    path('webhooks/razorpay/', views.RazorpayWebhookView.as_view(), name='razorpay-webhook'),

    # Platform admins
    path('admin/stations/', admin_views.AdminStationListView.as_view(), name='admin-stations'),
    path('admin/stations/<int:station_id>/', admin_views.AdminStationDetailView.as_view(), name='admin-station-detail'),
    path('admin/owners/', admin_views.AdminOwnerListView.as_view(), name='admin-owners'),
    path('admin/owners/<int:owner_id>/', admin_views.AdminOwnerDetailView.as_view(), name='admin-owner-detail'),
    path('admin/support/', admin_views.AdminSupportView.as_view(), name='admin-support'),
    path('admin/support/<int:ticket_id>/', admin_views.AdminSupportView.as_view(), name='admin-ticket-detail'),
    path('admin/support/<int:ticket_id>/replies/', admin_views.AdminTicketReplyView.as_view(), name='admin-ticket-reply'),
    path('admin/admins/', admin_views.AdminAccountListView.as_view(), name='admin-accounts'),
    path('admin/admins/<int:admin_id>/', admin_views.AdminAccountDetailView.as_view(), name='admin-account-detail'),
    path('admin/activity/', admin_views.ActivityLogView.as_view(), name='admin-activity'),
]
