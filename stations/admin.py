from django.contrib import admin
from .models import Station


@admin.register(Station)
class StationAdmin(admin.ModelAdmin):
    list_display = ['name', 'city', 'state', 'approval_status', 'is_verified', 'is_partner',
                    'rating', 'cng_available']
    list_filter = ['approval_status', 'is_verified', 'is_partner', 'state']
    search_fields = ['name', 'city', 'state', 'address']
    ordering = ['-created_at']
    list_per_page = 50
    raw_id_fields = ['owner', 'added_by']

    fieldsets = (
        ('Station Information', {
            'fields': ('name', 'address', 'city', 'state', 'postal_code', 'phone',
                       'opening_hours', 'fuel_types', 'amenities')
        }),
        ('Location', {
            'fields': ('latitude', 'longitude')
        }),
        ('Moderation', {
            'fields': ('owner', 'added_by', 'approval_status', 'rejection_reason',
                       'is_verified', 'is_partner', 'rating', 'subscription_type')
        }),
        ('CNG Availability', {
            'fields': ('cng_available', 'cng_quantity_kg', 'cng_updated_at')
        }),
    )
