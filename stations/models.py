from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


def split_csv(value):
    return [item.strip() for item in (value or '').split(',') if item.strip()]


class StationQuerySet(models.QuerySet):

    def public(self):
        """Stations visible on the map: approved by an admin and verified."""
        return self.filter(approval_status=Station.APPROVAL_APPROVED, is_verified=True)

    def within_box(self, box):
        min_lat, max_lat, min_lng, max_lng = box
        return self.filter(
            latitude__gte=min_lat,
            latitude__lte=max_lat,
            longitude__gte=min_lng,
            longitude__lte=max_lng,
        )

    def with_fuel(self, fuel_type):
        return self.filter(fuel_types__icontains=fuel_type)


class Station(models.Model):
    """CNG / fuel retail location"""

    APPROVAL_PENDING = 'pending'
    APPROVAL_APPROVED = 'approved'
    APPROVAL_REJECTED = 'rejected'
    APPROVAL_CHOICES = [
        (APPROVAL_PENDING, 'Pending'),
        (APPROVAL_APPROVED, 'Approved'),
        (APPROVAL_REJECTED, 'Rejected'),
    ]

    LISTING_FREE = 'free'
    LISTING_BASIC = 'basic'
    LISTING_PREMIUM = 'premium'
    LISTING_CHOICES = [
        (LISTING_FREE, 'Free'),
        (LISTING_BASIC, 'Basic'),
        (LISTING_PREMIUM, 'Premium'),
    ]

    name = models.CharField(max_length=200)
    address = models.CharField(max_length=500)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    postal_code = models.CharField(max_length=10, blank=True, default='')
    latitude = models.FloatField()
    longitude = models.FloatField()
    fuel_types = models.CharField(max_length=200, default='CNG', help_text='Comma-separated')
    phone = models.CharField(max_length=20, blank=True, default='')
    opening_hours = models.CharField(max_length=50, blank=True, default='24/7')
    amenities = models.CharField(max_length=500, blank=True, default='', help_text='Comma-separated')

    is_partner = models.BooleanField(default=False)
    is_verified = models.BooleanField(default=False)
    rating = models.FloatField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
    )
    approval_status = models.CharField(max_length=20, choices=APPROVAL_CHOICES, default=APPROVAL_PENDING)
    rejection_reason = models.TextField(blank=True, default='')
    subscription_type = models.CharField(max_length=20, choices=LISTING_CHOICES, default=LISTING_FREE)

    owner = models.ForeignKey(
        'crm.StationOwner', null=True, blank=True,
        on_delete=models.CASCADE, related_name='stations',
    )
    added_by = models.ForeignKey(
        'crm.Admin', null=True, blank=True,
        on_delete=models.SET_NULL, related_name='added_stations',
    )

    cng_available = models.BooleanField(default=True)
    cng_quantity_kg = models.FloatField(default=0)
    cng_updated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StationQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=['latitude', 'longitude'], name='station_location_idx'),
            models.Index(fields=['approval_status', 'is_verified'], name='station_visibility_idx'),
        ]
        ordering = ['-is_partner', '-created_at']

    def __str__(self):
        return f"{self.name} - {self.city}, {self.state}"

    @property
    def fuel_type_list(self):
        return split_csv(self.fuel_types)

    @property
    def amenity_list(self):
        return split_csv(self.amenities)
