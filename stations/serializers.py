from rest_framework import serializers

from .models import Station, split_csv


class CommaSeparatedListField(serializers.ListField):
    """List in the API, comma-separated text in the database"""

    child = serializers.CharField(max_length=50)

    def to_representation(self, value):
        if isinstance(value, str):
            value = split_csv(value)
        return super().to_representation(value)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = split_csv(data)
        return ','.join(super().to_internal_value(data))


class StationSerializer(serializers.ModelSerializer):
    """Public view of a station"""

    fuel_types = CommaSeparatedListField()
    amenities = CommaSeparatedListField()

    class Meta:
        model = Station
        fields = ['id', 'name', 'address', 'city', 'state', 'postal_code',
                  'latitude', 'longitude', 'fuel_types', 'phone', 'opening_hours',
                  'amenities', 'is_partner', 'rating', 'cng_available',
                  'cng_quantity_kg', 'cng_updated_at']


class StationDetailSerializer(StationSerializer):
    """Full station record for owners and admins"""

    class Meta(StationSerializer.Meta):
        fields = StationSerializer.Meta.fields + [
            'is_verified', 'approval_status', 'rejection_reason', 'subscription_type',
            'owner', 'added_by', 'created_at', 'updated_at',
        ]


class StationWriteSerializer(serializers.ModelSerializer):
    """Fields an owner may set on their own station"""

    fuel_types = CommaSeparatedListField(required=False, default='CNG')
    amenities = CommaSeparatedListField(required=False, default='')
    latitude = serializers.FloatField(min_value=-90, max_value=90, required=False)
    longitude = serializers.FloatField(min_value=-180, max_value=180, required=False)

    class Meta:
        model = Station
        fields = ['name', 'address', 'city', 'state', 'postal_code', 'latitude', 'longitude',
                  'fuel_types', 'phone', 'opening_hours', 'amenities']
        extra_kwargs = {
            'name': {'min_length': 2},
            'address': {'min_length': 5},
            'city': {'min_length': 2},
            'state': {'min_length': 2},
        }

    def validate(self, attrs):
        # On update the stored coordinate completes the pair
        current_lat = self.instance.latitude if self.instance else None
        current_lng = self.instance.longitude if self.instance else None
        has_lat = attrs.get('latitude', current_lat) is not None
        has_lng = attrs.get('longitude', current_lng) is not None
        if has_lat != has_lng:
            raise serializers.ValidationError('latitude and longitude must be given together')
        return attrs


class AdminStationWriteSerializer(StationWriteSerializer):
    """Admins may also moderate and promote a station"""

    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)

    class Meta(StationWriteSerializer.Meta):
        fields = StationWriteSerializer.Meta.fields + [
            'is_partner', 'is_verified', 'rating', 'subscription_type',
            'approval_status', 'rejection_reason',
        ]
        extra_kwargs = {
            'name': {'min_length': 1},
            'address': {'min_length': 1},
            'city': {'min_length': 1},
            'state': {'min_length': 1},
        }


class StationListQuerySerializer(serializers.Serializer):
    """Query parameters of the public station listing"""
    lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    lng = serializers.FloatField(min_value=-180, max_value=180, required=False)
    radius = serializers.FloatField(required=False, default=10)
    city = serializers.CharField(required=False)
    state = serializers.CharField(required=False)
    fuel_type = serializers.CharField(required=False)
    page = serializers.IntegerField(required=False, default=1)
    limit = serializers.IntegerField(required=False, default=50)

    def validate(self, attrs):
        if ('lat' in attrs) != ('lng' in attrs):
            raise serializers.ValidationError('lat and lng must be given together')
        # Out-of-range paging and radius are clamped rather than rejected
        attrs['radius'] = min(100, max(1, attrs['radius']))
        attrs['page'] = max(1, attrs['page'])
        attrs['limit'] = min(100, max(1, attrs['limit']))
        return attrs


class StationSearchSerializer(serializers.Serializer):
    """Validate station text search input"""
    query = serializers.CharField(min_length=1, max_length=200)
    lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    lng = serializers.FloatField(min_value=-180, max_value=180, required=False)
    fuel_types = serializers.ListField(
        child=serializers.ChoiceField(choices=['CNG']), required=False,
    )
    radius_km = serializers.FloatField(min_value=1, max_value=100, default=50)
    limit = serializers.IntegerField(min_value=1, max_value=50, default=20)


class SuggestPumpsSerializer(serializers.Serializer):
    """Validate station suggestion input"""
    plate = serializers.CharField(max_length=20, required=False, allow_blank=True)
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
    fuel_type = serializers.ChoiceField(choices=['CNG'], required=False)
    radius_km = serializers.FloatField(min_value=1, max_value=100, default=20)
    search_query = serializers.CharField(max_length=200, required=False, allow_blank=True)
    sort_by = serializers.ChoiceField(choices=['score', 'distance', 'rating', 'name'], default='score')


class SuggestionSerializer(serializers.Serializer):
    """Individual station suggestion"""
    station = StationSerializer()
    distance = serializers.FloatField()
    score = serializers.FloatField()
    reason = serializers.CharField()


class SuggestPumpsResponseSerializer(serializers.Serializer):
    """Complete suggestion response"""
    success = serializers.BooleanField()
    count = serializers.IntegerField()
    region_detected = serializers.CharField(allow_null=True)
    search_query = serializers.CharField(allow_null=True)
    sort_by = serializers.CharField()
    radius_km = serializers.FloatField()
    center = serializers.DictField()
    suggestions = SuggestionSerializer(many=True)


class NearbyStationSerializer(serializers.Serializer):
    station = StationSerializer()
    distance = serializers.FloatField(allow_null=True)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        station = data.pop('station')
        station['distance'] = data['distance']
        return station


class StationMapQuerySerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
    radius = serializers.FloatField(min_value=1, max_value=100, default=10)


class GeocodeQuerySerializer(serializers.Serializer):
    q = serializers.CharField(min_length=1, max_length=300)
