import logging
import math

import requests
from django.http import HttpResponse
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Station
from .serializers import (
    GeocodeQuerySerializer,
    NearbyStationSerializer,
    StationListQuerySerializer,
    StationMapQuerySerializer,
    StationSearchSerializer,
    SuggestionSerializer,
    SuggestPumpsResponseSerializer,
    SuggestPumpsSerializer,
)
from .services import GeocodingService, MapGenerator, StationLocator, bounding_box, haversine_km

logger = logging.getLogger(__name__)


def invalid_input(serializer, message="Invalid input"):
    return Response(
        {"error": message, "details": serializer.errors},
        status=status.HTTP_400_BAD_REQUEST
    )


class PublicAPIView(APIView):
    """Open endpoints; a stale bearer token must not lock drivers out of the map"""
    authentication_classes = []
    permission_classes = []


class StationListView(PublicAPIView):
    """List approved stations with optional location filter"""

    @extend_schema(
        parameters=[StationListQuerySerializer],
        responses={200: NearbyStationSerializer(many=True)},
        description="""
List approved and verified stations, partner stations first.

When `lat` and `lng` are given, stations are limited to a bounding box of
`radius` km around the point (1-100, default 10) and every station carries its
Haversine `distance` in km; the page is then ordered by distance.
        """
    )
    def get(self, request):
        query = StationListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)
        params = query.validated_data

        try:
            stations = Station.objects.public()
            if params.get('city'):
                stations = stations.filter(city__icontains=params['city'])
            if params.get('state'):
                stations = stations.filter(state__icontains=params['state'])
            if params.get('fuel_type'):
                stations = stations.with_fuel(params['fuel_type'])

            lat, lng = params.get('lat'), params.get('lng')
            if lat is not None:
                stations = stations.within_box(bounding_box(lat, lng, params['radius']))

            page, limit = params['page'], params['limit']
            total = stations.count()
            offset = (page - 1) * limit
            page_stations = stations.order_by('-is_partner', '-created_at')[offset:offset + limit]

            results = []
            for station in page_stations:
                distance = None
                if lat is not None:
                    distance = round(haversine_km(lat, lng, station.latitude, station.longitude), 2)
                results.append({'station': station, 'distance': distance})
            if lat is not None:
                results.sort(key=lambda item: item['distance'])

            return Response({
                'success': True,
                'count': len(results),
                'total': total,
                'page': page,
                'pages': math.ceil(total / limit),
                'stations': NearbyStationSerializer(results, many=True).data,
            })

        except Exception:
            logger.exception("Failed to list stations")
            return Response(
                {"error": "Failed to fetch stations"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )


class StationSearchView(PublicAPIView):
    """Free-text station search"""

    @extend_schema(
        request=StationSearchSerializer,
        responses={200: NearbyStationSerializer(many=True)},
        examples=[
            OpenApiExample(
                'Search near Pune',
                value={"query": "Indian Oil", "lat": 18.5204, "lng": 73.8567, "radius_km": 25},
                request_only=True,
            ),
        ],
        description="""
Match `query` against station name, address, city and state. With `lat`/`lng`
the results are limited to `radius_km` and sorted by distance.
        """
    )
    def post(self, request):
        return self._search(request.data)

    @extend_schema(
        parameters=[
            OpenApiParameter('q', str, required=True),
            OpenApiParameter('lat', float),
            OpenApiParameter('lng', float),
            OpenApiParameter('fuel_type', str),
        ],
        responses={200: NearbyStationSerializer(many=True)},
    )
    def get(self, request):
        params = request.query_params
        query = params.get('q') or params.get('query')
        if not query:
            return Response(
                {"error": 'Query parameter "q" is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = {'query': query}
        if params.get('lat') and params.get('lng'):
            data['lat'] = params['lat']
            data['lng'] = params['lng']
        if params.get('fuel_type'):
            data['fuel_types'] = [params['fuel_type']]
        return self._search(data)

    def _search(self, data):
        serializer = StationSearchSerializer(data=data)
        if not serializer.is_valid():
            return invalid_input(serializer, "Validation failed")
        params = serializer.validated_data

        try:
            results = StationLocator().search(
                params['query'],
                lat=params.get('lat'),
                lng=params.get('lng'),
                radius_km=params['radius_km'],
                fuel_types=params.get('fuel_types'),
                limit=params['limit'],
            )
            return Response({
                'success': True,
                'count': len(results),
                'query': params['query'],
                'stations': NearbyStationSerializer(results, many=True).data,
            })

        except Exception:
            logger.exception("Failed to search stations")
            return Response(
                {"error": "Failed to search stations"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )


class SuggestPumpsView(PublicAPIView):
    """Rank nearby stations for a driver"""

    @extend_schema(
        request=SuggestPumpsSerializer,
        responses={200: SuggestPumpsResponseSerializer},
        examples=[
            OpenApiExample(
                'Maharashtra car near Bandra',
                value={"plate": "MH12AB1234", "lat": 19.0760, "lng": 72.8777, "radius_km": 20},
                request_only=True,
            ),
        ],
        description="""
Suggest stations within `radius_km` of the driver.

**Score** (higher is better, never below 0):
- Base: 100 - 2 x distance in km
- Partner station: +20
- Rating: +5 per star
- Same state as the vehicle plate: +10

Results are ordered by `sort_by` (`score` by default, or `distance`,
`rating`, `name`) and capped at 30.
        """
    )
    def post(self, request):
        serializer = SuggestPumpsSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer, "Validation failed")
        params = serializer.validated_data

        try:
            result = StationLocator().suggest(
                params['lat'],
                params['lng'],
                radius_km=params['radius_km'],
                plate=params.get('plate') or None,
                fuel_type=params.get('fuel_type'),
                search_query=params.get('search_query') or None,
                sort_by=params['sort_by'],
            )
            suggestions = result['suggestions']
            region = result['region']

            response_data = {
                'success': True,
                'count': len(suggestions),
                'region_detected': region['state'] if region else None,
                'search_query': params.get('search_query') or None,
                'sort_by': params['sort_by'],
                'radius_km': params['radius_km'],
                'center': {'lat': params['lat'], 'lng': params['lng']},
                'suggestions': SuggestionSerializer(suggestions, many=True).data,
            }
            if not suggestions:
                response_data['message'] = 'No stations found within the specified radius'

            return Response(response_data, status=status.HTTP_200_OK)

        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("Failed to suggest stations")
            return Response(
                {"error": "Failed to suggest pumps"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )


class StationMapView(PublicAPIView):
    """Interactive HTML map of nearby stations"""

    @extend_schema(
        parameters=[StationMapQuerySerializer],
        responses={200: {"type": "string", "format": "html"}},
        description="""
Returns an interactive HTML map centred on `lat`/`lng` with every approved
station within `radius` km.

**Map Features:**
- Blue marker = search point
- Green markers = partner stations with CNG
- Orange markers = other stations with CNG
- Gray markers = stations currently out of CNG
        """
    )
    def get(self, request):
        query = StationMapQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)
        params = query.validated_data

        try:
            nearby = StationLocator().nearby(params['lat'], params['lng'], params['radius'])
            map_html = MapGenerator.generate_map_html(
                params['lat'], params['lng'], params['radius'], nearby
            )
            return HttpResponse(map_html, content_type='text/html')

        except Exception:
            logger.exception("Failed to render station map")
            return HttpResponse(
                "<html><body><h1>Error generating map</h1></body></html>",
                status=500
            )


class GeocodeView(PublicAPIView):
    """Resolve a place name to coordinates"""

    @extend_schema(
        parameters=[GeocodeQuerySerializer],
        description="Look up coordinates for an address or place name (results cached for a day)",
    )
    def get(self, request):
        query = GeocodeQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)

        try:
            place = GeocodingService().geocode(query.validated_data['q'])
            return Response({'success': True, 'place': place})

        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_404_NOT_FOUND)
        except requests.RequestException:
            logger.exception("Geocoding provider request failed")
            return Response(
                {"error": "Geocoding service unavailable"},
                status=status.HTTP_502_BAD_GATEWAY
            )


class HealthCheckView(PublicAPIView):
    """Health check endpoint"""

    @extend_schema(
        description="Verify API is running and healthy",
        responses={
            200: {
                "type": "object",
                "properties": {
                    "status": {"type": "string", "example": "healthy"},
                    "service": {"type": "string", "example": "CNG Finder API"},
                    "version": {"type": "string", "example": "1.0.0"}
                }
            }
        }
    )
    def get(self, request):
        return Response({
            "status": "healthy",
            "service": "CNG Finder API",
            "version": "1.0.0"
        })
