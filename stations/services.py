import math
from typing import Dict, List, Optional, Tuple

import folium
import requests
from django.conf import settings
from django.core.cache import cache
from django.db.models import Q

from .models import Station

EARTH_RADIUS_KM = 6371
KM_PER_DEGREE = 111
MAX_SUGGESTIONS = 30

# Two-letter RTO prefixes of Indian registration plates
STATE_CODES = {
    'AP': 'Andhra Pradesh',
    'AR': 'Arunachal Pradesh',
    'AS': 'Assam',
    'BR': 'Bihar',
    'CG': 'Chhattisgarh',
    'GA': 'Goa',
    'GJ': 'Gujarat',
    'HR': 'Haryana',
    'HP': 'Himachal Pradesh',
    'JH': 'Jharkhand',
    'KA': 'Karnataka',
    'KL': 'Kerala',
    'MP': 'Madhya Pradesh',
    'MH': 'Maharashtra',
    'MN': 'Manipur',
    'ML': 'Meghalaya',
    'MZ': 'Mizoram',
    'NL': 'Nagaland',
    'OD': 'Odisha',
    'OR': 'Odisha',
    'PB': 'Punjab',
    'RJ': 'Rajasthan',
    'SK': 'Sikkim',
    'TN': 'Tamil Nadu',
    'TS': 'Telangana',
    'TR': 'Tripura',
    'UP': 'Uttar Pradesh',
    'UK': 'Uttarakhand',
    'WB': 'West Bengal',
    'DL': 'Delhi',
    'AN': 'Andaman and Nicobar',
    'CH': 'Chandigarh',
    'DN': 'Dadra and Nagar Haveli',
    'DD': 'Daman and Diu',
    'LD': 'Lakshadweep',
    'PY': 'Puducherry',
    'BH': 'India',
}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi/2)**2 + \
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))
    return EARTH_RADIUS_KM * c


def bounding_box(lat: float, lng: float, radius_km: float) -> Tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lng, max_lng) enclosing a circle of radius_km."""
    lat_delta = radius_km / KM_PER_DEGREE
    lng_delta = radius_km / (KM_PER_DEGREE * math.cos(math.radians(lat)))
    return lat - lat_delta, lat + lat_delta, lng - lng_delta, lng + lng_delta


def parse_plate(plate: str) -> Optional[Dict[str, str]]:
    """
    Detect the registering state from an Indian vehicle plate.

    Handles the standard (MH12AB1234), commercial (MH12T1234) and
    all-India BH series (BH01AB1234) formats; separators are ignored.
    """
    cleaned = ''.join(ch for ch in plate.upper() if ch.isascii() and ch.isalnum())
    code = cleaned[:2]
    state = STATE_CODES.get(code)
    if state is None:
        return None
    return {'region_code': code, 'state': state}


def station_score(station: Station, distance_km: float, user_state: Optional[str] = None) -> float:
    """
    Relevance of a station for a driver, higher is better:
      100 - 2 * distance, +20 for partners, +5 per rating star, +10 in the driver's state.
    Never negative.
    """
    score = 100 - distance_km * 2
    if station.is_partner:
        score += 20
    score += (station.rating or 0) * 5
    if user_state and station.state == user_state:
        score += 10
    return max(0, score)


def suggestion_reason(station: Station, distance_km: float, user_state: Optional[str] = None) -> str:
    reasons = []
    if distance_km < 2:
        reasons.append('Very close')
    elif distance_km < 5:
        reasons.append('Nearby')
    if station.is_partner:
        reasons.append('Partner station')
    if (station.rating or 0) >= 4.5:
        reasons.append('Highly rated')
    if user_state and station.state == user_state:
        reasons.append('In your state')

    if not reasons:
        return f"{distance_km:.1f}km away"
    return ' • '.join(reasons)


class StationLocator:
    """Bounding-box prefilter in the database, exact Haversine distance in Python"""

    SORT_FIELDS = ('score', 'distance', 'rating', 'name')

    def __init__(self, queryset=None):
        self.queryset = queryset if queryset is not None else Station.objects.public()

    def nearby(self, lat: float, lng: float, radius_km: float) -> List[Dict]:
        stations = self.queryset.within_box(bounding_box(lat, lng, radius_km))

        nearby = []
        for station in stations:
            distance = haversine_km(lat, lng, station.latitude, station.longitude)
            if distance <= radius_km:
                nearby.append({'station': station, 'distance': distance})

        nearby.sort(key=lambda item: item['distance'])
        return nearby

    def search(self, query: str, lat: Optional[float] = None, lng: Optional[float] = None,
               radius_km: float = 50, fuel_types: Optional[List[str]] = None,
               limit: int = 20) -> List[Dict]:
        stations = self.queryset.filter(
            Q(name__icontains=query) | Q(address__icontains=query) |
            Q(city__icontains=query) | Q(state__icontains=query)
        )
        for fuel_type in fuel_types or []:
            stations = stations.with_fuel(fuel_type)

        if lat is None or lng is None:
            return [{'station': station, 'distance': None} for station in stations[:limit]]

        results = StationLocator(stations).nearby(lat, lng, radius_km)
        for item in results:
            item['distance'] = round(item['distance'], 2)
        return results[:limit]

    def suggest(self, lat: float, lng: float, radius_km: float = 20, plate: Optional[str] = None,
                fuel_type: Optional[str] = None, search_query: Optional[str] = None,
                sort_by: str = 'score') -> Dict:
        if sort_by not in self.SORT_FIELDS:
            raise ValueError(f"Cannot sort suggestions by {sort_by!r}")

        region = parse_plate(plate) if plate else None
        user_state = region['state'] if region else None

        stations = self.queryset
        if fuel_type:
            stations = stations.with_fuel(fuel_type)
        if search_query:
            stations = stations.filter(
                Q(name__icontains=search_query) | Q(address__icontains=search_query) |
                Q(city__icontains=search_query)
            )

        suggestions = []
        for item in StationLocator(stations).nearby(lat, lng, radius_km):
            station = item['station']
            distance = item['distance']
            suggestions.append({
                'station': station,
                'distance': round(distance, 2),
                'score': round(station_score(station, distance, user_state), 2),
                'reason': suggestion_reason(station, distance, user_state),
            })

        if sort_by == 'distance':
            suggestions.sort(key=lambda s: s['distance'])
        elif sort_by == 'rating':
            suggestions.sort(key=lambda s: s['station'].rating or 0, reverse=True)
        elif sort_by == 'name':
            suggestions.sort(key=lambda s: s['station'].name.lower())
        else:
            suggestions.sort(key=lambda s: s['score'], reverse=True)

        return {
            'region': region,
            'suggestions': suggestions[:MAX_SUGGESTIONS],
        }


class GeocodingService:
    """Handles external geocoding API calls"""

    def geocode(self, location: str) -> Dict:
        cache_key = f"geocode:{location}".replace(" ", "_").replace(",", "")
        cached = cache.get(cache_key)
        if cached:
            return cached

        params = {
            'q': location,
            'format': 'json',
            'limit': 1,
            'countrycodes': settings.GEOCODER_COUNTRY_CODES,
        }
        headers = {'User-Agent': settings.GEOCODER_USER_AGENT}

        response = requests.get(settings.GEOCODER_URL, params=params, headers=headers, timeout=10)
        response.raise_for_status()
        data = response.json()

        if not data:
            raise ValueError(f"Could not find location: {location}")

        result = {
            'lat': float(data[0]['lat']),
            'lng': float(data[0]['lon']),
            'display_name': data[0].get('display_name', location),
        }
        cache.set(cache_key, result, 86400)
        return result


class MapGenerator:
    """Generates map visualization"""

    @staticmethod
    def zoom_for_radius(radius_km: float) -> int:
        if radius_km > 50:
            return 9
        if radius_km > 20:
            return 10
        if radius_km > 5:
            return 12
        return 14

    @classmethod
    def generate_map_html(cls, lat: float, lng: float, radius_km: float, nearby: List[Dict]) -> str:
        """Interactive HTML map of the search point and the stations around it"""
        m = folium.Map(location=[lat, lng], zoom_start=cls.zoom_for_radius(radius_km))

        folium.Marker(
            [lat, lng],
            popup="<b>You are here</b>",
            icon=folium.Icon(color='blue', icon='user'),
        ).add_to(m)

        folium.Circle(
            [lat, lng],
            radius=radius_km * 1000,
            color='blue',
            weight=1,
            fill=False,
        ).add_to(m)

        for item in nearby:
            station = item['station']
            if station.cng_available:
                color = 'green' if station.is_partner else 'orange'
            else:
                color = 'gray'

            folium.Marker(
                [station.latitude, station.longitude],
                popup=f"""
                <div style='width: 200px'>
                    <b>{station.name}</b><br>
                    {station.address}<br>
                    {station.city}, {station.state}<br>
                    <hr>
                    <b>Fuel:</b> {', '.join(station.fuel_type_list)}<br>
                    <b>CNG:</b> {'Available' if station.cng_available else 'Out of stock'}<br>
                    <b>Rating:</b> {station.rating:.1f}<br>
                    <b>Distance:</b> {item['distance']:.1f} km
                </div>
                """,
                icon=folium.Icon(color=color, icon='info-sign'),
            ).add_to(m)

        return m._repr_html_()
