from unittest.mock import MagicMock, patch

import pytest
import requests

from stations.models import Station

from .conftest import make_station

pytestmark = pytest.mark.django_db

BANDRA = {'lat': 19.0760, 'lng': 72.8777}


@pytest.fixture
def stations():
    return {
        'near': make_station(name='Bandra CNG', latitude=19.0800, longitude=72.8800),
        'partner': make_station(
            name='Partner CNG', latitude=19.1100, longitude=72.8900,
            is_partner=True, rating=4.6,
        ),
        'far': make_station(name='Pune CNG', city='Pune', latitude=18.5204, longitude=73.8567),
        'pending': make_station(name='Pending CNG', approval_status=Station.APPROVAL_PENDING),
        'unverified': make_station(name='Unverified CNG', is_verified=False),
    }


class TestStationList:

    def test_lists_only_public_stations(self, api_client, stations):
        response = api_client.get('/api/stations/')

        assert response.status_code == 200
        names = {s['name'] for s in response.data['stations']}
        assert names == {'Bandra CNG', 'Partner CNG', 'Pune CNG'}
        assert response.data['total'] == 3
        # Partners first
        assert response.data['stations'][0]['name'] == 'Partner CNG'

    def test_point_filter_adds_distance(self, api_client, stations):
        response = api_client.get('/api/stations/', {'lat': 19.0760, 'lng': 72.8777, 'radius': 10})

        assert response.status_code == 200
        results = response.data['stations']
        assert [s['name'] for s in results] == ['Bandra CNG', 'Partner CNG']
        assert results[0]['distance'] < results[1]['distance']

    def test_city_filter(self, api_client, stations):
        response = api_client.get('/api/stations/', {'city': 'pune'})
        assert [s['name'] for s in response.data['stations']] == ['Pune CNG']

    def test_pagination(self, api_client, stations):
        response = api_client.get('/api/stations/', {'limit': 2, 'page': 2})
        assert response.data['count'] == 1
        assert response.data['pages'] == 2

    def test_lat_without_lng_rejected(self, api_client, stations):
        response = api_client.get('/api/stations/', {'lat': 19.0})
        assert response.status_code == 400
        assert response.data['error'] == 'Invalid input'

    def test_fuel_types_are_lists(self, api_client, stations):
        response = api_client.get('/api/stations/')
        assert response.data['stations'][0]['fuel_types'] == ['CNG']


class TestStationSearch:

    def test_text_search(self, api_client, stations):
        response = api_client.post('/api/stations/search/', {'query': 'pune'}, format='json')

        assert response.status_code == 200
        assert [s['name'] for s in response.data['stations']] == ['Pune CNG']

    def test_search_with_radius(self, api_client, stations):
        response = api_client.post(
            '/api/stations/search/', {'query': 'CNG', **BANDRA, 'radius_km': 10}, format='json',
        )
        names = [s['name'] for s in response.data['stations']]
        assert names == ['Bandra CNG', 'Partner CNG']

    def test_get_requires_q(self, api_client):
        response = api_client.get('/api/stations/search/')
        assert response.status_code == 400

    def test_get_search(self, api_client, stations):
        response = api_client.get('/api/stations/search/', {'q': 'Partner'})
        assert response.data['count'] == 1

    def test_empty_query_rejected(self, api_client):
        response = api_client.post('/api/stations/search/', {'query': ''}, format='json')
        assert response.status_code == 400
        assert response.data['error'] == 'Validation failed'


class TestSuggestPumps:

    def test_default_sort_by_score(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'plate': 'MH12AB1234'}, format='json')

        assert response.status_code == 200
        data = response.data
        assert data['region_detected'] == 'Maharashtra'
        assert data['sort_by'] == 'score'
        assert data['count'] == 2
        first, second = data['suggestions']
        assert first['station']['name'] == 'Partner CNG'
        assert first['score'] > second['score']
        assert 'Partner station' in first['reason']
        assert 'In your state' in first['reason']

    def test_sort_by_distance(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'sort_by': 'distance'}, format='json')
        names = [s['station']['name'] for s in response.data['suggestions']]
        assert names == ['Bandra CNG', 'Partner CNG']

    def test_sort_by_name(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'sort_by': 'name'}, format='json')
        names = [s['station']['name'] for s in response.data['suggestions']]
        assert names == sorted(names, key=str.lower)

    def test_values_rounded(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', BANDRA, format='json')
        for suggestion in response.data['suggestions']:
            assert suggestion['distance'] == round(suggestion['distance'], 2)
            assert suggestion['score'] == round(suggestion['score'], 2)

    def test_capped_at_thirty(self, api_client):
        for i in range(35):
            make_station(name=f"Station {i}", latitude=19.0760 + i * 0.001)
        response = api_client.post('/api/suggest-pumps/', BANDRA, format='json')
        assert response.data['count'] == 30

    def test_no_results_message(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', {'lat': 28.6, 'lng': 77.2}, format='json')
        assert response.data['count'] == 0
        assert 'message' in response.data

    def test_unknown_plate_has_no_region(self, api_client, stations):
        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'plate': 'ZZ99'}, format='json')
        assert response.data['region_detected'] is None

    def test_sort_by_rating(self, api_client):
        make_station(name='Three Star', latitude=19.0770, rating=3.0)
        make_station(name='Top Rated', latitude=19.0900, rating=4.8)
        make_station(name='Four Star', latitude=19.0780, rating=4.0, is_partner=True)

        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'sort_by': 'rating'}, format='json')

        names = [s['station']['name'] for s in response.data['suggestions']]
        assert names == ['Top Rated', 'Four Star', 'Three Star']

    @pytest.mark.parametrize('query, expected', [
        ('andheri', ['Andheri Gas Point']),
        ('POWAI LAKE', ['Green CNG']),
        ('kurla', ['Kurla Depot']),
    ])
    def test_search_query_matches_name_address_or_city(self, api_client, query, expected):
        make_station(name='Andheri Gas Point', latitude=19.0790)
        make_station(name='Green CNG', address='Powai Lake Road', latitude=19.0800)
        make_station(name='Kurla Depot', city='Kurla', latitude=19.0810)

        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'search_query': query}, format='json')

        assert response.data['search_query'] == query
        assert [s['station']['name'] for s in response.data['suggestions']] == expected

    def test_fuel_type_filter(self, api_client):
        make_station(name='CNG Pump', fuel_types='CNG,Petrol')
        make_station(name='Petrol Pump', fuel_types='Petrol,Diesel', latitude=19.0770)

        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'fuel_type': 'CNG'}, format='json')
        assert [s['station']['name'] for s in response.data['suggestions']] == ['CNG Pump']

        response = api_client.post('/api/suggest-pumps/', BANDRA, format='json')
        assert response.data['count'] == 2

    @pytest.mark.parametrize('plate, bonus_station', [
        ('MH 02 AB 1234', 'Mumbai CNG'),
        ('GJ01CD5678', 'Border CNG'),
    ])
    def test_same_state_bonus(self, api_client, plate, bonus_station):
        make_station(name='Mumbai CNG', state='Maharashtra')
        make_station(name='Border CNG', state='Gujarat')

        response = api_client.post('/api/suggest-pumps/', {**BANDRA, 'plate': plate}, format='json')

        scores = {s['station']['name']: s['score'] for s in response.data['suggestions']}
        other = 'Border CNG' if bonus_station == 'Mumbai CNG' else 'Mumbai CNG'
        assert scores[bonus_station] == scores[other] + 10
        assert response.data['suggestions'][0]['station']['name'] == bonus_station
        assert 'In your state' in response.data['suggestions'][0]['reason']

    @pytest.mark.parametrize('payload', [
        {'lat': 95, 'lng': 72.8},
        {'lat': 19.0, 'lng': 72.8, 'radius_km': 0},
        {'lat': 19.0, 'lng': 72.8, 'radius_km': 101},
        {'lat': 19.0, 'lng': 72.8, 'sort_by': 'price'},
        {'lng': 72.8},
    ])
    def test_invalid_input(self, api_client, payload):
        response = api_client.post('/api/suggest-pumps/', payload, format='json')
        assert response.status_code == 400
        assert response.data['error'] == 'Validation failed'


class TestMapAndGeocode:

    def test_map_renders_html(self, api_client, stations):
        response = api_client.get('/api/stations/map/', {**BANDRA, 'radius': 10})
        assert response.status_code == 200
        assert response['Content-Type'].startswith('text/html')

    def test_map_requires_point(self, api_client):
        response = api_client.get('/api/stations/map/')
        assert response.status_code == 400

    @patch('stations.services.requests.get')
    def test_geocode(self, mock_get, api_client):
        mock_get.return_value = MagicMock(
            json=MagicMock(return_value=[{'lat': '19.05', 'lon': '72.83', 'display_name': 'Bandra, Mumbai'}]),
        )

        response = api_client.get('/api/places/geocode/', {'q': 'Bandra'})
        assert response.status_code == 200
        assert response.data['place'] == {'lat': 19.05, 'lng': 72.83, 'display_name': 'Bandra, Mumbai'}

        # Second lookup is served from the cache
        api_client.get('/api/places/geocode/', {'q': 'Bandra'})
        assert mock_get.call_count == 1

    @patch('stations.services.requests.get')
    def test_geocode_not_found(self, mock_get, api_client):
        mock_get.return_value = MagicMock(json=MagicMock(return_value=[]))
        response = api_client.get('/api/places/geocode/', {'q': 'Nowhere'})
        assert response.status_code == 404

    @patch('stations.services.requests.get', side_effect=requests.ConnectionError('down'))
    def test_geocode_provider_down(self, mock_get, api_client):
        response = api_client.get('/api/places/geocode/', {'q': 'Bandra'})
        assert response.status_code == 502


def test_health(api_client):
    response = api_client.get('/api/health/')
    assert response.status_code == 200
    assert response.data['status'] == 'healthy'


def test_stale_token_does_not_block_public_endpoints(api_client):
    api_client.credentials(HTTP_AUTHORIZATION='Bearer not-a-token')
    response = api_client.get('/api/health/')
    assert response.status_code == 200
