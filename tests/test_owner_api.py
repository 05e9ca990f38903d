from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from crm.models import ActivityLog, Notification, SupportTicket, TicketReply
from stations.models import Station

from .conftest import auth, make_owner, make_station

pytestmark = pytest.mark.django_db

NEW_STATION = {
    'name': 'Kumar CNG',
    'address': 'NH 48, Kherki Daula',
    'city': 'Gurugram',
    'state': 'Haryana',
    'latitude': 28.4089,
    'longitude': 77.0424,
    'amenities': ['Restroom', 'Air'],
}


class TestProfile:

    def test_get_profile(self, owner_client, owner):
        make_station(owner=owner)
        response = owner_client.get('/api/owner/profile/')

        assert response.status_code == 200
        data = response.data['owner']
        assert data['email'] == owner.email
        assert 'password_hash' not in data
        assert len(data['stations']) == 1

    def test_update_recomputes_profile_complete(self, owner_client, owner):
        response = owner_client.put('/api/owner/profile/', {
            'company_name': 'Kumar Fuels', 'address': 'Sector 14', 'city': 'Gurugram', 'state': 'Haryana',
        }, format='json')

        assert response.status_code == 200
        assert response.data['owner']['profile_complete'] is True
        owner.refresh_from_db()
        assert owner.profile_complete

    def test_incomplete_profile(self, owner_client, owner):
        response = owner_client.put('/api/owner/profile/', {'city': 'Gurugram'}, format='json')
        assert response.data['owner']['profile_complete'] is False

    def test_cannot_change_status(self, owner_client, owner):
        owner_client.put('/api/owner/profile/', {'status': 'active', 'kyc_status': 'verified'}, format='json')
        owner.refresh_from_db()
        assert owner.kyc_status == 'pending'


class TestOwnerStations:

    def test_listing_needs_no_subscription(self, owner_client, owner):
        make_station(owner=owner)
        make_station(name='Someone else')

        response = owner_client.get('/api/owner/stations/')
        assert response.status_code == 200
        assert len(response.data['stations']) == 1

    def test_create_requires_subscription(self, owner_client):
        response = owner_client.post('/api/owner/stations/', NEW_STATION, format='json')

        assert response.status_code == 403
        assert response.data['error'] == 'Subscription required'
        assert response.data['subscription_status']['is_expired'] is False

    def test_create_with_subscription(self, subscriber_client, subscribed_owner):
        response = subscriber_client.post('/api/owner/stations/', NEW_STATION, format='json')

        assert response.status_code == 201
        station = Station.objects.get()
        assert station.owner == subscribed_owner
        assert station.approval_status == Station.APPROVAL_PENDING
        assert not station.is_verified
        assert station.amenities == 'Restroom,Air'
        assert response.data['station']['fuel_types'] == ['CNG']
        assert ActivityLog.objects.filter(action='station_created', station=station).exists()

    @patch('crm.views.GeocodingService.geocode')
    def test_create_geocodes_address(self, mock_geocode, subscriber_client):
        mock_geocode.return_value = {'lat': 28.41, 'lng': 77.04, 'display_name': 'Gurugram'}
        payload = {k: v for k, v in NEW_STATION.items() if k not in ('latitude', 'longitude')}

        response = subscriber_client.post('/api/owner/stations/', payload, format='json')

        assert response.status_code == 201
        mock_geocode.assert_called_once_with('NH 48, Kherki Daula, Gurugram, Haryana')
        station = Station.objects.get()
        assert (station.latitude, station.longitude) == (28.41, 77.04)

    @patch('crm.views.GeocodingService.geocode', side_effect=ValueError('nope'))
    def test_unlocatable_address(self, mock_geocode, subscriber_client):
        payload = {k: v for k, v in NEW_STATION.items() if k not in ('latitude', 'longitude')}
        response = subscriber_client.post('/api/owner/stations/', payload, format='json')
        assert response.status_code == 400
        assert not Station.objects.exists()

    def test_invalid_station(self, subscriber_client):
        response = subscriber_client.post('/api/owner/stations/', {**NEW_STATION, 'latitude': 120}, format='json')
        assert response.status_code == 400
        assert 'latitude' in response.data['details']

    def test_update_own_station(self, subscriber_client, subscribed_owner):
        station = make_station(owner=subscribed_owner)
        response = subscriber_client.put(
            f'/api/owner/stations/{station.id}/', {'phone': '02212345678'}, format='json',
        )
        assert response.status_code == 200
        station.refresh_from_db()
        assert station.phone == '02212345678'

    def test_update_single_coordinate(self, subscriber_client, subscribed_owner):
        station = make_station(owner=subscribed_owner)
        response = subscriber_client.put(
            f'/api/owner/stations/{station.id}/', {'latitude': 19.0812}, format='json',
        )
        assert response.status_code == 200
        station.refresh_from_db()
        assert station.latitude == 19.0812
        assert station.longitude == 72.8777

    def test_create_with_single_coordinate_rejected(self, subscriber_client):
        payload = {k: v for k, v in NEW_STATION.items() if k != 'longitude'}
        response = subscriber_client.post('/api/owner/stations/', payload, format='json')
        assert response.status_code == 400
        assert not Station.objects.exists()

    def test_cannot_update_other_station(self, subscriber_client):
        station = make_station(owner=make_owner(email='other@example.com'))
        response = subscriber_client.put(f'/api/owner/stations/{station.id}/', {'phone': '1'}, format='json')
        assert response.status_code == 404


class TestSubscriptionGate:

    def test_grace_period_allows_with_headers(self, api_client):
        owner = make_owner(subscription_type='basic', subscription_ends_at=timezone.now() - timedelta(days=1))
        auth(api_client, owner)

        response = api_client.post('/api/owner/stations/', NEW_STATION, format='json')

        assert response.status_code == 201
        assert response['X-Subscription-Warning'] == 'true'
        assert response['X-Days-Remaining'] == '-1'
        assert 'Grace period ends in 2 day(s)' in response['X-Subscription-Message']

    def test_after_grace_period(self, api_client):
        owner = make_owner(subscription_type='basic', subscription_ends_at=timezone.now() - timedelta(days=5))
        auth(api_client, owner)

        response = api_client.put('/api/owner/cng-status/', {'cng_available': False}, format='json')

        assert response.status_code == 403
        assert response.data['subscription_status']['is_expired'] is True
        assert response.data['subscription_status']['days_remaining'] == -5


class TestCngStatus:

    def test_get(self, owner_client, owner):
        make_station(owner=owner, cng_quantity_kg=500)
        response = owner_client.get('/api/owner/cng-status/')
        assert response.status_code == 200
        assert response.data['stations'][0]['cng_quantity_kg'] == 500

    def test_quantity_implies_availability(self, subscriber_client, subscribed_owner):
        station = make_station(owner=subscribed_owner)
        response = subscriber_client.put(
            '/api/owner/cng-status/', {'station_id': station.id, 'cng_quantity_kg': 0, 'cng_available': True},
            format='json',
        )

        assert response.status_code == 200
        station.refresh_from_db()
        assert station.cng_available is False
        assert station.cng_quantity_kg == 0
        assert station.cng_updated_at is not None

    def test_update_all_stations(self, subscriber_client, subscribed_owner):
        make_station(owner=subscribed_owner, cng_available=False)
        make_station(owner=subscribed_owner, cng_available=False)
        other = make_station(cng_available=False)

        response = subscriber_client.put('/api/owner/cng-status/', {'cng_quantity_kg': 250}, format='json')

        assert response.data['updated_count'] == 2
        assert Station.objects.filter(owner=subscribed_owner, cng_available=True).count() == 2
        other.refresh_from_db()
        assert other.cng_available is False

    def test_unknown_station(self, subscriber_client):
        station = make_station()
        response = subscriber_client.put(
            '/api/owner/cng-status/', {'station_id': station.id, 'cng_available': False}, format='json',
        )
        assert response.status_code == 404

    def test_negative_quantity(self, subscriber_client):
        response = subscriber_client.put('/api/owner/cng-status/', {'cng_quantity_kg': -1}, format='json')
        assert response.status_code == 400


class TestSupport:

    def test_create_ticket(self, owner_client, owner):
        station = make_station(owner=owner)
        response = owner_client.post('/api/owner/support/', {
            'subject': 'Map pin is wrong', 'description': 'Please move it', 'category': 'technical',
            'station_id': station.id,
        }, format='json')

        assert response.status_code == 201
        ticket = SupportTicket.objects.get()
        assert ticket.ticket_number.startswith(f"FBT-{timezone.now():%Y%m%d}-")
        assert len(ticket.ticket_number) == 17
        assert ticket.priority == 'medium'
        assert ticket.station == station
        assert Notification.objects.filter(owner=owner, category='support').exists()

    def test_list_hides_internal_notes(self, owner_client, owner):
        ticket = SupportTicket.objects.create(
            ticket_number='FBT-20260101-0001', subject='s', description='d', category='billing', owner=owner,
        )
        TicketReply.objects.create(ticket=ticket, message='public', created_by='A', created_by_type='admin')
        TicketReply.objects.create(
            ticket=ticket, message='note', is_internal=True, created_by='A', created_by_type='admin',
        )

        response = owner_client.get('/api/owner/support/')
        replies = response.data['tickets'][0]['replies']
        assert [r['message'] for r in replies] == ['public']

    def test_reply_reopens_resolved_ticket(self, owner_client, owner):
        ticket = SupportTicket.objects.create(
            ticket_number='FBT-20260101-0002', subject='s', description='d', category='billing',
            owner=owner, status=SupportTicket.STATUS_RESOLVED,
        )
        response = owner_client.post(
            f'/api/owner/support/{ticket.id}/replies/', {'message': 'Still broken'}, format='json',
        )

        assert response.status_code == 201
        assert response.data['ticket_status'] == 'open'
        ticket.refresh_from_db()
        assert ticket.status == SupportTicket.STATUS_OPEN

    def test_cannot_reply_to_other_owner_ticket(self, owner_client):
        ticket = SupportTicket.objects.create(
            ticket_number='FBT-20260101-0003', subject='s', description='d', category='billing',
            owner=make_owner(email='other@example.com'),
        )
        response = owner_client.post(f'/api/owner/support/{ticket.id}/replies/', {'message': 'hi'}, format='json')
        assert response.status_code == 404


class TestNotifications:

    def test_list_and_mark_read(self, owner_client, owner):
        first = Notification.objects.create(owner=owner, title='One', message='m')
        Notification.objects.create(owner=owner, title='Two', message='m')

        response = owner_client.get('/api/owner/notifications/')
        assert response.data['unread_count'] == 2

        response = owner_client.post('/api/owner/notifications/read/', {'ids': [first.id]}, format='json')
        assert response.data['updated_count'] == 1

        response = owner_client.post('/api/owner/notifications/read/', {}, format='json')
        assert response.data['updated_count'] == 1
        assert not Notification.objects.filter(owner=owner, is_read=False).exists()
