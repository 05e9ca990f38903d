from datetime import timedelta
from unittest.mock import patch

import jwt
import pytest
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from crm.apps import validate_jwt_secret
from crm.authentication import decode_token, issue_token
from crm.models import ActivityLog, Notification, StationOwner
from stations.models import Station

from .conftest import PASSWORD, auth, make_owner

pytestmark = pytest.mark.django_db

SIGNUP = {
    'name': 'Ravi Kumar',
    'email': 'Ravi@Example.com',
    'phone': '9876543210',
    'password': PASSWORD,
}


class TestOwnerSignup:

    def test_creates_pending_owner(self, api_client):
        response = api_client.post('/api/auth/owner/signup/', SIGNUP, format='json')

        assert response.status_code == 201
        owner = StationOwner.objects.get()
        assert owner.email == 'ravi@example.com'
        assert owner.status == StationOwner.STATUS_PENDING
        assert owner.check_password(PASSWORD)
        assert decode_token(response.data['token'])['role'] == 'owner'
        assert response.data['station'] is None
        assert Notification.objects.filter(owner=owner).count() == 1
        assert ActivityLog.objects.filter(owner=owner, action='owner_signup').exists()

    def test_signup_with_station(self, api_client):
        payload = {
            **SIGNUP,
            'station_name': 'Kumar CNG', 'address': 'NH 48', 'city': 'Gurugram',
            'state': 'Haryana', 'lat': 28.4089, 'lng': 77.0424,
        }
        response = api_client.post('/api/auth/owner/signup/', payload, format='json')

        assert response.status_code == 201
        station = Station.objects.get()
        assert station.owner.email == 'ravi@example.com'
        assert station.approval_status == Station.APPROVAL_PENDING
        assert not station.is_verified
        assert response.data['station']['name'] == 'Kumar CNG'

    def test_duplicate_email_conflicts(self, api_client):
        make_owner(email='ravi@example.com')
        response = api_client.post('/api/auth/owner/signup/', SIGNUP, format='json')
        assert response.status_code == 409

    def test_short_password_rejected(self, api_client):
        response = api_client.post('/api/auth/owner/signup/', {**SIGNUP, 'password': '123'}, format='json')
        assert response.status_code == 400
        assert 'password' in response.data['details']


class TestLogin:

    def test_owner_login(self, api_client, owner):
        response = api_client.post(
            '/api/auth/owner/login/', {'email': 'OWNER@example.com', 'password': PASSWORD}, format='json',
        )

        assert response.status_code == 200
        payload = decode_token(response.data['token'])
        assert payload['sub'] == str(owner.pk)
        assert payload['email'] == owner.email
        owner.refresh_from_db()
        assert owner.last_login_at is not None
        log = ActivityLog.objects.get(action='owner_login')
        assert log.ip_address == '127.0.0.1'

    def test_wrong_password(self, api_client, owner):
        response = api_client.post(
            '/api/auth/owner/login/', {'email': owner.email, 'password': 'wrong-one'}, format='json',
        )
        assert response.status_code == 401
        assert response.data == {'error': 'Invalid email or password'}

    def test_suspended_owner(self, api_client):
        make_owner(status=StationOwner.STATUS_SUSPENDED)
        response = api_client.post(
            '/api/auth/owner/login/', {'email': 'owner@example.com', 'password': PASSWORD}, format='json',
        )
        assert response.status_code == 403

    def test_admin_login(self, api_client, admin):
        response = api_client.post(
            '/api/auth/admin/login/', {'email': admin.email, 'password': PASSWORD}, format='json',
        )
        assert response.status_code == 200
        assert decode_token(response.data['token'])['role'] == 'admin'

    def test_owner_cannot_use_admin_login(self, api_client, owner):
        response = api_client.post(
            '/api/auth/admin/login/', {'email': owner.email, 'password': PASSWORD}, format='json',
        )
        assert response.status_code == 401

    def test_login_is_throttled(self, api_client, owner):
        body = {'email': owner.email, 'password': 'wrong-one'}
        for _ in range(5):
            assert api_client.post('/api/auth/owner/login/', body, format='json').status_code == 401

        response = api_client.post('/api/auth/owner/login/', body, format='json')
        assert response.status_code == 429
        assert response.data['error'] == 'Too many requests'
        assert 'Retry-After' in response


class TestBearerToken:

    def test_missing_token(self, api_client):
        response = api_client.get('/api/owner/profile/')
        assert response.status_code == 401
        assert response['WWW-Authenticate'] == 'Bearer'

    def test_bare_token_accepted(self, api_client, owner):
        api_client.credentials(HTTP_AUTHORIZATION=issue_token(owner))
        assert api_client.get('/api/owner/profile/').status_code == 200

    def test_expired_token(self, api_client, owner):
        now = timezone.now()
        token = jwt.encode(
            {'sub': str(owner.pk), 'email': owner.email, 'role': 'owner', 'jti': 'x',
             'iat': now - timedelta(days=8), 'exp': now - timedelta(days=1)},
            settings.JWT_SECRET, algorithm='HS256',
        )
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = api_client.get('/api/owner/profile/')
        assert response.status_code == 401
        assert response.data == {'error': 'Token has expired'}

    def test_forged_token(self, api_client, owner):
        token = jwt.encode(
            {'sub': str(owner.pk), 'role': 'owner', 'jti': 'x',
             'exp': timezone.now() + timedelta(days=1)},
            'some-other-key', algorithm='HS256',
        )
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = api_client.get('/api/owner/profile/')
        assert response.status_code == 401

    def test_admin_token_on_owner_endpoint(self, admin_client):
        response = admin_client.get('/api/owner/profile/')
        assert response.status_code == 403
        assert response.data == {'error': 'Owner access required'}

    def test_owner_token_on_admin_endpoint(self, owner_client):
        response = owner_client.get('/api/admin/stations/')
        assert response.status_code == 403
        assert response.data == {'error': 'Admin access required'}

    def test_deleted_account(self, api_client, owner):
        auth(api_client, owner)
        owner.delete()
        response = api_client.get('/api/owner/profile/')
        assert response.status_code == 401


class TestLogout:

    def test_revokes_token(self, owner_client):
        response = owner_client.post('/api/auth/logout/')
        assert response.status_code == 200

        response = owner_client.get('/api/owner/profile/')
        assert response.status_code == 401
        assert response.data == {'error': 'Token has been revoked'}

    def test_requires_token(self, api_client):
        assert api_client.post('/api/auth/logout/').status_code == 401

    def test_other_tokens_stay_valid(self, api_client, owner):
        first, second = issue_token(owner), issue_token(owner)
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {first}")
        api_client.post('/api/auth/logout/')

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {second}")
        assert api_client.get('/api/owner/profile/').status_code == 200


class TestSecretValidation:

    def test_weak_secret_refused_in_production(self):
        with pytest.raises(ImproperlyConfigured):
            validate_jwt_secret('my-jwt-secret-value-that-is-long-enough', debug=False)

    def test_weak_secret_allowed_in_debug(self):
        validate_jwt_secret('secret', debug=True)

    def test_short_secret_warns(self):
        with patch('crm.apps.logger') as logger:
            validate_jwt_secret('k3y', debug=False)
        logger.warning.assert_called_once()

    @pytest.mark.parametrize('secret', ['', None])
    def test_missing_secret_refused_in_production(self, secret):
        with pytest.raises(ImproperlyConfigured, match='required'):
            validate_jwt_secret(secret, debug=False)

    def test_development_key_fallback_refused_in_production(self):
        with pytest.raises(ImproperlyConfigured, match='development SECRET_KEY'):
            validate_jwt_secret('django-insecure-cngfinder-local-development-key', debug=False)

    def test_strong_secret_accepted(self):
        with patch('crm.apps.logger') as logger:
            validate_jwt_secret('Zq8v1T4nR7wLk2pX9sB3mC6yD0fH5jGa', debug=False)
        logger.warning.assert_not_called()
