"""
Shared fixtures: API client, account factories with bearer tokens, stations.
"""

from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from crm.authentication import issue_token
from crm.models import Admin, StationOwner
from stations.models import Station

PASSWORD = 'secret123'


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


def make_owner(email='owner@example.com', **overrides):
    fields = {
        'name': 'Ravi Kumar',
        'email': email,
        'phone': '9876543210',
        'status': StationOwner.STATUS_ACTIVE,
    }
    fields.update(overrides)
    owner = StationOwner(**fields)
    owner.set_password(PASSWORD)
    owner.save()
    return owner


def make_admin(email='admin@example.com', role=Admin.ROLE_ADMIN):
    admin = Admin(name='Asha Admin', email=email, role=role)
    admin.set_password(PASSWORD)
    admin.save()
    return admin


def make_station(**overrides):
    fields = {
        'name': 'Green CNG',
        'address': 'Linking Road, Bandra West',
        'city': 'Mumbai',
        'state': 'Maharashtra',
        'latitude': 19.0760,
        'longitude': 72.8777,
        'approval_status': Station.APPROVAL_APPROVED,
        'is_verified': True,
    }
    fields.update(overrides)
    return Station.objects.create(**fields)


def auth(client, account):
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(account)}")
    return client


@pytest.fixture
def owner(db):
    return make_owner()


@pytest.fixture
def subscribed_owner(db):
    return make_owner(
        email='subscriber@example.com',
        subscription_type='basic',
        subscription_ends_at=timezone.now() + timedelta(days=20),
    )


@pytest.fixture
def admin(db):
    return make_admin()


@pytest.fixture
def superadmin(db):
    return make_admin(email='root@example.com', role=Admin.ROLE_SUPERADMIN)


@pytest.fixture
def owner_client(api_client, owner):
    return auth(api_client, owner)


@pytest.fixture
def subscriber_client(api_client, subscribed_owner):
    return auth(api_client, subscribed_owner)


@pytest.fixture
def admin_client(api_client, admin):
    return auth(api_client, admin)


@pytest.fixture
def superadmin_client(api_client, superadmin):
    return auth(api_client, superadmin)
