# services/booking-service/src/tests/conftest.py
"""
Pytest Configuration and Fixtures

Provides common fixtures for booking service tests.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from shared.common.authentication import TokenUser
from apps.core.models import Reservation
from apps.core.services import directory as directory_module
from apps.core.services.directory import Membership, VehicleInfo


class InMemoryDirectory:
    """Directory stand-in holding vehicles and memberships in dicts."""

    def __init__(self):
        self.vehicles = {}
        self.memberships = {}

    def add_vehicle(self, vehicle_id, group_id):
        self.vehicles[str(vehicle_id)] = VehicleInfo(vehicle_id=vehicle_id, group_id=group_id)

    def add_member(self, group_id, user_id, role='member', share='0.5'):
        self.memberships[(str(group_id), str(user_id))] = Membership(
            group_id=group_id,
            user_id=user_id,
            role=role,
            share_percentage=Decimal(share),
        )

    def remove_member(self, group_id, user_id):
        self.memberships.pop((str(group_id), str(user_id)), None)

    def get_vehicle(self, vehicle_id):
        return self.vehicles.get(str(vehicle_id))

    def get_membership(self, group_id, user_id):
        return self.memberships.get((str(group_id), str(user_id)))


@pytest.fixture(autouse=True)
def clear_cache():
    """Access tokens live in the cache; start every test empty."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def vehicle_id():
    return uuid.uuid4()


@pytest.fixture
def group_id():
    return uuid.uuid4()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def other_user_id():
    return uuid.uuid4()


@pytest.fixture
def admin_id():
    return uuid.uuid4()


@pytest.fixture
def directory(monkeypatch, vehicle_id, group_id, user_id, other_user_id, admin_id):
    """
    Directory with one vehicle in one group: two members and an admin.
    Installed as the process-wide directory for the test.
    """
    fake = InMemoryDirectory()
    fake.add_vehicle(vehicle_id, group_id)
    fake.add_member(group_id, user_id, share='0.5')
    fake.add_member(group_id, other_user_id, share='0.3')
    fake.add_member(group_id, admin_id, role='admin', share='0.2')
    monkeypatch.setattr(directory_module, '_directory', fake)
    return fake


@pytest.fixture
def create_reservation(vehicle_id, group_id, user_id):
    """Factory fixture for stored reservations, bypassing the guard."""

    def _create_reservation(start_at, end_at=None, **kwargs):
        defaults = {
            'vehicle_id': vehicle_id,
            'group_id': group_id,
            'owner_id': user_id,
            'start_at': start_at,
            'end_at': end_at or start_at + timedelta(hours=2),
            'status': Reservation.Status.CONFIRMED,
        }
        defaults.update(kwargs)
        return Reservation.objects.create(**defaults)

    return _create_reservation


@pytest.fixture
def api_client():
    """Provide API client for testing."""
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, user_id):
    """API client authenticated as ``user_id``."""
    api_client.force_authenticate(user=TokenUser({'sub': str(user_id)}))
    return api_client


@pytest.fixture
def client_for(api_client):
    """Re-authenticate the API client as another user."""

    def _client_for(some_user_id):
        api_client.force_authenticate(user=TokenUser({'sub': str(some_user_id)}))
        return api_client

    return _client_for
