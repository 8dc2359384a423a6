# services/booking-service/src/tests/unit/test_directory.py
"""
Unit Tests for the Vehicle Directory and Service Clients
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from shared.common.clients import CircuitBreaker, CircuitBreakerError
from apps.core.services import TransientStoreError
from apps.core.services.directory import VehicleDirectory


class TestVehicleDirectory:
    """Tests for VehicleDirectory."""

    def setup_method(self):
        self.vehicles = MagicMock()
        self.groups = MagicMock()
        self.directory = VehicleDirectory(vehicle_client=self.vehicles, group_client=self.groups)

    def test_get_vehicle(self):
        vehicle_id, group_id = uuid.uuid4(), uuid.uuid4()
        self.vehicles.get_vehicle.return_value = {'id': str(vehicle_id), 'group_id': str(group_id)}

        vehicle = self.directory.get_vehicle(vehicle_id)

        assert vehicle.vehicle_id == vehicle_id
        assert vehicle.group_id == group_id

    def test_unknown_vehicle(self):
        self.vehicles.get_vehicle.return_value = None

        assert self.directory.get_vehicle(uuid.uuid4()) is None

    def test_membership(self):
        group_id, user_id = uuid.uuid4(), uuid.uuid4()
        self.groups.get_membership.return_value = {
            'role': 'admin',
            'share_percentage': '0.25',
            'status': 'active',
        }

        membership = self.directory.get_membership(group_id, user_id)

        assert membership.is_admin
        assert membership.share_percentage == Decimal('0.25')

    def test_inactive_membership(self):
        self.groups.get_membership.return_value = {'role': 'member', 'status': 'suspended'}

        assert self.directory.get_membership(uuid.uuid4(), uuid.uuid4()) is None

    @pytest.mark.parametrize('error', [
        CircuitBreakerError('open'),
        httpx.ConnectError('refused'),
    ])
    def test_unavailable_collaborator(self, error):
        self.groups.get_membership.side_effect = error

        with pytest.raises(TransientStoreError):
            self.directory.get_membership(uuid.uuid4(), uuid.uuid4())

    def test_unavailable_vehicle_lookup(self):
        self.vehicles.get_vehicle.side_effect = httpx.ReadTimeout('slow')

        with pytest.raises(TransientStoreError, match='Directory unavailable'):
            self.directory.get_vehicle(uuid.uuid4())


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)

        breaker.record_failure()
        assert breaker.can_execute()
        breaker.record_failure()

        assert breaker.state == 'open'
        assert not breaker.can_execute()

    def test_half_open_after_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, success_threshold=1, timeout=0)
        breaker.record_failure()

        assert breaker.can_execute()
        assert breaker.state == 'half_open'

        breaker.record_success()
        assert breaker.state == 'closed'
