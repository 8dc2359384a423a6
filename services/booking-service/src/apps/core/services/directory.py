# services/booking-service/src/apps/core/services/directory.py
"""
Vehicle Directory

Read-only view of the vehicle and group collaborators. The booking core
only needs to know which group a vehicle belongs to and what standing a
user has in that group.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from shared.common.clients import (
    CircuitBreakerError,
    GroupServiceClient,
    VehicleServiceClient,
)
from .exceptions import TransientStoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VehicleInfo:
    vehicle_id: uuid.UUID
    group_id: uuid.UUID


@dataclass(frozen=True)
class Membership:
    group_id: uuid.UUID
    user_id: uuid.UUID
    role: str = 'member'
    share_percentage: Decimal = Decimal('0')

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'


class VehicleDirectory:
    """
    Directory backed by the vehicle and group services.
    """

    def __init__(self, vehicle_client: VehicleServiceClient = None, group_client: GroupServiceClient = None):
        self.vehicle_client = vehicle_client or VehicleServiceClient()
        self.group_client = group_client or GroupServiceClient()

    def get_vehicle(self, vehicle_id: uuid.UUID) -> Optional[VehicleInfo]:
        data = self._call('get_vehicle', self.vehicle_client.get_vehicle, str(vehicle_id))
        if not data:
            return None
        return VehicleInfo(
            vehicle_id=uuid.UUID(str(data.get('id', vehicle_id))),
            group_id=uuid.UUID(str(data['group_id'])),
        )

    def get_membership(self, group_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Membership]:
        data = self._call('get_membership', self.group_client.get_membership, str(group_id), str(user_id))
        if not data or data.get('status', 'active') != 'active':
            return None
        return Membership(
            group_id=group_id,
            user_id=user_id,
            role=data.get('role', 'member'),
            share_percentage=Decimal(str(data.get('share_percentage', 0))),
        )

    def _call(self, label: str, func, *args):
        try:
            return func(*args)
        except (CircuitBreakerError, httpx.HTTPError) as e:
            logger.error(f"Directory lookup {label} failed: {e}")
            raise TransientStoreError(f"Directory unavailable: {e}") from e


_directory = None


def get_directory():
    """Process-wide directory instance."""
    global _directory
    if _directory is None:
        _directory = VehicleDirectory()
    return _directory
