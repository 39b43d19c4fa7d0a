"""
Activation key document model.

Maps to the `activation_keys` MongoDB collection.

Devices are embedded in the key document so that a bind (limit re-check +
append) is a single conditional update on one document. `revision` is bumped
by every device mutation and used as the optimistic-concurrency guard.

Python code never walks the raw device array by position: device_map() exposes
it keyed by (device_id, assignment_id).
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.models.base import MongoBaseModel, PyObjectId, UtcModel

DeviceKey = tuple[str, str]


class DeviceInfo(UtcModel):
    """Free-form client metadata captured at bind time."""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    platform: Optional[str] = None


class DeviceDoc(UtcModel):
    """One physical device / browser bound under an assignment."""

    device_id: str
    user_id: PyObjectId
    assignment_id: PyObjectId
    registered_at: datetime
    last_active_at: Optional[datetime] = None
    # None on legacy records; treated as active
    is_active: Optional[bool] = True
    revoked_at: Optional[datetime] = None
    device_info: DeviceInfo = DeviceInfo()

    @property
    def key(self) -> DeviceKey:
        return (self.device_id, str(self.assignment_id))

    @property
    def active(self) -> bool:
        return self.is_active is not False


class KeyMetadata(UtcModel):
    tags: list[str] = []
    department: Optional[str] = None
    project: Optional[str] = None


class ActivationKeyDoc(MongoBaseModel):
    """Document model for the `activation_keys` collection."""

    key: str
    device_limit: int = Field(ge=1)
    used_devices: int = Field(default=0, ge=0)
    is_active: bool = True
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    metadata: KeyMetadata = KeyMetadata()
    devices: list[DeviceDoc] = []
    revision: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def device_map(self) -> dict[DeviceKey, DeviceDoc]:
        return {device.key: device for device in self.devices}

    def find_device(self, device_id: str, assignment_id) -> Optional[DeviceDoc]:
        return self.device_map().get((device_id, str(assignment_id)))

    def find_device_any(self, device_id: str) -> Optional[DeviceDoc]:
        """First device with *device_id* under any assignment."""
        for device in self.devices:
            if device.device_id == device_id:
                return device
        return None

    def active_devices_for(self, assignment_id) -> list[DeviceDoc]:
        wanted = str(assignment_id)
        return [
            device
            for (_, device_assignment), device in self.device_map().items()
            if device_assignment == wanted and device.active
        ]
