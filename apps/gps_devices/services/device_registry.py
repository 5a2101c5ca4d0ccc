import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceSession:
    device_id: Any
    unique_id: str


class SessionRegistry(ABC):
    """Maps the protocol-level unique id (IMEI) of a tracker to a device session."""

    @abstractmethod
    def resolve(self, connection, unique_id: str) -> Optional[DeviceSession]:
        pass


class DjangoSessionRegistry(SessionRegistry):
    """
    Resolves sessions against the Device table.
    Unknown and non-active devices resolve to None so the line is dropped.
    """

    def resolve(self, connection, unique_id):
        # Lazy import to avoid AppRegistryNotReady when the decoder is imported early
        from apps.gps_devices.models import Device

        if not unique_id:
            return None
        try:
            device = Device.objects.get(imei=unique_id)
        except Device.DoesNotExist:
            logger.warning(f'Unknown device {unique_id} (connection: {connection})')
            return None

        if device.status != 'active':
            logger.info(f'Device {device.imei} not active (status: {device.status}), ignoring report')
            return None

        return DeviceSession(device_id=device.pk, unique_id=device.imei)


class StaticSessionRegistry(SessionRegistry):
    """
    In-memory registry: {unique_id: device_id}.
    With accept_any=True every unique id resolves to itself.
    """

    def __init__(self, devices: Optional[Dict[str, Any]] = None, accept_any: bool = False):
        self.devices = dict(devices or {})
        self.accept_any = accept_any

    def resolve(self, connection, unique_id):
        if unique_id in self.devices:
            return DeviceSession(device_id=self.devices[unique_id], unique_id=unique_id)
        if self.accept_any and unique_id:
            return DeviceSession(device_id=unique_id, unique_id=unique_id)
        return None
