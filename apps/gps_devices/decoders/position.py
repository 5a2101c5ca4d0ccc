"""
Canonical telemetry record produced by the Suntech decoder.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

AttributeValue = Union[str, int, float, bool]

KNOT_IN_KPH = 1.852


def knots_from_kph(value: float) -> float:
    return value / KNOT_IN_KPH


def ms_from_minutes(value: int) -> int:
    return value * 60 * 1000


# ---------- attribute keys ----------
KEY_TYPE = 'type'
KEY_VERSION_FW = 'version_fw'
KEY_ODOMETER = 'odometer'
KEY_BATTERY = 'battery'
KEY_POWER = 'power'
KEY_ARCHIVE = 'archive'
KEY_INDEX = 'index'
KEY_STATUS = 'status'
KEY_SATELLITES = 'sat'
KEY_RSSI = 'rssi'
KEY_IGNITION = 'ignition'
KEY_ALARM = 'alarm'
KEY_EVENT = 'event'
KEY_HOURS = 'hours'
KEY_RPM = 'rpm'
KEY_DRIVER_UNIQUE_ID = 'driver_unique_id'
PREFIX_IN = 'in'
PREFIX_OUT = 'out'
PREFIX_ADC = 'adc'
PREFIX_TEMP = 'temp'


@dataclass(frozen=True)
class CellTower:
    mcc: int
    mnc: int
    lac: int
    cid: int
    rssi: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mcc": self.mcc,
            "mnc": self.mnc,
            "lac": self.lac,
            "cid": self.cid,
            "rssi": self.rssi,
        }


@dataclass
class Network:
    cell_towers: List[CellTower] = field(default_factory=list)

    def add_cell_tower(self, tower: CellTower) -> bool:
        """Attach a tower; zero/placeholder cell ids are dropped. Returns True if added."""
        if tower.cid <= 0:
            return False
        self.cell_towers.append(tower)
        return True

    def to_list(self) -> List[Dict[str, Any]]:
        return [tower.to_dict() for tower in self.cell_towers]


@dataclass
class Position:
    device_id: Any
    protocol: str = 'suntech'
    time: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    speed: Optional[float] = None
    course: Optional[float] = None
    valid: bool = False
    network: Optional[Network] = None
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)

    def set(self, key: str, value: Optional[AttributeValue]) -> None:
        """Store an attribute; None means the field is absent and is never stored."""
        if value is None:
            self.attributes.pop(key, None)
            return
        if isinstance(value, Enum):
            value = value.value
        self.attributes[key] = value

    def get(self, key: str, default=None):
        return self.attributes.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocol": self.protocol,
            "device_id": self.device_id,
            "timestamp": self.time.astimezone(timezone.utc).isoformat() if self.time else None,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed_knots": self.speed,
            "course": self.course,
            "gps_valid": self.valid,
            "network": self.network.to_list() if self.network else [],
            "attributes": dict(self.attributes),
        }

    def to_json(self, ensure_ascii: bool = False, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=ensure_ascii, default=str)
