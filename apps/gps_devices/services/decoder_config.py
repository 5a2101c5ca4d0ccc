"""
Per-device decoder switches.

Each switch resolves in three tiers:
    1. Device.attributes["suntech.<key>"]  (explicit per-device value)
    2. settings.SUNTECH_DECODER["<SETTING>"] (global configured default)
    3. the static default the decoder was constructed with
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

PROTOCOL_NAME = 'suntech'

KEY_PROTOCOL_TYPE = 'protocolType'
KEY_HBM = 'hbm'
KEY_INCLUDE_ADC = 'includeAdc'
KEY_INCLUDE_RPM = 'includeRpm'
KEY_INCLUDE_TEMP = 'includeTemp'

# attribute key -> key inside settings.SUNTECH_DECODER
SETTING_NAMES = {
    KEY_PROTOCOL_TYPE: 'PROTOCOL_TYPE',
    KEY_HBM: 'HBM',
    KEY_INCLUDE_ADC: 'INCLUDE_ADC',
    KEY_INCLUDE_RPM: 'INCLUDE_RPM',
    KEY_INCLUDE_TEMP: 'INCLUDE_TEMP',
}

TRUE_STRINGS = ('1', 'true', 'yes', 'on')
FALSE_STRINGS = ('0', 'false', 'no', 'off', '')


@dataclass(frozen=True)
class DecoderConfig:
    protocol_type: int = 0
    hbm: bool = False
    include_adc: bool = False
    include_rpm: bool = False
    include_temp: bool = False


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean value: {value!r}")


def to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    return int(str(value).strip())


class ConfigResolver(ABC):
    @abstractmethod
    def lookup(self, device_id, key: str) -> Optional[Any]:
        """Return the configured value for key, or None to fall back to the static default."""

    def get_bool(self, device_id, key: str, default: bool) -> bool:
        value = self.lookup(device_id, key)
        return default if value is None else to_bool(value)

    def get_int(self, device_id, key: str, default: int) -> int:
        value = self.lookup(device_id, key)
        return default if value is None else to_int(value)

    def resolve(self, device_id, defaults: DecoderConfig) -> DecoderConfig:
        """Resolve every switch once for a line."""
        return DecoderConfig(
            protocol_type=self.get_int(device_id, KEY_PROTOCOL_TYPE, defaults.protocol_type),
            hbm=self.get_bool(device_id, KEY_HBM, defaults.hbm),
            include_adc=self.get_bool(device_id, KEY_INCLUDE_ADC, defaults.include_adc),
            include_rpm=self.get_bool(device_id, KEY_INCLUDE_RPM, defaults.include_rpm),
            include_temp=self.get_bool(device_id, KEY_INCLUDE_TEMP, defaults.include_temp),
        )


class DjangoConfigResolver(ConfigResolver):
    """Device attributes first, then settings.SUNTECH_DECODER."""

    def device_values(self, device_id) -> Dict[str, Any]:
        from apps.gps_devices.models import Device

        attributes = Device.objects.filter(pk=device_id).values_list('attributes', flat=True).first() or {}
        prefix = f'{PROTOCOL_NAME}.'
        return {
            name[len(prefix):]: value
            for name, value in attributes.items()
            if name.startswith(prefix)
        }

    def global_values(self) -> Dict[str, Any]:
        configured = getattr(settings, 'SUNTECH_DECODER', None) or {}
        return {
            key: configured[setting_name]
            for key, setting_name in SETTING_NAMES.items()
            if setting_name in configured
        }

    def lookup(self, device_id, key):
        value = self.device_values(device_id).get(key)
        if value is not None:
            return value
        return self.global_values().get(key)

    def resolve(self, device_id, defaults):
        # Snapshot both tiers so the five switches cost a single query
        snapshot = StaticConfigResolver({device_id: self.device_values(device_id)}, self.global_values())
        config = snapshot.resolve(device_id, defaults)
        logger.debug(f'Resolved decoder config for device {device_id}: {config}')
        return config


class StaticConfigResolver(ConfigResolver):
    """
    Dict-backed resolver for use outside the ORM:
    per_device = {device_id: {"hbm": True, ...}}, global_defaults = {"protocolType": 1, ...}
    """

    def __init__(self, per_device: Optional[Dict[Any, Dict[str, Any]]] = None,
                 global_defaults: Optional[Dict[str, Any]] = None):
        self.per_device = per_device or {}
        self.global_defaults = global_defaults or {}

    def lookup(self, device_id, key):
        device_values = self.per_device.get(device_id, {})
        if device_values.get(key) is not None:
            return device_values[key]
        return self.global_defaults.get(key)
