from enum import Enum
from typing import Optional


class AlarmType(str, Enum):
    GENERAL = 'general'
    SOS = 'sos'
    PARKING = 'parking'
    POWER_CUT = 'power_cut'
    DOOR = 'door'
    MOVEMENT = 'movement'
    SHOCK = 'shock'
    OVERSPEED = 'overspeed'
    GEOFENCE_EXIT = 'geofence_exit'
    GEOFENCE_ENTER = 'geofence_enter'
    LOW_BATTERY = 'low_battery'
    ACCIDENT = 'accident'
    HARD_ACCELERATION = 'hard_acceleration'
    HARD_BRAKING = 'hard_braking'
    JAMMING = 'jamming'

    def __str__(self):
        return self.value


# ---------- EMG report codes ----------
EMERGENCY_CODES = {
    1: AlarmType.SOS,           # panic button
    2: AlarmType.PARKING,       # parking lock
    3: AlarmType.POWER_CUT,     # main power removed
    5: AlarmType.DOOR,
    6: AlarmType.DOOR,
    7: AlarmType.MOVEMENT,
    8: AlarmType.SHOCK,
}

# ---------- ALT report codes ----------
ALERT_CODES = {
    1: AlarmType.OVERSPEED,
    5: AlarmType.GEOFENCE_EXIT,
    6: AlarmType.GEOFENCE_ENTER,
    14: AlarmType.LOW_BATTERY,
    15: AlarmType.SHOCK,
    16: AlarmType.ACCIDENT,
    46: AlarmType.HARD_ACCELERATION,
    47: AlarmType.HARD_BRAKING,
    48: AlarmType.ACCIDENT,
    50: AlarmType.JAMMING,
}


def decode_emergency(value: int) -> Optional[AlarmType]:
    """Map an EMG code to an alarm; None for codes with no mapping."""
    return EMERGENCY_CODES.get(value)


def decode_alert(value: int) -> Optional[AlarmType]:
    """Map an ALT code to an alarm; None for codes with no mapping."""
    return ALERT_CODES.get(value)
