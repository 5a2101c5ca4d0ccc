"""
Suntech_Decoder.py

Decoder for the Suntech ';'-separated text protocol (ST300/ST340/ST500/ST600,
ST4xx compact cellular reports, ST9xx long-form reports and the universal
bitmask layout).

Usage:
    from apps.gps_devices.decoders.Suntech_Decoder import SuntechDecoder
    decoder = SuntechDecoder()
    position = decoder.decode("ST300STT;205000001;04;706;20230115;08:30:00;...")
    if position:
        print(position.to_json())
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional, Tuple

from .bit_util import check_all
from .position import (
    CellTower, Network, Position, knots_from_kph, ms_from_minutes,
    KEY_ALARM, KEY_ARCHIVE, KEY_BATTERY, KEY_DRIVER_UNIQUE_ID, KEY_EVENT, KEY_HOURS,
    KEY_IGNITION, KEY_INDEX, KEY_ODOMETER, KEY_POWER, KEY_RPM, KEY_RSSI, KEY_SATELLITES,
    KEY_STATUS, KEY_TYPE, KEY_VERSION_FW, PREFIX_ADC, PREFIX_IN, PREFIX_OUT, PREFIX_TEMP,
)
from .suntech_codes import AlarmType, decode_alert, decode_emergency
from .token_reader import TokenReader, parse_float
from ..services.decoder_config import ConfigResolver, DecoderConfig, DjangoConfigResolver
from ..services.device_registry import DeviceSession, DjangoSessionRegistry, SessionRegistry

logger = logging.getLogger(__name__)

DELIMITER = ';'

# Headers shorter than this carry no model prefix ("STT", "ALT", ...)
MIN_HEADER_LENGTH = 5

DIALECT_UNIVERSAL = 'universal'
DIALECT_9 = '9'
DIALECT_4 = '4'
DIALECT_2356 = '2356'

TYPES_9 = ('Location', 'Emergency', 'Alert')
TYPES_4 = ('STT', 'ALT')
TYPES_2356 = ('STT', 'EMG', 'EVT', 'ALT', 'UEX')
TYPES_UNIVERSAL = ('STT',)

# Sub-dialects that send a model token before the firmware version
MODEL_PREFIXED = ('ST300', 'ST500', 'ST600')
# Sub-dialect without any cell information
NO_CELL = 'ST500'
# Sub-dialect with a full serving cell (mcc, mnc, lac, rssi after the cid)
FULL_CELL = 'ST600'

CELL_GROUPS_4 = 7
IO_LENGTH = 6
ANALOG_CHANNELS = 3
TEMPERATURE_CHANNELS = 3


def select_dialect(header: str) -> Tuple[str, Optional[str]]:
    """
    Classify a line by its first token.
    Returns (dialect, protocol) where protocol is the 5-character model
    prefix for the standard dialect and None otherwise.
    """
    if len(header) < MIN_HEADER_LENGTH:
        return DIALECT_UNIVERSAL, None
    if header.startswith('ST9'):
        return DIALECT_9, None
    if header.startswith('ST4'):
        return DIALECT_4, None
    return DIALECT_2356, header[:MIN_HEADER_LENGTH]


# ---------- universal (bitmask) layout ----------

def _skip(position: Position, reader: TokenReader) -> None:
    reader.skip()


def _firmware(position, reader):
    position.set(KEY_VERSION_FW, reader.next())


def _archive(position, reader):
    if reader.next() == '0':
        position.set(KEY_ARCHIVE, True)


def _time(position, reader):
    position.time = reader.next_date_time()


def _rssi(position, reader):
    position.set(KEY_RSSI, reader.next_int())


def _latitude(position, reader):
    position.latitude = reader.next_float()


def _longitude(position, reader):
    position.longitude = reader.next_float()


def _speed(position, reader):
    position.speed = knots_from_kph(reader.next_float())


def _course(position, reader):
    position.course = reader.next_float()


def _satellites(position, reader):
    position.set(KEY_SATELLITES, reader.next_int())


def _validity(position, reader):
    position.valid = reader.next_bool()


# Ordered (bits, field) pairs; a field is read only when all of its bits are set
UNIVERSAL_FIELDS: List[Tuple[Tuple[int, ...], Callable[[Position, TokenReader], None]]] = [
    ((1,), _skip),           # model
    ((2,), _firmware),
    ((3,), _archive),
    ((4, 5), _time),         # date + time
    ((6,), _skip),           # cell id
    ((7,), _skip),           # mcc
    ((8,), _skip),           # mnc
    ((9,), _skip),           # lac
    ((10,), _rssi),
    ((11,), _latitude),
    ((12,), _longitude),
    ((13,), _speed),
    ((14,), _course),
    ((15,), _satellites),
    ((16,), _validity),
]


class SuntechDecoder:
    def __init__(self, session_registry: Optional[SessionRegistry] = None,
                 config_resolver: Optional[ConfigResolver] = None,
                 protocol_type: int = 0, hbm: bool = False, include_adc: bool = False,
                 include_rpm: bool = False, include_temp: bool = False):
        """
        session_registry and config_resolver default to the Django-backed
        implementations. The remaining arguments are the static defaults used
        when neither the device nor settings.SUNTECH_DECODER sets a switch.
        """
        self.session_registry = session_registry or DjangoSessionRegistry()
        self.config_resolver = config_resolver or DjangoConfigResolver()
        self.defaults = DecoderConfig(
            protocol_type=protocol_type,
            hbm=hbm,
            include_adc=include_adc,
            include_rpm=include_rpm,
            include_temp=include_temp,
        )
        self.dialect_handlers: Dict[str, Callable[..., Optional[Position]]] = {
            DIALECT_UNIVERSAL: self.decode_universal,
            DIALECT_9: self.decode_9,
            DIALECT_4: self.decode_4,
            DIALECT_2356: self.decode_2356,
        }

    def decode(self, raw_line: str, connection=None) -> Optional[Position]:
        """
        Decode one report line.
        Returns a Position, or None when the line is filtered (unknown type,
        unknown device). Raises SuntechDecodeError for malformed lines.
        """
        if not raw_line or not raw_line.strip():
            return None
        values = raw_line.strip().split(DELIMITER)
        # trailing empty fields carry nothing; a line may end with ';'
        while values and not values[-1]:
            values.pop()
        if not values:
            return None

        dialect, protocol = select_dialect(values[0])
        handler = self.dialect_handlers[dialect]
        if dialect == DIALECT_2356:
            position = handler(connection, protocol, values)
        else:
            position = handler(connection, values)

        if position is None:
            logger.debug(f'No position from {dialect} line: {raw_line.strip()}')
        return position

    # ---------- helpers ----------
    def get_device_session(self, connection, unique_id: str) -> Optional[DeviceSession]:
        return self.session_registry.resolve(connection, unique_id)

    def resolve_config(self, session: DeviceSession) -> DecoderConfig:
        return self.config_resolver.resolve(session.device_id, self.defaults)

    # ---------- dialects ----------
    def decode_9(self, connection, values: List[str]) -> Optional[Position]:
        reader = TokenReader(values, 1)

        message_type = reader.next()
        if message_type not in TYPES_9:
            return None

        session = self.get_device_session(connection, reader.next())
        if session is None:
            return None
        config = self.resolve_config(session)

        position = Position(session.device_id)

        if message_type in ('Emergency', 'Alert'):
            position.set(KEY_ALARM, AlarmType.GENERAL)

        if message_type != 'Alert' or config.protocol_type == 0:
            position.set(KEY_VERSION_FW, reader.next())

        position.time = reader.next_date_time()

        if config.protocol_type == 1:
            reader.skip()  # cell

        position.latitude = reader.next_float()
        position.longitude = reader.next_float()
        position.speed = knots_from_kph(reader.next_float())
        position.course = reader.next_float()

        position.valid = reader.next_bool()

        if config.protocol_type == 1:
            position.set(KEY_ODOMETER, reader.next_int())

        return position

    def decode_4(self, connection, values: List[str]) -> Optional[Position]:
        reader = TokenReader(values)

        message_type = reader.next()[MIN_HEADER_LENGTH:]
        if message_type not in TYPES_4:
            return None

        session = self.get_device_session(connection, reader.next())
        if session is None:
            return None

        position = Position(session.device_id)
        position.set(KEY_TYPE, message_type)

        position.set(KEY_VERSION_FW, reader.next())
        reader.skip()  # model

        network = Network()
        for i in range(CELL_GROUPS_4):
            cid = reader.next_int()
            mcc = reader.next_int()
            mnc = reader.next_int()
            if i == 0:
                rssi = reader.next_int()
                lac = reader.next_int()
            else:
                lac = reader.next_int()
                rssi = reader.next_int()
            reader.skip()  # timing advance
            network.add_cell_tower(CellTower(mcc=mcc, mnc=mnc, lac=lac, cid=cid, rssi=rssi))
        position.network = network

        position.set(KEY_BATTERY, reader.next_float())
        position.set(KEY_ARCHIVE, True if reader.next() == '0' else None)
        position.set(KEY_INDEX, reader.next_int())
        position.set(KEY_STATUS, reader.next_int())

        position.time = reader.next_date_time()

        position.latitude = reader.next_float()
        position.longitude = reader.next_float()
        position.speed = knots_from_kph(reader.next_float())
        position.course = reader.next_float()

        position.set(KEY_SATELLITES, reader.next_int())

        position.valid = reader.next_bool()

        return position

    def decode_2356(self, connection, protocol: str, values: List[str]) -> Optional[Position]:
        reader = TokenReader(values)

        message_type = reader.next()[MIN_HEADER_LENGTH:]
        if message_type not in TYPES_2356:
            return None

        session = self.get_device_session(connection, reader.next())
        if session is None:
            return None
        config = self.resolve_config(session)

        position = Position(session.device_id)
        position.set(KEY_TYPE, message_type)

        if protocol in MODEL_PREFIXED:
            reader.skip()  # model

        position.set(KEY_VERSION_FW, reader.next())
        position.time = reader.next_date_time()

        if protocol != NO_CELL:
            cid = reader.next_hex()
            if protocol == FULL_CELL:
                mcc = reader.next_int()
                mnc = reader.next_int()
                lac = reader.next_hex()
                rssi = reader.next_int()
                network = Network()
                if network.add_cell_tower(CellTower(mcc=mcc, mnc=mnc, lac=lac, cid=cid, rssi=rssi)):
                    position.network = network

        position.latitude = reader.next_float()
        position.longitude = reader.next_float()
        position.speed = knots_from_kph(reader.next_float())
        position.course = reader.next_float()

        position.set(KEY_SATELLITES, reader.next_int())

        position.valid = reader.next_bool()

        position.set(KEY_ODOMETER, reader.next_int())
        position.set(KEY_POWER, reader.next_float())

        self.decode_io(position, reader.next())

        if message_type == 'STT':
            position.set(KEY_STATUS, reader.next_int())
            position.set(KEY_INDEX, reader.next_int())
        elif message_type == 'EMG':
            position.set(KEY_ALARM, decode_emergency(reader.next_int()))
        elif message_type == 'EVT':
            position.set(KEY_EVENT, reader.next_int())
        elif message_type == 'ALT':
            position.set(KEY_ALARM, decode_alert(reader.next_int()))
        elif message_type == 'UEX':
            if not self.decode_user_data(position, reader):
                logger.info(f'UEX report from {session.unique_id} shorter than its announced length, dropped')
                return None

        if config.hbm:
            self.decode_extension(position, reader, config)

        return position

    def decode_universal(self, connection, values: List[str]) -> Optional[Position]:
        reader = TokenReader(values)

        message_type = reader.next()
        if message_type not in TYPES_UNIVERSAL:
            return None

        session = self.get_device_session(connection, reader.next())
        if session is None:
            return None

        position = Position(session.device_id)
        position.set(KEY_TYPE, message_type)

        mask = reader.next_hex()
        for bits, read_field in UNIVERSAL_FIELDS:
            if check_all(mask, bits):
                read_field(position, reader)

        return position

    # ---------- standard dialect sections ----------
    @staticmethod
    def decode_io(position: Position, io: str) -> None:
        """ignition, in1..in3, out1..out2 as one character each."""
        if len(io) != IO_LENGTH:
            return
        position.set(KEY_IGNITION, io[0] == '1')
        position.set(PREFIX_IN + '1', io[1] == '1')
        position.set(PREFIX_IN + '2', io[2] == '1')
        position.set(PREFIX_IN + '3', io[3] == '1')
        position.set(PREFIX_OUT + '1', io[4] == '1')
        position.set(PREFIX_OUT + '2', io[5] == '1')

    @staticmethod
    def decode_user_data(position: Position, reader: TokenReader) -> bool:
        """
        UEX: key=value tokens until the announced character count is consumed.
        Returns False when the line ends before the count is reached.
        """
        remaining = reader.next_int()
        while remaining > 0:
            if not reader.has_next():
                return False
            value = reader.next()
            key, separator, data = value.partition('=')
            if separator and data:
                position.set(key.lower(), data.strip())
            remaining -= len(value) + 1
        return True

    @staticmethod
    def decode_extension(position: Position, reader: TokenReader, config: DecoderConfig) -> None:
        """Trailing block sent by devices with the hbm switch enabled."""
        if reader.has_next():
            position.set(KEY_HOURS, ms_from_minutes(reader.next_int()))

        if reader.has_next():
            position.set(KEY_BATTERY, reader.next_float())

        if reader.has_next() and reader.next() == '0':
            position.set(KEY_ARCHIVE, True)

        if config.include_adc:
            for i in range(1, ANALOG_CHANNELS + 1):
                value = reader.next()
                if value:
                    position.set(PREFIX_ADC + str(i), parse_float(value))

        if config.include_rpm and reader.has_next():
            position.set(KEY_RPM, reader.next_int())

        if reader.has_next(2):
            driver_unique_id = reader.next()
            if reader.next() == '1' and driver_unique_id:
                position.set(KEY_DRIVER_UNIQUE_ID, driver_unique_id)

        if config.include_temp:
            for i in range(1, TEMPERATURE_CHANNELS + 1):
                temperature = reader.next()
                value = temperature[temperature.find(':') + 1:]
                if value:
                    position.set(PREFIX_TEMP + str(i), parse_float(value))

# End of module
