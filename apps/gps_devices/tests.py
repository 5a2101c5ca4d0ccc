import json
import os
import tempfile
from datetime import datetime, timezone
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings

from apps.gps_devices.decoders.bit_util import check_all, check_bit
from apps.gps_devices.decoders.position import CellTower, Network, Position
from apps.gps_devices.decoders.suntech_codes import AlarmType, decode_alert, decode_emergency
from apps.gps_devices.decoders.Suntech_Decoder import SuntechDecoder, select_dialect
from apps.gps_devices.decoders.token_reader import SuntechDecodeError, TokenReader, TokensExhausted
from apps.gps_devices.models import Device
from apps.gps_devices.services.decoder_config import (
    DecoderConfig, DjangoConfigResolver, StaticConfigResolver, to_bool,
)
from apps.gps_devices.services.device_registry import (
    DeviceSession, DjangoSessionRegistry, StaticSessionRegistry,
)

IMEI = '205000001'
DEVICE_ID = 1

ST300_STT = (
    'ST300STT;205000001;04;706;20230115;08:30:00;1A2B;'
    '+37.478200;-121.912300;050.00;120.00;8;1;1000;12.60;010101;1;42'
)


def make_decoder(per_device=None, global_defaults=None, **defaults):
    registry = StaticSessionRegistry({IMEI: DEVICE_ID})
    resolver = StaticConfigResolver({DEVICE_ID: per_device or {}}, global_defaults)
    return SuntechDecoder(session_registry=registry, config_resolver=resolver, **defaults)


def st4_line(archive='0', header='ST410STT'):
    cells = [
        '1234;310;260;-70;100;0',
        '5678;310;260;200;-80;1',
    ] + ['0;310;260;300;-90;0'] * 5
    return ';'.join([
        header, IMEI, '1.2', 'MDL',
        *cells,
        '4.10', archive, '17', '2',
        '20230115', '08:30:00',
        '+37.478200', '-121.912300', '018.52', '270.00', '9', '1',
    ])


class TokenReaderTest(SimpleTestCase):
    """Test cases for the token cursor"""

    def test_typed_reads(self):
        """Test reading tokens with their types"""
        reader = TokenReader(['12', '1A', '3.5', '1', '20230115', '08:30:00'])
        self.assertEqual(reader.next_int(), 12)
        self.assertEqual(reader.next_hex(), 26)
        self.assertEqual(reader.next_float(), 3.5)
        self.assertTrue(reader.next_bool())
        self.assertEqual(reader.next_date_time(), datetime(2023, 1, 15, 8, 30, tzinfo=timezone.utc))
        self.assertFalse(reader.has_next())

    def test_exhausted(self):
        """Test reading past the last token"""
        reader = TokenReader(['only'])
        reader.next()
        with self.assertRaises(TokensExhausted):
            reader.next()

    def test_invalid_values(self):
        """Test unparseable numbers and timestamps"""
        with self.assertRaises(SuntechDecodeError):
            TokenReader(['abc']).next_int()
        with self.assertRaises(SuntechDecodeError):
            TokenReader(['']).next_float()
        with self.assertRaises(SuntechDecodeError):
            TokenReader(['2023-01-15', '08:30:00']).next_date_time()

    def test_strict_numbers(self):
        """Test that only plain digit and decimal tokens are numbers"""
        for value in ('0x1A', '1_000', ' 12', '+1A'):
            with self.assertRaises(SuntechDecodeError):
                TokenReader([value]).next_hex()
        for value in ('1_000', '12 ', '1.5'):
            with self.assertRaises(SuntechDecodeError):
                TokenReader([value]).next_int()
        for value in ('inf', 'nan', '1e3', '1_0.5'):
            with self.assertRaises(SuntechDecodeError):
                TokenReader([value]).next_float()
        self.assertEqual(TokenReader(['-70']).next_int(), -70)
        self.assertEqual(TokenReader(['00ff']).next_hex(), 255)
        self.assertEqual(TokenReader(['+018.']).next_float(), 18.0)

    def test_date_time_field_widths(self):
        """Test that short date or time fields are rejected"""
        for date_raw, time_raw in (('2023115', '08:30:00'), ('20230115', '8:30:00'),
                                   ('20230115', '08:3:000')):
            with self.assertRaises(SuntechDecodeError):
                TokenReader([date_raw, time_raw]).next_date_time()

    def test_remaining(self):
        """Test remaining token count"""
        reader = TokenReader(['a', 'b', 'c'], 1)
        self.assertEqual(reader.remaining, 2)
        self.assertTrue(reader.has_next(2))
        self.assertFalse(reader.has_next(3))


class CodeTablesTest(SimpleTestCase):
    """Test cases for EMG/ALT code lookups"""

    def test_emergency_codes(self):
        self.assertEqual(decode_emergency(1), AlarmType.SOS)
        self.assertEqual(decode_emergency(5), AlarmType.DOOR)
        self.assertEqual(decode_emergency(6), AlarmType.DOOR)
        self.assertEqual(decode_emergency(8), AlarmType.SHOCK)
        self.assertIsNone(decode_emergency(4))

    def test_alert_codes(self):
        self.assertEqual(decode_alert(1), AlarmType.OVERSPEED)
        self.assertEqual(decode_alert(16), AlarmType.ACCIDENT)
        self.assertEqual(decode_alert(48), AlarmType.ACCIDENT)
        self.assertEqual(decode_alert(46), AlarmType.HARD_ACCELERATION)
        self.assertIsNone(decode_alert(99))


class BitUtilTest(SimpleTestCase):
    """Test cases for the bitmask field selector"""

    def test_check_bit(self):
        mask = 0x1800
        self.assertTrue(check_bit(mask, 11))
        self.assertTrue(check_bit(mask, 12))
        self.assertFalse(check_bit(mask, 10))
        self.assertFalse(check_bit(mask, 0))

    def test_check_all(self):
        self.assertTrue(check_all(0x30, (4, 5)))
        self.assertFalse(check_all(0x10, (4, 5)))


class NetworkTest(SimpleTestCase):
    """Test cases for cell tower filtering"""

    def test_zero_cid_dropped(self):
        network = Network()
        self.assertFalse(network.add_cell_tower(CellTower(mcc=310, mnc=260, lac=100, cid=0, rssi=-70)))
        self.assertTrue(network.add_cell_tower(CellTower(mcc=310, mnc=260, lac=100, cid=77, rssi=-70)))
        self.assertEqual(len(network.cell_towers), 1)

    def test_absent_attribute_not_stored(self):
        position = Position(DEVICE_ID)
        position.set('alarm', None)
        self.assertNotIn('alarm', position.attributes)
        position.set('alarm', AlarmType.SOS)
        self.assertEqual(position.attributes['alarm'], 'sos')


class DispatcherTest(SimpleTestCase):
    """Test cases for dialect selection"""

    def test_select_dialect(self):
        self.assertEqual(select_dialect('STT'), ('universal', None))
        self.assertEqual(select_dialect('ST34'), ('universal', None))
        self.assertEqual(select_dialect('ST910'), ('9', None))
        self.assertEqual(select_dialect('ST410STT'), ('4', None))
        self.assertEqual(select_dialect('ST300STT'), ('2356', 'ST300'))
        self.assertEqual(select_dialect('ST600ALT'), ('2356', 'ST600'))

    def test_empty_line(self):
        decoder = make_decoder()
        self.assertIsNone(decoder.decode(''))
        self.assertIsNone(decoder.decode('  \r\n'))


class StandardDialectTest(SimpleTestCase):
    """Test cases for ST300/ST500/ST600 and other standard reports"""

    def test_st300_status_report(self):
        """Test decoding a full ST300 STT report"""
        position = make_decoder().decode(ST300_STT)
        self.assertIsNotNone(position)
        self.assertEqual(position.device_id, DEVICE_ID)
        self.assertEqual(position.attributes['type'], 'STT')
        self.assertEqual(position.attributes['version_fw'], '706')
        self.assertEqual(position.time, datetime(2023, 1, 15, 8, 30, tzinfo=timezone.utc))
        self.assertTrue(position.valid)
        self.assertAlmostEqual(position.latitude, 37.4782)
        self.assertAlmostEqual(position.longitude, -121.9123)
        self.assertAlmostEqual(position.speed, 50 / 1.852, places=6)
        self.assertEqual(position.course, 120.0)
        self.assertEqual(position.attributes['sat'], 8)
        self.assertEqual(position.attributes['odometer'], 1000)
        self.assertEqual(position.attributes['power'], 12.6)
        self.assertEqual(position.attributes['status'], 1)
        self.assertEqual(position.attributes['index'], 42)
        self.assertIsNone(position.network)

    def test_io_flags(self):
        """Test ignition, inputs and outputs from the 6-character I/O token"""
        attributes = make_decoder().decode(ST300_STT).attributes
        self.assertFalse(attributes['ignition'])
        self.assertTrue(attributes['in1'])
        self.assertFalse(attributes['in2'])
        self.assertTrue(attributes['in3'])
        self.assertFalse(attributes['out1'])
        self.assertTrue(attributes['out2'])

    def test_io_wrong_length_ignored(self):
        line = ST300_STT.replace(';010101;', ';0101;')
        attributes = make_decoder().decode(line).attributes
        for key in ('ignition', 'in1', 'in2', 'in3', 'out1', 'out2'):
            self.assertNotIn(key, attributes)

    def test_st600_cell_tower(self):
        """Test the serving cell reported by ST600"""
        line = (
            'ST600STT;205000001;02;310;20230115;08:30:00;1A2B;310;260;00FF;-65;'
            '+37.478200;-121.912300;000.00;000.00;0;0;0;12.60;000000;0;1'
        )
        position = make_decoder().decode(line)
        self.assertFalse(position.valid)
        self.assertEqual(position.network.cell_towers, [
            CellTower(mcc=310, mnc=260, lac=255, cid=0x1A2B, rssi=-65),
        ])

    def test_st600_zero_cid_not_attached(self):
        line = (
            'ST600STT;205000001;02;310;20230115;08:30:00;0;310;260;00FF;-65;'
            '+37.478200;-121.912300;000.00;000.00;0;0;0;12.60;000000;0;1'
        )
        self.assertIsNone(make_decoder().decode(line).network)

    def test_st500_emergency(self):
        """Test ST500 (no cell token) with an EMG code"""
        line = 'ST500EMG;205000001;02;310;20230115;08:30:00;+37.478200;-121.912300;010.00;090.00;5;1;500;12.00;100000;1'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['type'], 'EMG')
        self.assertEqual(position.attributes['alarm'], 'sos')
        self.assertTrue(position.attributes['ignition'])
        self.assertAlmostEqual(position.latitude, 37.4782)

    def test_catch_all_without_model(self):
        """Test a dialect without a model token (ST340)"""
        line = 'ST340ALT;205000001;310;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;1'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['version_fw'], '310')
        self.assertEqual(position.attributes['alarm'], 'overspeed')

    def test_unknown_alert_code(self):
        """Test that an unmapped ALT code leaves the alarm unset"""
        line = 'ST340ALT;205000001;310;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;99'
        position = make_decoder().decode(line)
        self.assertIsNotNone(position)
        self.assertNotIn('alarm', position.attributes)

    def test_event_code(self):
        line = 'ST340EVT;205000001;310;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;3'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['event'], 3)

    def test_user_data(self):
        """Test UEX key=value pairs within the announced length"""
        line = (
            'ST300UEX;205000001;04;706;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;'
            '7;A=1;BB=22;trailing'
        )
        attributes = make_decoder().decode(line).attributes
        self.assertEqual(attributes['a'], '1')
        self.assertEqual(attributes['bb'], '22')
        self.assertNotIn('trailing', attributes)

    def test_user_data_skips_tokens_without_value(self):
        line = (
            'ST300UEX;205000001;04;706;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;'
            '10;noequals;C=3'
        )
        attributes = make_decoder().decode(line).attributes
        self.assertEqual(attributes['c'], '3')
        self.assertNotIn('noequals', attributes)

    def test_user_data_shorter_than_announced(self):
        """Test that a UEX report ending early produces no position"""
        line = (
            'ST300UEX;205000001;04;706;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;'
            '50;A=1'
        )
        self.assertIsNone(make_decoder().decode(line))

    def test_unknown_type_filtered(self):
        line = ST300_STT.replace('ST300STT', 'ST300HTE')
        self.assertIsNone(make_decoder().decode(line))

    def test_unknown_device_filtered(self):
        line = ST300_STT.replace(IMEI, '999999999')
        self.assertIsNone(make_decoder().decode(line))

    def test_truncated_line(self):
        """Test that a short line fails instead of shifting fields"""
        line = ';'.join(ST300_STT.split(';')[:10])
        with self.assertRaises(TokensExhausted):
            make_decoder().decode(line)

    def test_invalid_number(self):
        line = ST300_STT.replace('+37.478200', 'north')
        with self.assertRaises(SuntechDecodeError):
            make_decoder().decode(line)

    def test_invalid_date(self):
        line = ST300_STT.replace('20230115', '2023-1-15')
        with self.assertRaises(SuntechDecodeError):
            make_decoder().decode(line)

    def test_short_date_fields(self):
        """Test that single-digit date and hour fields fail the line"""
        line = ST300_STT.replace('20230115;08:30:00', '2023115;8:30:00')
        with self.assertRaises(SuntechDecodeError):
            make_decoder().decode(line)

    def test_hex_prefix_rejected(self):
        line = ST300_STT.replace(';1A2B;', ';0x1A2B;')
        with self.assertRaises(SuntechDecodeError):
            make_decoder().decode(line)

    def test_user_data_value_with_separator(self):
        """Test that a UEX token splits on its first '=' only"""
        line = (
            'ST300UEX;205000001;04;706;20230115;08:30:00;1A2B;+37.4782;-121.9123;0;0;5;1;500;12.0;000000;'
            '6;K=b=c'
        )
        attributes = make_decoder().decode(line).attributes
        self.assertEqual(attributes['k'], 'b=c')

    def test_idempotent(self):
        decoder = make_decoder()
        self.assertEqual(decoder.decode(ST300_STT).to_dict(), decoder.decode(ST300_STT).to_dict())


class ExtensionBlockTest(SimpleTestCase):
    """Test cases for the hbm extension block"""

    def test_all_sections(self):
        """Test hours, battery, archive, ADC, RPM, driver and temperatures"""
        line = ST300_STT + ';120;3.9;0;1.5;;2.5;1800;DRV123;1;T1:25.5;T2:;T3:-4.0'
        decoder = make_decoder(per_device={
            'hbm': True, 'includeAdc': True, 'includeRpm': True, 'includeTemp': True,
        })
        attributes = decoder.decode(line).attributes
        self.assertEqual(attributes['hours'], 120 * 60 * 1000)
        self.assertEqual(attributes['battery'], 3.9)
        self.assertIs(attributes['archive'], True)
        self.assertEqual(attributes['adc1'], 1.5)
        self.assertNotIn('adc2', attributes)
        self.assertEqual(attributes['adc3'], 2.5)
        self.assertEqual(attributes['rpm'], 1800)
        self.assertEqual(attributes['driver_unique_id'], 'DRV123')
        self.assertEqual(attributes['temp1'], 25.5)
        self.assertNotIn('temp2', attributes)
        self.assertEqual(attributes['temp3'], -4.0)

    def test_without_optional_sections(self):
        """Test that an unconfirmed driver id and live archive marker are left out"""
        line = ST300_STT + ';120;3.9;1;DRV123;0'
        attributes = make_decoder(hbm=True).decode(line).attributes
        self.assertEqual(attributes['hours'], 7200000)
        self.assertEqual(attributes['battery'], 3.9)
        self.assertNotIn('archive', attributes)
        self.assertNotIn('driver_unique_id', attributes)
        self.assertNotIn('rpm', attributes)

    def test_hbm_disabled_ignores_tail(self):
        line = ST300_STT + ';120;3.9;0'
        attributes = make_decoder().decode(line).attributes
        self.assertNotIn('hours', attributes)
        self.assertNotIn('battery', attributes)

    def test_global_default_enables_hbm(self):
        line = ST300_STT + ';60'
        attributes = make_decoder(global_defaults={'hbm': True}).decode(line).attributes
        self.assertEqual(attributes['hours'], 3600000)

    def test_device_value_overrides_global_default(self):
        line = ST300_STT + ';60'
        decoder = make_decoder(per_device={'hbm': False}, global_defaults={'hbm': True})
        self.assertNotIn('hours', decoder.decode(line).attributes)

    def test_trailing_separator(self):
        """Test that empty fields at the end of a line are dropped"""
        decoder = make_decoder(hbm=True)
        position = decoder.decode(ST300_STT + ';')
        self.assertIsNotNone(position)
        self.assertNotIn('hours', position.attributes)
        self.assertEqual(decoder.decode(ST300_STT + ';60;;\r\n').attributes['hours'], 3600000)

    def test_temperature_without_label(self):
        """Test that a temperature token without ':' is read whole"""
        line = ST300_STT + ';120;3.9;1;DRV123;0;21.5;T2:;-3'
        attributes = make_decoder(hbm=True, include_temp=True).decode(line).attributes
        self.assertEqual(attributes['temp1'], 21.5)
        self.assertNotIn('temp2', attributes)
        self.assertEqual(attributes['temp3'], -3.0)


class LongFormDialectTest(SimpleTestCase):
    """Test cases for ST9xx reports"""

    def test_location(self):
        line = 'ST910;Location;205000001;FW1.0;20230115;08:30:00;+37.478200;-121.912300;092.60;180.00;1'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['version_fw'], 'FW1.0')
        self.assertEqual(position.time, datetime(2023, 1, 15, 8, 30, tzinfo=timezone.utc))
        self.assertAlmostEqual(position.speed, 50.0, places=6)
        self.assertEqual(position.course, 180.0)
        self.assertTrue(position.valid)
        self.assertNotIn('alarm', position.attributes)
        self.assertNotIn('odometer', position.attributes)

    def test_speed_conversion(self):
        """Test that speed is km/h divided by 1.852"""
        decoder = make_decoder()
        previous = -1.0
        for kph in ('0', '10.5', '80', '160.25'):
            line = f'ST910;Location;205000001;FW1.0;20230115;08:30:00;1.0;2.0;{kph};0;1'
            knots = decoder.decode(line).speed
            self.assertAlmostEqual(knots, float(kph) / 1.852)
            self.assertGreater(knots, previous)
            previous = knots

    def test_emergency_sets_general_alarm(self):
        line = 'ST910;Emergency;205000001;FW1.0;20230115;08:30:00;+37.4782;-121.9123;0;0;0'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['alarm'], 'general')
        self.assertFalse(position.valid)

    def test_alert_with_protocol_type_one(self):
        """Test the cell token and odometer of protocolType 1 alerts"""
        line = 'ST910;Alert;205000001;20230115;08:30:00;CELL;+37.4782;-121.9123;0;0;1;12345'
        position = make_decoder(protocol_type=1).decode(line)
        self.assertNotIn('version_fw', position.attributes)
        self.assertEqual(position.attributes['alarm'], 'general')
        self.assertAlmostEqual(position.latitude, 37.4782)
        self.assertEqual(position.attributes['odometer'], 12345)

    def test_alert_with_protocol_type_zero(self):
        """Test that protocolType 0 alerts carry the firmware token"""
        line = 'ST910;Alert;205000001;FW2.0;20230115;08:30:00;+37.4782;-121.9123;0;0;1'
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['version_fw'], 'FW2.0')
        self.assertEqual(position.attributes['alarm'], 'general')
        self.assertEqual(position.time, datetime(2023, 1, 15, 8, 30, tzinfo=timezone.utc))
        self.assertNotIn('odometer', position.attributes)

    def test_location_with_protocol_type_one(self):
        """Test firmware, cell token and odometer together"""
        line = 'ST910;Location;205000001;FW1.0;20230115;08:30:00;CELL;+37.4782;-121.9123;092.60;90.00;1;54321'
        position = make_decoder(per_device={'protocolType': 1}).decode(line)
        self.assertEqual(position.attributes['version_fw'], 'FW1.0')
        self.assertNotIn('alarm', position.attributes)
        self.assertAlmostEqual(position.latitude, 37.4782)
        self.assertAlmostEqual(position.speed, 50.0, places=6)
        self.assertEqual(position.course, 90.0)
        self.assertTrue(position.valid)
        self.assertEqual(position.attributes['odometer'], 54321)

    def test_unknown_type_filtered(self):
        line = 'ST910;Heartbeat;205000001;FW1.0;20230115;08:30:00;1.0;2.0;0;0;1'
        self.assertIsNone(make_decoder().decode(line))


class CompactCellularDialectTest(SimpleTestCase):
    """Test cases for ST4xx reports"""

    def test_status_report(self):
        position = make_decoder().decode(st4_line())
        self.assertEqual(position.attributes['type'], 'STT')
        self.assertEqual(position.attributes['version_fw'], '1.2')
        self.assertEqual(position.attributes['battery'], 4.1)
        self.assertIs(position.attributes['archive'], True)
        self.assertEqual(position.attributes['index'], 17)
        self.assertEqual(position.attributes['status'], 2)
        self.assertEqual(position.attributes['sat'], 9)
        self.assertAlmostEqual(position.speed, 10.0, places=6)
        self.assertEqual(position.course, 270.0)
        self.assertTrue(position.valid)

    def test_cell_towers(self):
        """Test rssi/lac order of the first group and zero-cid filtering"""
        towers = make_decoder().decode(st4_line()).network.cell_towers
        self.assertEqual(towers, [
            CellTower(mcc=310, mnc=260, lac=100, cid=1234, rssi=-70),
            CellTower(mcc=310, mnc=260, lac=200, cid=5678, rssi=-80),
        ])

    def test_live_report_has_no_archive(self):
        position = make_decoder().decode(st4_line(archive='1'))
        self.assertNotIn('archive', position.attributes)

    def test_unknown_type_filtered(self):
        self.assertIsNone(make_decoder().decode(st4_line(header='ST410EMG')))


class UniversalDialectTest(SimpleTestCase):
    """Test cases for the bitmask layout"""

    def test_coordinates_only(self):
        """Test that bits 11 and 12 read latitude and longitude only"""
        position = make_decoder().decode('STT;205000001;1800;+37.4782;-121.9123;extra;tokens')
        self.assertAlmostEqual(position.latitude, 37.4782)
        self.assertAlmostEqual(position.longitude, -121.9123)
        self.assertEqual(position.attributes, {'type': 'STT'})
        self.assertIsNone(position.time)
        self.assertIsNone(position.speed)
        self.assertIsNone(position.course)
        self.assertFalse(position.valid)

    def test_all_fields(self):
        line = (
            'STT;205000001;1FFFE;MODEL;FW2;0;20230115;08:30:00;1A2B;310;260;00FF;-70;'
            '+37.4782;-121.9123;018.52;45.0;7;1'
        )
        position = make_decoder().decode(line)
        self.assertEqual(position.attributes['version_fw'], 'FW2')
        self.assertIs(position.attributes['archive'], True)
        self.assertEqual(position.time, datetime(2023, 1, 15, 8, 30, tzinfo=timezone.utc))
        self.assertEqual(position.attributes['rssi'], -70)
        self.assertAlmostEqual(position.latitude, 37.4782)
        self.assertAlmostEqual(position.speed, 10.0, places=6)
        self.assertEqual(position.course, 45.0)
        self.assertEqual(position.attributes['sat'], 7)
        self.assertTrue(position.valid)

    def test_date_needs_both_bits(self):
        """Test that bit 4 without bit 5 consumes no date/time tokens"""
        position = make_decoder().decode('STT;205000001;810;+37.4782')
        self.assertIsNone(position.time)
        self.assertAlmostEqual(position.latitude, 37.4782)

    def test_missing_token_for_set_bit(self):
        """Test that a missing token for a set bit fails the line"""
        with self.assertRaises(TokensExhausted):
            make_decoder().decode('STT;205000001;1800;+37.4782')

    def test_non_status_filtered(self):
        self.assertIsNone(make_decoder().decode('ALT;205000001;1800;1.0;2.0'))


class DeviceRegistryTest(TestCase):
    """Test cases for session lookup against the Device table"""

    def setUp(self):
        self.device = Device.objects.create(imei=IMEI, name='Truck 7')

    def test_active_device(self):
        session = DjangoSessionRegistry().resolve(None, IMEI)
        self.assertEqual(session, DeviceSession(device_id=self.device.pk, unique_id=IMEI))

    def test_unknown_device(self):
        self.assertIsNone(DjangoSessionRegistry().resolve(None, '000000000'))

    def test_inactive_device(self):
        self.device.status = 'inactive'
        self.device.save()
        self.assertIsNone(DjangoSessionRegistry().resolve(None, IMEI))


class DecoderConfigTest(TestCase):
    """Test cases for the three-tier switch resolution"""

    def setUp(self):
        self.device = Device.objects.create(imei=IMEI, name='Truck 7')

    def test_static_defaults(self):
        with override_settings(SUNTECH_DECODER={}):
            config = DjangoConfigResolver().resolve(self.device.pk, DecoderConfig(protocol_type=1, hbm=True))
        self.assertEqual(config, DecoderConfig(protocol_type=1, hbm=True))

    @override_settings(SUNTECH_DECODER={'PROTOCOL_TYPE': 1, 'HBM': True})
    def test_global_defaults(self):
        config = DjangoConfigResolver().resolve(self.device.pk, DecoderConfig())
        self.assertEqual(config.protocol_type, 1)
        self.assertTrue(config.hbm)
        self.assertFalse(config.include_adc)

    @override_settings(SUNTECH_DECODER={'HBM': True, 'INCLUDE_RPM': True})
    def test_device_attributes_win(self):
        self.device.attributes = {'suntech.hbm': False, 'suntech.includeAdc': 'true', 'other.hbm': True}
        self.device.save()
        resolver = DjangoConfigResolver()
        config = resolver.resolve(self.device.pk, DecoderConfig())
        self.assertFalse(config.hbm)
        self.assertTrue(config.include_adc)
        self.assertTrue(config.include_rpm)
        self.assertFalse(resolver.get_bool(self.device.pk, 'hbm', True))
        self.assertEqual(resolver.get_int(self.device.pk, 'protocolType', 3), 3)

    def test_invalid_value_raises(self):
        self.device.attributes = {'suntech.hbm': 'maybe'}
        self.device.save()
        with self.assertRaises(ValueError):
            DjangoConfigResolver().resolve(self.device.pk, DecoderConfig())

    def test_to_bool(self):
        self.assertTrue(to_bool('Yes'))
        self.assertTrue(to_bool(1))
        self.assertFalse(to_bool('0'))
        self.assertFalse(to_bool(False))


class DjangoDecoderTest(TestCase):
    """End-to-end decoding with the Device table as registry and configuration"""

    def test_decode_with_device_attributes(self):
        device = Device.objects.create(imei=IMEI, name='Truck 7', attributes={'suntech.hbm': True})
        position = SuntechDecoder().decode(ST300_STT + ';30;4.0;0')
        self.assertEqual(position.device_id, device.pk)
        self.assertEqual(position.attributes['hours'], 1800000)
        self.assertIs(position.attributes['archive'], True)

    def test_unregistered_device(self):
        self.assertIsNone(SuntechDecoder().decode(ST300_STT))

    def test_configuration_error_not_wrapped(self):
        """Test that an unreadable device setting reaches the caller as-is"""
        Device.objects.create(imei=IMEI, name='Truck 7', attributes={'suntech.protocolType': 'two'})
        with self.assertRaises(ValueError) as raised:
            SuntechDecoder().decode(ST300_STT)
        self.assertNotIsInstance(raised.exception, SuntechDecodeError)


class DecodeCommandTest(SimpleTestCase):
    """Test cases for the decode_suntech management command"""

    def setUp(self):
        handle = tempfile.NamedTemporaryFile('w', suffix='.txt', delete=False, encoding='utf-8')
        with handle:
            handle.write(ST300_STT + '\n')
            handle.write('\n')
            handle.write(ST300_STT.replace('ST300STT', 'ST300XXX') + '\n')
            handle.write(ST300_STT.replace('+37.478200', 'north') + '\n')
        self.path = handle.name

    def tearDown(self):
        os.remove(self.path)

    def test_decode_file(self):
        out = StringIO()
        err = StringIO()
        call_command('decode_suntech', self.path, '--any-device', stdout=out, stderr=err)

        records = [json.loads(line) for line in out.getvalue().splitlines() if line.strip()]
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]['device_id'], IMEI)
        self.assertEqual(records[0]['attributes']['type'], 'STT')
        self.assertEqual(records[0]['timestamp'], '2023-01-15T08:30:00+00:00')
        self.assertIn('decoded=1 filtered=1 failed=1', err.getvalue())


class DecodeCommandDatabaseTest(TestCase):
    """Test cases for decode_suntech against the Device table"""

    def setUp(self):
        self.broken = Device.objects.create(imei=IMEI, name='Truck 7', attributes={'suntech.hbm': 'maybe'})
        self.healthy = Device.objects.create(imei='205000002', name='Truck 8')
        handle = tempfile.NamedTemporaryFile('w', suffix='.txt', delete=False, encoding='utf-8')
        with handle:
            handle.write(ST300_STT + '\n')
            handle.write(ST300_STT.replace(IMEI, '205000002') + '\n')
        self.path = handle.name

    def tearDown(self):
        os.remove(self.path)

    def test_bad_device_setting_fails_only_its_line(self):
        out = StringIO()
        err = StringIO()
        call_command('decode_suntech', self.path, stdout=out, stderr=err)

        records = [json.loads(line) for line in out.getvalue().splitlines() if line.strip()]
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]['device_id'], self.healthy.pk)
        self.assertIn('maybe', err.getvalue())
        self.assertIn('decoded=1 filtered=0 failed=1', err.getvalue())
