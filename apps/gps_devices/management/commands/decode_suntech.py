import logging
import sys

from django.core.management.base import BaseCommand

from apps.gps_devices.decoders.Suntech_Decoder import SuntechDecoder
from apps.gps_devices.services.decoder_config import DjangoConfigResolver, StaticConfigResolver
from apps.gps_devices.services.device_registry import DjangoSessionRegistry, StaticSessionRegistry

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Decode Suntech report lines from files (or stdin) and print one JSON record per position'

    def add_arguments(self, parser):
        parser.add_argument('files', nargs='*', help='Files with one report per line; stdin when omitted')
        parser.add_argument('--protocol-type', type=int, default=0,
                            help='Static default for the protocolType switch')
        parser.add_argument('--hbm', action='store_true', help='Static default: extension block present')
        parser.add_argument('--include-adc', action='store_true', help='Static default: analog inputs present')
        parser.add_argument('--include-rpm', action='store_true', help='Static default: RPM present')
        parser.add_argument('--include-temp', action='store_true', help='Static default: temperatures present')
        parser.add_argument('--any-device', action='store_true',
                            help='Accept every unique id without looking devices up in the database')

    def handle(self, *args, **options):
        if options['any_device']:
            registry = StaticSessionRegistry(accept_any=True)
            resolver = StaticConfigResolver()
        else:
            registry = DjangoSessionRegistry()
            resolver = DjangoConfigResolver()

        decoder = SuntechDecoder(
            session_registry=registry,
            config_resolver=resolver,
            protocol_type=options['protocol_type'],
            hbm=options['hbm'],
            include_adc=options['include_adc'],
            include_rpm=options['include_rpm'],
            include_temp=options['include_temp'],
        )
        processor = LineProcessor(decoder, self.stdout, self.stderr)

        if options['files']:
            for path in options['files']:
                with open(path, encoding='utf-8', errors='replace') as stream:
                    processor.process_stream(stream, source=path)
        else:
            processor.process_stream(sys.stdin, source='stdin')

        logger.info(f'Decoded {processor.decoded} lines, filtered {processor.filtered}, failed {processor.failed}')
        self.stderr.write(
            f'decoded={processor.decoded} filtered={processor.filtered} failed={processor.failed}'
        )


class LineProcessor:
    def __init__(self, decoder, stdout, stderr):
        self.decoder = decoder
        self.stdout = stdout
        self.stderr = stderr
        self.decoded = 0
        self.filtered = 0
        self.failed = 0

    def process_stream(self, stream, source='stdin'):
        for line_number, line in enumerate(stream, start=1):
            if not line.strip():
                continue
            self.process_line(line, f'{source}:{line_number}')

    def process_line(self, line, location):
        """Decode a single line; a malformed line never stops the run."""
        try:
            position = self.decoder.decode(line, connection=location)
        except ValueError as e:
            # SuntechDecodeError, or a device whose decoder switches cannot be read
            self.failed += 1
            logger.warning(f'Decoding failed at {location}: {e}')
            self.stderr.write(f'{location}: {e}')
            return None

        if position is None:
            self.filtered += 1
            logger.info(f'No position at {location}')
            return None

        self.decoded += 1
        self.stdout.write(position.to_json())
        return position
