"""
Sequential reader over the ';'-separated tokens of one Suntech report.

Every dialect decoder walks its line left to right through a TokenReader
instead of indexing into the token list, so a short line fails with
TokensExhausted at the first missing field rather than shifting the rest.
"""

from __future__ import annotations
import re
from datetime import datetime, timezone
from typing import List, Optional

# yyyyMMdd immediately followed by HH:mm:ss
DATE_TIME_FORMAT = '%Y%m%d%H:%M:%S'
DATE_PATTERN = re.compile(r"[0-9]{8}")
TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}:[0-9]{2}")

INTEGER_PATTERNS = {
    10: re.compile(r"[+-]?[0-9]+"),
    16: re.compile(r"[0-9A-Fa-f]+"),
}
DECIMAL_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")


class SuntechDecodeError(ValueError):
    """Raised when a line is malformed; fatal to that line only."""


class TokensExhausted(SuntechDecodeError):
    """Raised when a layout needs more tokens than the line carries."""


class TokenReader:
    def __init__(self, tokens: List[str], index: int = 0):
        self.tokens = tokens
        self.index = index

    def __repr__(self):
        return f"TokenReader(index={self.index}, total={len(self.tokens)})"

    @property
    def remaining(self) -> int:
        return len(self.tokens) - self.index

    def has_next(self, count: int = 1) -> bool:
        return self.remaining >= count

    def next(self) -> str:
        if self.index >= len(self.tokens):
            raise TokensExhausted(f"Expected token at position {self.index}, line has {len(self.tokens)}")
        value = self.tokens[self.index]
        self.index += 1
        return value

    def skip(self, count: int = 1) -> None:
        """Consume and discard tokens (model, timing advance, ...)."""
        for _ in range(count):
            self.next()

    def next_int(self, base: int = 10) -> int:
        value = self.next()
        try:
            return parse_int(value, base)
        except SuntechDecodeError:
            raise SuntechDecodeError(f"Invalid integer {value!r} at position {self.index - 1}") from None

    def next_hex(self) -> int:
        return self.next_int(16)

    def next_float(self) -> float:
        value = self.next()
        try:
            return parse_float(value)
        except SuntechDecodeError:
            raise SuntechDecodeError(f"Invalid number {value!r} at position {self.index - 1}") from None

    def next_bool(self, true_value: str = '1') -> bool:
        return self.next() == true_value

    def next_date_time(self) -> datetime:
        """Read a date token and a time token and combine them as UTC."""
        date_raw = self.next()
        time_raw = self.next()
        return parse_date_time(date_raw, time_raw)


def parse_date_time(date_raw: Optional[str], time_raw: Optional[str]) -> datetime:
    if not date_raw or not time_raw:
        raise SuntechDecodeError(f"Missing date/time: {date_raw!r} {time_raw!r}")
    # strptime alone also accepts single-digit month, day and hour fields
    if not DATE_PATTERN.fullmatch(date_raw) or not TIME_PATTERN.fullmatch(time_raw):
        raise SuntechDecodeError(f"Invalid date/time: {date_raw!r} {time_raw!r}")
    try:
        dt = datetime.strptime(date_raw + time_raw, DATE_TIME_FORMAT)
    except ValueError:
        raise SuntechDecodeError(f"Invalid date/time: {date_raw!r} {time_raw!r}") from None
    return dt.replace(tzinfo=timezone.utc)


def parse_int(value: str, base: int = 10) -> int:
    """Plain digits only: no 0x prefix, underscores or padding."""
    if not INTEGER_PATTERNS[base].fullmatch(value):
        raise SuntechDecodeError(f"Invalid integer {value!r}")
    return int(value, base)


def parse_float(value: str) -> float:
    if not DECIMAL_PATTERN.fullmatch(value):
        raise SuntechDecodeError(f"Invalid number {value!r}")
    return float(value)
