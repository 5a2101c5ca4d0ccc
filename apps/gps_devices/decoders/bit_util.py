from typing import Iterable


def check_bit(mask: int, bit: int) -> bool:
    """True when bit `bit` (0 = least significant) of `mask` is set."""
    return (mask >> bit) & 1 == 1


def check_all(mask: int, bits: Iterable[int]) -> bool:
    return all(check_bit(mask, bit) for bit in bits)
