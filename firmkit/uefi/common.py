"""Shared helpers for UEFI image trees: polarity, checksums, sizes, visitors."""

from __future__ import annotations

import abc
import struct
from dataclasses import dataclass

POISONED_POLARITY = 0xF0
TYPE_PREFIX = "*uefi."


class UEFIError(Exception):
    """Raised when firmware data is malformed or an operation is invalid."""


@dataclass
class ROMAttributes:
    """Global attributes that apply across the whole image."""

    erase_polarity: int = POISONED_POLARITY


attributes = ROMAttributes()


def set_erase_polarity(polarity: int) -> None:
    """Set the erase polarity once; later calls must request the same value."""
    if polarity not in (0x00, 0xFF):
        raise UEFIError(
            "invalid erase polarity requested, should only be 0x00 or 0xFF, "
            f"got 0x{polarity:02X}"
        )
    current = attributes.erase_polarity
    if current != POISONED_POLARITY:
        if current != polarity:
            raise UEFIError(
                f"conflicting erase polarities, was 0x{current:02X}, "
                f"requested 0x{polarity:02X}"
            )
        return
    attributes.erase_polarity = polarity


class Firmware:
    """One node of a parsed firmware tree; subclasses carry a ``buf``."""

    buf: bytes = b""

    def apply(self, visitor: Visitor) -> None:
        """Apply the visitor to this node."""
        visitor.visit(self)

    def apply_children(self, visitor: Visitor) -> None:
        """Apply the visitor to every direct child; leaves have none."""


class Visitor(abc.ABC):
    """An operation applied over a firmware tree."""

    def run(self, firmware: Firmware) -> None:
        """Entry point; by default just visits the given node."""
        firmware.apply(self)

    @abc.abstractmethod
    def visit(self, firmware: Firmware) -> None:
        """Handle one node and usually recurse into its children."""


@dataclass
class TypedFirmware:
    """A firmware node together with its type name, as stored in JSON."""

    type: str
    value: Firmware


def type_name(firmware: Firmware) -> str:
    """Return the type name recorded for a firmware node."""
    return TYPE_PREFIX + type(firmware).__name__


def make_typed(firmware: Firmware) -> TypedFirmware:
    """Pair a firmware node with its type name."""
    return TypedFirmware(type_name(firmware), firmware)


def checksum8(buf: bytes) -> int:
    """8-bit wrap-around sum of the bytes."""
    return sum(buf) & 0xFF


def checksum16(buf: bytes) -> int:
    """16-bit wrap-around sum of little-endian words."""
    if len(buf) % 2:
        raise UEFIError(
            "byte slice does not have even length, not able to do 16 bit checksum. "
            f"Length was {len(buf)}"
        )
    return sum(word for (word,) in struct.iter_unpack("<H", bytes(buf))) & 0xFFFF


def read3_size(size: bytes) -> int:
    """Read a 3-byte little-endian size."""
    return int.from_bytes(bytes(size[:3]), "little")


def write3_size(size: int) -> bytes:
    """Encode a size in 3 bytes, saturating to FF FF FF."""
    if size >= 0xFFFFFF:
        return b"\xff\xff\xff"
    return size.to_bytes(3, "little")


def align(value: int, base: int) -> int:
    """Round value up to a multiple of base (a power of two)."""
    return (value + base - 1) & ~(base - 1)


def align4(value: int) -> int:
    """Round up to a multiple of 4."""
    return align(value, 4)


def align8(value: int) -> int:
    """Round up to a multiple of 8."""
    return align(value, 8)


def erase(buf: bytearray, polarity: int) -> None:
    """Fill a mutable buffer with the erase polarity byte, in place."""
    buf[:] = bytes([polarity]) * len(buf)


def is_erased(buf: bytes, polarity: int) -> bool:
    """True if every byte of the buffer equals the polarity byte."""
    return all(byte == polarity for byte in buf)