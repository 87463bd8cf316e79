"""Firmware file sections: parsing, building and dependency expressions."""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field

from ..compression import LZMA_GUID, LZMAX86_GUID, CompressionError, compressor_from_guid
from ..guid import GUID
from ..ucs2 import ucs2_to_utf8
from .common import (
    Firmware,
    TypedFirmware,
    UEFIError,
    align4,
    make_typed,
    read3_size,
    write3_size,
)

log = logging.getLogger(__name__)

SECTION_MIN_LENGTH = 0x04
SECTION_EXT_MIN_LENGTH = 0x08
GUID_DEFINED_HEADER_SIZE = 20

GUIDED_SECTION_PROCESSING_REQUIRED = 0x01
GUIDED_SECTION_AUTH_STATUS_VALID = 0x02

_GUID_DEFINED = struct.Struct("<16sHH")
_LARGE_SIZE = 0xFFFFFF


class SectionType(enum.IntEnum):
    """UEFI section types."""

    ALL = 0x00
    COMPRESSION = 0x01
    GUID_DEFINED = 0x02
    DISPOSABLE = 0x03
    PE32 = 0x10
    PIC = 0x11
    TE = 0x12
    DXE_DEPEX = 0x13
    VERSION = 0x14
    USER_INTERFACE = 0x15
    COMPATIBILITY16 = 0x16
    FIRMWARE_VOLUME_IMAGE = 0x17
    FREEFORM_SUBTYPE_GUID = 0x18
    RAW = 0x19
    PEI_DEPEX = 0x1B
    MM_DEPEX = 0x1C


_SECTION_TYPE_NAMES = {
    SectionType.COMPRESSION: "EFI_SECTION_COMPRESSION",
    SectionType.GUID_DEFINED: "EFI_SECTION_GUID_DEFINED",
    SectionType.DISPOSABLE: "EFI_SECTION_DISPOSABLE",
    SectionType.PE32: "EFI_SECTION_PE32",
    SectionType.PIC: "EFI_SECTION_PIC",
    SectionType.TE: "EFI_SECTION_TE",
    SectionType.DXE_DEPEX: "EFI_SECTION_DXE_DEPEX",
    SectionType.VERSION: "EFI_SECTION_VERSION",
    SectionType.USER_INTERFACE: "EFI_SECTION_USER_INTERFACE",
    SectionType.COMPATIBILITY16: "EFI_SECTION_COMPATIBILITY16",
    SectionType.FIRMWARE_VOLUME_IMAGE: "EFI_SECTION_FIRMWARE_VOLUME_IMAGE",
    SectionType.FREEFORM_SUBTYPE_GUID: "EFI_SECTION_FREEFORM_SUBTYPE_GUID",
    SectionType.RAW: "EFI_SECTION_RAW",
    SectionType.PEI_DEPEX: "EFI_SECTION_PEI_DEPEX",
    SectionType.MM_DEPEX: "EFI_SECTION_MM_DEPEX",
}


def section_type_name(value: int) -> str:
    """Return the spec name of a section type, or "UNKNOWN"."""
    return _SECTION_TYPE_NAMES.get(int(value), "UNKNOWN")


DEPEX_OPCODES = {
    0x0: "BEFORE",
    0x1: "AFTER",
    0x2: "PUSH",
    0x3: "AND",
    0x4: "OR",
    0x5: "NOT",
    0x6: "TRUE",
    0x7: "FALSE",
    0x8: "END",
    0x9: "SOR",
}
DEPEX_NAMES_TO_OPCODES = {name: code for code, name in DEPEX_OPCODES.items()}
_DEPEX_WITH_GUID = frozenset({"BEFORE", "AFTER", "PUSH"})


@dataclass
class SectionGUIDDefined:
    """Type-specific header of an EFI_SECTION_GUID_DEFINED section."""

    guid: GUID = field(default_factory=GUID)
    data_offset: int = 0
    attributes: int = 0
    compression: str = ""

    def __bytes__(self) -> bytes:
        return _GUID_DEFINED.pack(bytes(self.guid), self.data_offset, self.attributes)


@dataclass
class DepExOp:
    """One operation of a dependency expression."""

    opcode: str
    guid: GUID | None = None


def _take(buf: bytes, offset: int, length: int) -> bytes:
    chunk = buf[offset:offset + length]
    if len(chunk) < length:
        raise UEFIError("EOF" if not chunk else "unexpected EOF")
    return chunk


@dataclass
class Section(Firmware):
    """A firmware file section."""

    buf: bytes = b""
    section_type: int = SectionType.ALL
    type: str = ""
    size: bytes = b"\x00\x00\x00"
    extended_size: int = 0
    extract_path: str = ""
    file_order: int = 0
    type_specific: SectionGUIDDefined | None = None
    name: str = ""
    build_number: int = 0
    version: str = ""
    depex: list[DepExOp] = field(default_factory=list)
    encapsulated: list[TypedFirmware] = field(default_factory=list)

    def __str__(self) -> str:
        if self.section_type == SectionType.USER_INTERFACE:
            return self.name
        if self.section_type == SectionType.VERSION:
            return "Version " + self.version
        return ""

    def set_type(self, section_type: int) -> None:
        """Set the section type and its readable name."""
        self.section_type = section_type
        self.type = section_type_name(section_type)

    def apply_children(self, visitor) -> None:
        for typed in self.encapsulated:
            typed.value.apply(visitor)

    def gen_sec_header(self) -> None:
        """Prefix the section data in buf with a complete binary header."""
        header_len = SECTION_MIN_LENGTH
        if self.type_specific is not None:
            header_len += GUID_DEFINED_HEADER_SIZE
        self.extended_size = len(self.buf) + header_len
        large = self.extended_size >= _LARGE_SIZE
        if large:
            header_len += 4
            self.extended_size += 4

        if self.section_type == SectionType.GUID_DEFINED:
            if self.type_specific is None:
                raise UEFIError("GUID defined section has no type specific header")
            self.type_specific.data_offset = header_len
            self.buf = bytes(self.type_specific) + self.buf

        self.size = write3_size(self.extended_size)
        header = self.size + bytes([self.section_type & 0xFF])
        if large:
            header += struct.pack("<I", self.extended_size & 0xFFFFFFFF)
        self.buf = header + self.buf


def create_section(
    section_type: int,
    buf: bytes,
    encapsulated: list[Firmware] | None = None,
    guid: GUID | None = None,
) -> Section:
    """Build a section from its type, data and children; guid is for GUID-defined ones."""
    section = Section(buf=bytes(buf))
    section.set_type(section_type)
    section.encapsulated = [make_typed(child) for child in encapsulated or ()]

    if section_type == SectionType.GUID_DEFINED:
        if guid is None:
            raise UEFIError("guid was nil, can't make guid defined section")
        if guid == LZMA_GUID:
            compression = "LZMA"
        elif guid == LZMAX86_GUID:
            compression = "LZMAX86"
        else:
            compression = "UNKNOWN"
        section.type_specific = SectionGUIDDefined(
            guid=guid,
            attributes=GUIDED_SECTION_PROCESSING_REQUIRED,
            compression=compression,
        )
    return section


def _parse_encapsulated(data: bytes) -> list[TypedFirmware]:
    children = []
    offset = 0
    index = 0
    while offset < len(data):
        try:
            child = parse_section(data[offset:], index)
        except UEFIError as exc:
            raise UEFIError(
                f"error parsing encapsulated section #{index} at offset {offset}: {exc}"
            ) from exc
        if child.extended_size == 0:
            raise UEFIError(
                f"error parsing encapsulated section #{index} at offset {offset}: "
                "section has zero size"
            )
        offset = align4(offset + child.extended_size)
        children.append(make_typed(child))
        index += 1
    return children


def parse_section(buf: bytes, file_order: int = 0) -> Section:
    """Parse one section from the start of buf."""
    buf = bytes(buf)
    head = _take(buf, 0, SECTION_MIN_LENGTH)
    section = Section(file_order=file_order)
    section.size = head[:3]
    section.set_type(head[3])

    header_size = SECTION_MIN_LENGTH
    if section.size == b"\xff\xff\xff":
        (section.extended_size,) = struct.unpack("<I", _take(buf, SECTION_MIN_LENGTH, 4))
        if section.extended_size == 0xFFFFFFFF:
            raise UEFIError(
                "section size and extended size are all FFs! "
                "there should not be free space inside a file"
            )
        header_size = SECTION_EXT_MIN_LENGTH
    else:
        section.extended_size = read3_size(section.size)

    if section.extended_size > len(buf):
        raise UEFIError(
            f"section size mismatch! Section has size {section.extended_size}, "
            f"but buffer is {len(buf)} bytes big"
        )
    section.buf = buf[:section.extended_size]

    kind = section.section_type
    if kind == SectionType.GUID_DEFINED:
        raw_guid, data_offset, attrs = _GUID_DEFINED.unpack(
            _take(buf, header_size, GUID_DEFINED_HEADER_SIZE)
        )
        spec = SectionGUIDDefined(GUID(raw_guid), data_offset, attrs)
        section.type_specific = spec

        encap = b""
        if attrs & GUIDED_SECTION_PROCESSING_REQUIRED:
            compressor = compressor_from_guid(spec.guid)
            if compressor is not None:
                spec.compression = compressor.name
                try:
                    encap = compressor.decode(buf[data_offset:])
                except CompressionError as exc:
                    log.warning("%s", exc)
                    spec.compression = "UNKNOWN"
                    encap = b""
            else:
                spec.compression = "UNKNOWN"
        section.encapsulated = _parse_encapsulated(encap)

    elif kind == SectionType.USER_INTERFACE:
        section.name = ucs2_to_utf8(section.buf[header_size:])

    elif kind == SectionType.VERSION:
        number = section.buf[header_size:header_size + 2]
        if len(number) < 2:
            raise UEFIError("version section too short for a build number")
        (section.build_number,) = struct.unpack("<H", number)
        section.version = ucs2_to_utf8(section.buf[header_size + 2:])

    elif kind == SectionType.FIRMWARE_VOLUME_IMAGE:
        from .volume import parse_firmware_volume

        volume = parse_firmware_volume(section.buf[header_size:], 0, True)
        section.encapsulated = [make_typed(volume)]

    elif kind in (SectionType.DXE_DEPEX, SectionType.PEI_DEPEX, SectionType.MM_DEPEX):
        try:
            section.depex = parse_depex(section.buf[header_size:])
        except UEFIError as exc:
            log.warning("warning: %s", exc)
            section.depex = []

    return section


def parse_depex(data: bytes) -> list[DepExOp]:
    """Decode a dependency expression up to and including END."""
    data = bytes(data)
    ops: list[DepExOp] = []
    pos = 0
    while True:
        if pos >= len(data):
            raise UEFIError("invalid DEPEX, no END")
        code = data[pos]
        pos += 1
        name = DEPEX_OPCODES.get(code)
        if name is None:
            raise UEFIError(f"invalid DEPEX opcode, {code:#x}")
        op = DepExOp(name)
        if name in _DEPEX_WITH_GUID:
            try:
                op.guid = GUID(_take(data, pos, 16))
            except UEFIError as exc:
                raise UEFIError(f"invalid DEPEX, could not read GUID: {exc}") from exc
            pos += 16
        ops.append(op)
        if name == "END":
            return ops