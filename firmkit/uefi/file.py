"""Firmware files inside a firmware volume: headers, checksums, pad files."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

from ..guid import GUID, parse as parse_guid
from .common import Firmware, UEFIError, align4, attributes, checksum8, read3_size, write3_size
from .section import Section, parse_section

FILE_HEADER_MIN_LENGTH = 0x18
FILE_HEADER_EXT_MIN_LENGTH = 0x20
EMPTY_BODY_CHECKSUM = 0xAA

ZERO_GUID = parse_guid("00000000-0000-0000-0000-000000000000")
FF_GUID = parse_guid("FFFFFFFF-FFFF-FFFF-FFFF-FFFFFFFFFFFF")

_HEADER = struct.Struct("<16sBBBB3sB")
_EXT_SIZE = struct.Struct("<Q")
_LARGE_SIZE = 0xFFFFFF


class FVFileType(enum.IntEnum):
    """UEFI firmware file types."""

    ALL = 0x00
    RAW = 0x01
    FREEFORM = 0x02
    SEC_CORE = 0x03
    PEI_CORE = 0x04
    DXE_CORE = 0x05
    PEIM = 0x06
    DRIVER = 0x07
    COMBINED_PEIM_DRIVER = 0x08
    APPLICATION = 0x09
    SMM = 0x0A
    VOLUME_IMAGE = 0x0B
    COMBINED_SMM_DXE = 0x0C
    SMM_CORE = 0x0D
    SMM_STANDALONE = 0x0E
    SMM_CORE_STANDALONE = 0x0F
    OEM_MIN = 0xC0
    OEM_MAX = 0xDF
    DEBUG_MIN = 0xE0
    DEBUG_MAX = 0xEF
    PAD = 0xF0
    FFS_MAX = 0xFF


FFS_MIN = 0xF0

# File types whose sections are parsed; PEIMs are left opaque on purpose.
SUPPORTED_FILES = frozenset(
    {
        FVFileType.FREEFORM,
        FVFileType.SEC_CORE,
        FVFileType.PEI_CORE,
        FVFileType.DXE_CORE,
        FVFileType.DRIVER,
        FVFileType.COMBINED_PEIM_DRIVER,
        FVFileType.APPLICATION,
        FVFileType.SMM,
        FVFileType.VOLUME_IMAGE,
        FVFileType.COMBINED_SMM_DXE,
        FVFileType.SMM_CORE,
        FVFileType.SMM_STANDALONE,
        FVFileType.SMM_CORE_STANDALONE,
    }
)

_FILE_TYPE_NAMES = {
    FVFileType.RAW: "EFI_FV_FILETYPE_RAW",
    FVFileType.FREEFORM: "EFI_FV_FILETYPE_FREEFORM",
    FVFileType.SEC_CORE: "EFI_FV_FILETYPE_SECURITY_CORE",
    FVFileType.PEI_CORE: "EFI_FV_FILETYPE_PEI_CORE",
    FVFileType.DXE_CORE: "EFI_FV_FILETYPE_DXE_CORE",
    FVFileType.PEIM: "EFI_FV_FILETYPE_PEIM",
    FVFileType.DRIVER: "EFI_FV_FILETYPE_DRIVER",
    FVFileType.COMBINED_PEIM_DRIVER: "EFI_FV_FILETYPE_COMBINED_PEIM_DRIVER",
    FVFileType.APPLICATION: "EFI_FV_FILETYPE_APPLICATION",
    FVFileType.SMM: "EFI_FV_FILETYPE_MM",
    FVFileType.VOLUME_IMAGE: "EFI_FV_FILETYPE_FIRMWARE_VOLUME_IMAGE",
    FVFileType.COMBINED_SMM_DXE: "EFI_FV_FILETYPE_COMBINED_MM_DXE",
    FVFileType.SMM_CORE: "EFI_FV_FILETYPE_MM_CORE",
    FVFileType.SMM_STANDALONE: "EFI_FV_FILETYPE_MM_STANDALONE",
    FVFileType.SMM_CORE_STANDALONE: "EFI_FV_FILETYPE_MM_CORE_STANDALONE",
}

_FILE_ALIGNMENTS = (
    1,
    16,
    128,
    512,
    1024,
    4 * 1024,
    32 * 1024,
    64 * 1024,
    128 * 1024,
    256 * 1024,
    512 * 1024,
    1024 * 1024,
    2 * 1024 * 1024,
    4 * 1024 * 1024,
    8 * 1024 * 1024,
    16 * 1024 * 1024,
)


def file_type_name(value: int) -> str:
    """Return the spec name of a file type number."""
    value = int(value)
    if FVFileType.OEM_MIN <= value <= FVFileType.OEM_MAX:
        return f"EFI_FV_FILETYPE_OEM ({value:#x})"
    if FVFileType.DEBUG_MIN <= value <= FVFileType.DEBUG_MAX:
        return f"EFI_FV_FILETYPE_DEBUG ({value:#x})"
    # Pad files belong to the FFS range but have their own name.
    if FFS_MIN < value <= FVFileType.FFS_MAX:
        return f"EFI_FV_FILETYPE_FFS ({value:#x})"
    if value == FVFileType.PAD:
        return "EFI_FV_FILETYPE_FFS_PAD"
    return _FILE_TYPE_NAMES.get(value, "UNKNOWN")


class FileAttributes(int):
    """The attribute byte of a file header."""

    def is_large(self) -> bool:
        """True if the file uses the extended (large) header."""
        return bool(self & 0x01)

    def alignment(self) -> int:
        """Byte alignment requested by the header."""
        index = ((self & 0x38) >> 3) | ((self & 0x02) << 2)
        return _FILE_ALIGNMENTS[index]

    def has_checksum(self) -> bool:
        """True if the file body is covered by a checksum."""
        return bool(self & 0x40)

    def with_large(self, large: bool) -> FileAttributes:
        """Return a copy with the large-file bit set or cleared."""
        return FileAttributes((self | 0x01) if large else (self & 0xFE))


@dataclass
class FileHeader:
    """An EFI file header; extended_size always holds the full file size."""

    guid: GUID = field(default_factory=GUID)
    header_checksum: int = 0
    file_checksum: int = 0
    type: int = FVFileType.ALL
    attributes: FileAttributes = FileAttributes(0)
    size: bytes = b"\x00\x00\x00"
    state: int = 0
    extended_size: int = 0

    def __post_init__(self) -> None:
        self.attributes = FileAttributes(self.attributes)

    def to_bytes(self, extended: bool = False) -> bytes:
        """Serialise the header, with the 64-bit size field when extended."""
        raw = _HEADER.pack(
            bytes(self.guid),
            self.header_checksum & 0xFF,
            self.file_checksum & 0xFF,
            int(self.type) & 0xFF,
            int(self.attributes) & 0xFF,
            bytes(self.size),
            self.state & 0xFF,
        )
        if extended:
            raw += _EXT_SIZE.pack(self.extended_size)
        return raw


@dataclass
class File(Firmware):
    """An EFI firmware file."""

    header: FileHeader = field(default_factory=FileHeader)
    type: str = ""
    sections: list[Section] = field(default_factory=list)
    buf: bytes = b""
    extract_path: str = ""
    data_offset: int = FILE_HEADER_MIN_LENGTH

    def apply_children(self, visitor) -> None:
        for section in self.sections:
            section.apply(visitor)

    def header_len(self) -> int:
        """Length of the binary header."""
        if self.header.attributes.is_large():
            return FILE_HEADER_EXT_MIN_LENGTH
        return FILE_HEADER_MIN_LENGTH

    def checksum_header(self) -> int:
        """8-bit sum of the header without State and the body checksum."""
        total = checksum8(self.buf[: self.header_len()])
        return (total - self.header.file_checksum - self.header.state) & 0xFF

    def set_size(self, size: int, resize_file: bool) -> None:
        """Store the size, switching to the large header if it does not fit."""
        header = self.header
        header.extended_size = size
        header.attributes = header.attributes.with_large(False)
        if header.extended_size > _LARGE_SIZE:
            if resize_file:
                header.extended_size += FILE_HEADER_EXT_MIN_LENGTH - FILE_HEADER_MIN_LENGTH
            header.attributes = header.attributes.with_large(True)
        header.size = write3_size(header.extended_size)

    def checksum_and_assemble(self, file_data: bytes) -> None:
        """Compute both checksums and build buf from the header and file_data."""
        header = self.header
        file_data = bytes(file_data)
        self.buf = header.to_bytes(extended=True)
        header.header_checksum = (header.header_checksum - self.checksum_header()) & 0xFF

        header.file_checksum = EMPTY_BODY_CHECKSUM
        if header.attributes.has_checksum():
            header.file_checksum = (-checksum8(file_data)) & 0xFF

        self.buf = header.to_bytes(extended=header.attributes.is_large()) + file_data


def create_pad_file(size: int) -> File:
    """Build an empty pad file of the given total size."""
    if size < FILE_HEADER_MIN_LENGTH:
        raise UEFIError(
            f"size too small! min size required is {FILE_HEADER_MIN_LENGTH:#x} bytes, "
            f"requested {size:#x}"
        )
    polarity = attributes.erase_polarity
    if polarity == 0xFF:
        guid = FF_GUID
    elif polarity == 0x00:
        guid = ZERO_GUID
    else:
        raise UEFIError(f"erase polarity not 0x00 or 0xFF, got {polarity:#x}")

    pad = File(header=FileHeader(guid=guid, attributes=FileAttributes(0)))
    pad.set_size(size, False)
    pad.header.type = FVFileType.PAD
    pad.type = file_type_name(FVFileType.PAD)

    body_len = size - pad.header_len()
    pad.header.state = 0x07 ^ polarity
    pad.checksum_and_assemble(bytes([polarity]) * body_len)
    return pad


def _take(buf: bytes, offset: int, length: int) -> bytes:
    chunk = buf[offset:offset + length]
    if len(chunk) < length:
        raise UEFIError("EOF" if not chunk else "unexpected EOF")
    return chunk


def _parse_sections(f: File) -> list[Section]:
    sections = []
    offset = f.data_offset
    end = f.header.extended_size
    index = 0
    while offset < end:
        try:
            section = parse_section(f.buf[offset:], index)
        except UEFIError as exc:
            raise UEFIError(f"error parsing sections of file {f.header.guid}: {exc}") from exc
        if section.extended_size == 0:
            raise UEFIError(
                f"error parsing sections of file {f.header.guid}: section has zero size"
            )
        # Sections are 4-byte aligned, as other firmware tools assume.
        offset = align4(offset + section.extended_size)
        sections.append(section)
        index += 1
    return sections


def parse_file(buf: bytes) -> File | None:
    """Parse one file; None means the volume's free space starts here."""
    buf = bytes(buf)
    raw_guid, hsum, fsum, ftype, attrs, size, state = _HEADER.unpack(
        _take(buf, 0, FILE_HEADER_MIN_LENGTH)
    )
    header = FileHeader(
        guid=GUID(raw_guid),
        header_checksum=hsum,
        file_checksum=fsum,
        type=ftype,
        attributes=FileAttributes(attrs),
        size=size,
        state=state,
    )
    f = File(header=header, type=file_type_name(ftype))

    if size == b"\xff\xff\xff":
        (header.extended_size,) = _EXT_SIZE.unpack(
            _take(buf, FILE_HEADER_MIN_LENGTH, _EXT_SIZE.size)
        )
        if header.extended_size == 0xFFFF_FFFF_FFFF_FFFF:
            return None
        f.data_offset = FILE_HEADER_EXT_MIN_LENGTH
    else:
        header.extended_size = read3_size(size)

    if header.extended_size > len(buf):
        raise UEFIError(
            f"File size too big! File with GUID: {header.guid} has length "
            f"{header.extended_size}, but is only {len(buf)} bytes big"
        )
    f.buf = buf[: header.extended_size]

    if ftype in SUPPORTED_FILES:
        f.sections = _parse_sections(f)
    return f