"""Mixed-endian GUIDs as laid out in UEFI firmware images."""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass

SIZE = 16
UEXAMPLE = "01234567-89AB-CDEF-0123-456789ABCDEF"

_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]*")


class GUIDError(ValueError):
    """Raised when a GUID cannot be parsed or decoded."""


def _format_error(kind: str, text: str) -> GUIDError:
    return GUIDError(
        f"guid string {kind}, need string of the format \n{UEXAMPLE}\n, got \n{text}"
    )


@dataclass(frozen=True)
class GUID:
    """A 16-byte GUID stored in its on-disk (mixed-endian) byte order."""

    data: bytes = bytes(SIZE)

    def __post_init__(self) -> None:
        raw = bytes(self.data)
        if len(raw) != SIZE:
            raise GUIDError(f"a GUID is {SIZE} bytes long, got {len(raw)}")
        object.__setattr__(self, "data", raw)

    def __bytes__(self) -> bytes:
        return self.data

    def __str__(self) -> str:
        return str(uuid.UUID(bytes_le=self.data)).upper()

    def __repr__(self) -> str:
        return f"GUID('{self}')"

    def to_json(self) -> str:
        """Return the JSON object form used in image dumps."""
        return '{"GUID" : "' + str(self) + '"}'

    @classmethod
    def from_json(cls, text: str | bytes) -> GUID:
        """Build a GUID from its JSON object form."""
        try:
            obj = json.loads(text)
        except ValueError as exc:
            raise GUIDError(str(exc)) from exc
        if obj is None:
            obj = {}
        if not isinstance(obj, dict) or not all(
            isinstance(value, str) for value in obj.values()
        ):
            raise GUIDError("json: cannot unmarshal GUID object")
        return parse(obj.get("GUID", ""))


def parse(text: str) -> GUID:
    """Parse a textual GUID, with or without hyphens."""
    stripped = text.replace("-", "")
    if len(stripped) % 2 or not _HEX_DIGITS.fullmatch(stripped):
        raise _format_error("not correct", text)
    decoded = bytes.fromhex(stripped)
    if len(decoded) != SIZE:
        raise _format_error("has incorrect length", text)
    return GUID(uuid.UUID(bytes=decoded).bytes_le)