"""The 4-byte flash parameters word of an Intel flash descriptor."""

from __future__ import annotations

from dataclasses import dataclass

from .common import UEFIError

FLASH_PARAMS_SIZE = 4


class FlashFrequency(int):
    """A flash clock frequency code."""

    def __str__(self) -> str:
        return FLASH_FREQUENCY_NAMES.get(int(self), str(int(self)))

    def __repr__(self) -> str:
        return f"FlashFrequency({int(self)})"


FREQ_20MHZ = FlashFrequency(0)
FREQ_33MHZ = FlashFrequency(1)
FREQ_48MHZ = FlashFrequency(2)
FREQ_50MHZ_30MHZ = FlashFrequency(4)
FREQ_17MHZ = FlashFrequency(6)

FLASH_FREQUENCY_NAMES = {
    0: "20MHz",
    1: "33MHz",
    2: "48MHz",
    4: "50Mhz30MHz",
    6: "17MHz",
}


@dataclass(frozen=True)
class FlashParams:
    """Flash parameters decoded from four raw bytes."""

    raw: bytes = bytes(FLASH_PARAMS_SIZE)

    @classmethod
    def parse(cls, buf: bytes) -> FlashParams:
        """Build the parameters from exactly four bytes."""
        if len(buf) != FLASH_PARAMS_SIZE:
            raise UEFIError(
                f"Invalid image size: expected {FLASH_PARAMS_SIZE} bytes, got {len(buf)}"
            )
        return cls(bytes(buf))

    def first_chip_density(self) -> int:
        """Size code of the first chip."""
        return self.raw[0] & 0x0F

    def second_chip_density(self) -> int:
        """Size code of the second chip."""
        return (self.raw[0] >> 4) & 0x0F

    def read_clock_frequency(self) -> FlashFrequency:
        """Frequency used for normal reads."""
        return FlashFrequency((self.raw[2] >> 1) & 0x07)

    def fast_read_enabled(self) -> int:
        """1 if fast read is enabled, else 0."""
        return (self.raw[2] >> 4) & 0x01

    def fast_read_frequency(self) -> FlashFrequency:
        """Frequency used for fast reads."""
        return FlashFrequency((self.raw[2] >> 5) & 0x07)

    def flash_write_frequency(self) -> FlashFrequency:
        """Frequency used for writes."""
        return FlashFrequency(self.raw[3] & 0x07)

    def flash_read_status_frequency(self) -> FlashFrequency:
        """Frequency used for reading the status register."""
        return FlashFrequency((self.raw[3] >> 3) & 0x07)

    def dual_output_fast_read_supported(self) -> int:
        """1 if dual output fast read is supported, else 0."""
        return self.raw[3] >> 7

    def __str__(self) -> str:
        return "FlashParams{...}"