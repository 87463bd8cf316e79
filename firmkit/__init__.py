"""Read UEFI firmware images, GUIDs and LZMA-compressed firmware sections."""

__version__ = "0.1.0"