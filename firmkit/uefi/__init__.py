"""Data types and parsers for flash images, firmware volumes, files and sections."""