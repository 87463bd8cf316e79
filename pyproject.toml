[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "firmkit"
version = "0.1.0"
description = "Parse UEFI firmware images and Intel flash descriptors, and encode or decode EDK2-style LZMA sections"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "uefi",
    "firmware",
    "bios",
    "flash descriptor",
    "firmware volume",
    "lzma",
    "edk2",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Boot",
    "Topic :: System :: Archiving :: Compression",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
glzma = "firmkit.glzma:main"

[tool.hatch.build.targets.wheel]
packages = ["firmkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
