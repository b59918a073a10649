[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ostreext"
version = "0.1.0"
description = "Build-side helpers for bootable OSTree container images: root filesystem commit preparation, kernel discovery and layer packing"
requires-python = ">=3.10"
dependencies = []
keywords = ["ostree", "container", "oci", "layers", "chunking", "bootable"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ostree-ext = "ostreext.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["ostreext"]

[tool.hatch.build.targets.sdist]
include = ["ostreext", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
