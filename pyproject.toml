[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ccslink"
version = "0.1.0"
description = "Vehicle-side CCS charging link: HomePlug SLAC, SDP over IPv6, connection supervision and charge-port hardware model."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "ccs",
    "ev-charging",
    "homeplug",
    "slac",
    "sdp",
    "ipv6",
    "v2g",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ccslink"]

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
check_untyped_defs = true
