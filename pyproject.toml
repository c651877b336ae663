[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ttnmapper"
version = "0.1.0"
description = "Validate, store and aggregate LoRaWAN coverage measurements and gateway statuses."
requires-python = ">=3.11"
keywords = [
    "lorawan",
    "coverage",
    "gateway",
    "mapping",
    "gis",
    "geojson",
    "postgresql",
    "helium",
    "the things network",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: Scientific/Engineering :: GIS",
]
dependencies = [
    "sqlalchemy>=2.0",
    "requests>=2.28",
    "cachetools>=5.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["ttnmapper"]

[tool.hatch.build.targets.sdist]
include = [
    "ttnmapper",
    "tests",
    "README.md",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
ignore_missing_imports = true
