"""Validation and clean-up of uplink measurements."""

from __future__ import annotations

import base64
import dataclasses
import json
import math
from datetime import datetime
from typing import Any

from ttnmapper.types import UplinkMessage

_ALTITUDE_WRAP = 2.0**16
_ALTITUDE_WRAP_WINDOW = 1000.0


class InvalidDataError(ValueError):
    """A measurement is not accurate or complete enough to be stored."""


def _near_null_island(latitude: float, longitude: float) -> bool:
    return -1 < longitude < 1 and -1 < latitude < 1


def check_data(message: UplinkMessage) -> None:
    """Raise InvalidDataError if the message's location data is unusable."""
    if message.satellites != 0 and message.satellites < 4:
        raise InvalidDataError("less than 4 satellites")

    if message.accuracy_meters != 0 and message.accuracy_meters > 10:
        raise InvalidDataError("accuracy too low")

    if message.hdop != 0 and message.hdop > 5:
        raise InvalidDataError("hdop is too high")

    if message.latitude == 0:
        raise InvalidDataError("latitude not set")
    if message.latitude >= 90 or message.latitude <= -90:
        raise InvalidDataError("latitude out of range")

    if message.longitude == 0:
        raise InvalidDataError("longitude not set")
    if message.longitude >= 180 or message.longitude <= -180:
        raise InvalidDataError("longitude out of range")

    if _near_null_island(message.latitude, message.longitude):
        raise InvalidDataError("not accepting coordinates on null island")


def sanitize_data(message: UplinkMessage) -> UplinkMessage:
    """Return a copy with wrapped altitudes and impossible coordinates fixed."""
    altitude = message.altitude
    latitude = message.latitude
    longitude = message.longitude

    # A small range just below 2^16 is a wrapped negative altitude.
    if _ALTITUDE_WRAP - _ALTITUDE_WRAP_WINDOW < altitude < _ALTITUDE_WRAP:
        altitude -= _ALTITUDE_WRAP

    if _near_null_island(latitude, longitude):
        latitude = 0.0
        longitude = 0.0

    if latitude >= 90 or latitude <= -90:
        latitude = 0.0

    if longitude >= 180 or longitude <= -180:
        longitude = 0.0

    return dataclasses.replace(
        message, altitude=altitude, latitude=latitude, longitude=longitude
    )


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def sanitize_frequency(frequency: float) -> int:
    """Normalise a frequency given in MHz, Hz or µHz to Hz, rounded to kHz."""
    if frequency == 9.999:
        return 0

    if frequency < 1000.0:
        frequency *= 1_000_000

    if frequency > 1_000_000_000:
        frequency /= 1_000_000

    return int(_round_half_away(frequency / 1000) * 1000)


def validate_chirp_network_address(address: str) -> None:
    """Raise InvalidDataError if the network address is empty."""
    if address == "":
        raise InvalidDataError("network address is empty")


def cap_float_to(value: float, digits: int, decimals: int) -> float:
    """Clamp value to what fits a numeric(digits, decimals) column."""
    max_value = (10.0**digits - 1) / 10.0**decimals
    return max(min(value, max_value), -max_value)


def _jsonable(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"cannot serialise {type(value).__name__}")


def pretty_print(value: Any) -> str:
    """Render value as tab-indented JSON; an empty string if it cannot be serialised."""
    try:
        return json.dumps(value, indent="\t", default=_jsonable)
    except (TypeError, ValueError):
        return ""