"""Uplink, gateway and gateway-move messages as exchanged over the queues."""

from __future__ import annotations

import base64
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

NS_TTN_V2 = "NS_TTN_V2"
NS_TTS_V3 = "NS_TTS_V3"
NS_CHIRP = "NS_CHIRP"
NS_HELIUM = "NS_HELIUM"
NS_UNKNOWN = "NS"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_NANOS_PER_SECOND = 1_000_000_000

_RFC3339 = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<clock>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?(?P<zone>[Zz]|[+-]\d{2}:\d{2})"
)


def unix_nano_to_datetime(nanos: int) -> datetime:
    """Convert nanoseconds since the Unix epoch to an aware UTC datetime."""
    return EPOCH + timedelta(microseconds=nanos // 1000)


def datetime_to_unix_nano(value: datetime) -> int:
    """Convert a datetime to nanoseconds since the Unix epoch; naive values are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds * _NANOS_PER_SECOND + delta.microseconds * 1000


def parse_rfc3339(text: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Empty or missing values give None. Sub-microsecond digits are dropped.
    """
    if text is None or text == "":
        return None
    match = _RFC3339.fullmatch(text.strip())
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    zone = match["zone"]
    if zone in ("Z", "z"):
        zone = "+00:00"
    parsed = datetime.fromisoformat(f"{match['date']}T{match['clock']}.{fraction}{zone}")
    return parsed.astimezone(timezone.utc)


_Field = tuple[str, str, Callable[[Any], Any]]


def _load(fields: tuple[_Field, ...], data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        attr: convert(data[key])
        for attr, key, convert in fields
        if data.get(key) is not None
    }


def _dump(obj: Any, fields: tuple[_Field, ...], always: frozenset[str]) -> dict[str, Any]:
    result = {}
    for attr, key, _ in fields:
        value = getattr(obj, attr)
        if key in always or value:
            result[key] = value
    return result


_GATEWAY_FIELDS: tuple[_Field, ...] = (
    ("network_id", "network_id", str),
    ("gateway_id", "gtw_id", str),
    ("gateway_eui", "gtw_eui", str),
    ("antenna_index", "antenna_index", int),
    ("time", "time", int),
    ("timestamp", "timestamp", int),
    ("fine_timestamp", "fine_timestamp", int),
    ("fine_timestamp_encrypted_key_id", "encrypted_fine_timestamp_key_id", str),
    ("channel_index", "channel", int),
    ("rssi", "rssi", float),
    ("signal_rssi", "signal_rssi", float),
    ("snr", "snr", float),
    ("latitude", "latitude", float),
    ("longitude", "longitude", float),
    ("altitude", "altitude", int),
    ("location_accuracy", "location_accuracy", int),
    ("location_source", "location_source", str),
    ("name", "name", str),
)


@dataclass
class MapperGateway:
    """A gateway that heard an uplink, or a gateway status report."""

    network_id: str = ""
    gateway_id: str = ""
    gateway_eui: str = ""
    antenna_index: int = 0
    time: int = 0
    timestamp: int = 0
    fine_timestamp: int = 0
    fine_timestamp_encrypted: bytes = b""
    fine_timestamp_encrypted_key_id: str = ""
    channel_index: int = 0
    rssi: float = 0.0
    signal_rssi: float = 0.0
    snr: float = 0.0
    latitude: float = 0.0
    longitude: float = 0.0
    altitude: int = 0
    location_accuracy: int = 0
    location_source: str = ""
    name: str = ""
    attributes: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MapperGateway:
        kwargs = _load(_GATEWAY_FIELDS, data)
        encrypted = data.get("fine_timestamp_encrypted")
        if encrypted:
            kwargs["fine_timestamp_encrypted"] = base64.b64decode(encrypted)
        attributes = data.get("attributes")
        if attributes is not None:
            kwargs["attributes"] = dict(attributes)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = _dump(self, _GATEWAY_FIELDS, frozenset({"gtw_id", "antenna_index"}))
        if self.fine_timestamp_encrypted:
            result["fine_timestamp_encrypted"] = base64.b64encode(
                self.fine_timestamp_encrypted
            ).decode("ascii")
        result["attributes"] = None if self.attributes is None else dict(self.attributes)
        return result


_UPLINK_FIELDS: tuple[_Field, ...] = (
    ("network_id", "network_id", str),
    ("app_id", "app_id", str),
    ("dev_id", "dev_id", str),
    ("dev_eui", "dev_eui", str),
    ("time", "time", int),
    ("f_port", "port", int),
    ("f_cnt", "counter", int),
    ("frequency", "frequency", int),
    ("modulation", "modulation", str),
    ("bandwidth", "bandwidth", int),
    ("spreading_factor", "spreading_factor", int),
    ("bitrate", "bit_rate", int),
    ("coding_rate", "coding_rate", str),
    ("latitude", "latitude", float),
    ("longitude", "longitude", float),
    ("altitude", "altitude", float),
    ("accuracy_meters", "accuracy_meters", float),
    ("satellites", "satellites", int),
    ("hdop", "hdop", float),
    ("accuracy_source", "accuracy_source", str),
    ("experiment", "experiment", str),
    ("user_id", "userid", str),
    ("user_agent", "useragent", str),
)


@dataclass
class UplinkMessage:
    """A device uplink with its measured location and the gateways that heard it."""

    network_id: str = ""
    app_id: str = ""
    dev_id: str = ""
    dev_eui: str = ""
    time: int = 0
    f_port: int = 0
    f_cnt: int = 0
    frequency: int = 0
    modulation: str = ""
    bandwidth: int = 0
    spreading_factor: int = 0
    bitrate: int = 0
    coding_rate: str = ""
    gateways: list[MapperGateway] = field(default_factory=list)
    latitude: float = 0.0
    longitude: float = 0.0
    altitude: float = 0.0
    accuracy_meters: float = 0.0
    satellites: int = 0
    hdop: float = 0.0
    accuracy_source: str = ""
    experiment: str = ""
    user_id: str = ""
    user_agent: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UplinkMessage:
        kwargs = _load(_UPLINK_FIELDS, data)
        kwargs["gateways"] = [
            MapperGateway.from_dict(gateway) for gateway in data.get("gateways") or []
        ]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = _dump(self, _UPLINK_FIELDS, frozenset({"app_id", "dev_id"}))
        result["gateways"] = [gateway.to_dict() for gateway in self.gateways]
        return result


_MOVED_FIELDS: tuple[_Field, ...] = (
    ("network_id", "network_id", str),
    ("gateway_id", "gtw_id", str),
    ("time", "time", int),
    ("latitude_old", "latitude_old", float),
    ("longitude_old", "longitude_old", float),
    ("altitude_old", "altitude_old", int),
    ("latitude_new", "latitude_new", float),
    ("longitude_new", "longitude_new", float),
    ("altitude_new", "altitude_new", int),
)


@dataclass
class GatewayMoved:
    """Notification that a gateway changed location."""

    network_id: str = ""
    gateway_id: str = ""
    time: int = 0
    latitude_old: float = 0.0
    longitude_old: float = 0.0
    altitude_old: int = 0
    latitude_new: float = 0.0
    longitude_new: float = 0.0
    altitude_new: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GatewayMoved:
        return cls(**_load(_MOVED_FIELDS, data))

    def to_dict(self) -> dict[str, Any]:
        return _dump(self, _MOVED_FIELDS, frozenset({"gtw_id"}))