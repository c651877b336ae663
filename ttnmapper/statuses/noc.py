"""Gateway statuses from the legacy network operations centre API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import requests

from ttnmapper.types import MapperGateway, datetime_to_unix_nano, parse_rfc3339

URL = "http://noc.thethingsnetwork.org:8085/api/v2/gateways"
USER_AGENT = "ttnmapper-update-gateway"
NETWORK_ID = "thethingsnetwork.org"


@dataclass
class NocLocation:
    """A location as reported by the NOC."""

    latitude: float = 0.0
    longitude: float = 0.0
    source: str = ""


def _location(data: Mapping[str, Any] | None) -> NocLocation:
    data = data or {}
    return NocLocation(
        latitude=float(data.get("latitude") or 0.0),
        longitude=float(data.get("longitude") or 0.0),
        source=str(data.get("source") or ""),
    )


@dataclass
class NocGateway:
    """One gateway's status entry from the NOC."""

    timestamp: datetime | None = None
    authenticated: bool = False
    uplink: str = ""
    downlink: str = ""
    location: NocLocation = field(default_factory=NocLocation)
    frequency_plan: str = ""
    platform: str = ""
    gps: NocLocation = field(default_factory=NocLocation)
    time: str = ""
    rx_ok: int = 0
    tx_in: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NocGateway:
        return cls(
            timestamp=parse_rfc3339(data.get("timestamp")),
            authenticated=bool(data.get("authenticated") or False),
            uplink=str(data.get("uplink") or ""),
            downlink=str(data.get("downlink") or ""),
            location=_location(data.get("location")),
            frequency_plan=str(data.get("frequency_plan") or ""),
            platform=str(data.get("platform") or ""),
            gps=_location(data.get("gps")),
            time=str(data.get("time") or ""),
            rx_ok=int(data.get("rx_ok") or 0),
            tx_in=int(data.get("tx_in") or 0),
        )


def fetch_noc_statuses(url: str = URL, timeout: float = 60.0) -> dict[str, NocGateway]:
    """Fetch all gateway statuses from the NOC, keyed by gateway id."""
    response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    payload = response.json()
    statuses = payload.get("statuses") or {}
    return {
        gateway_id: NocGateway.from_dict(entry or {})
        for gateway_id, entry in statuses.items()
    }


def noc_gateway_to_mapper_gateway(gateway_id: str, gateway: NocGateway) -> MapperGateway:
    """Convert a NOC status to a gateway status; NOC locations are ignored."""
    last_heard = 0 if gateway.timestamp is None else datetime_to_unix_nano(gateway.timestamp)
    return MapperGateway(
        network_id=NETWORK_ID,
        gateway_id=gateway_id,
        time=last_heard,
        latitude=0.0,
        longitude=0.0,
        altitude=0,
    )