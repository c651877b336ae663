"""Gateway statuses from the public website's gateway list."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests

from ttnmapper.types import MapperGateway, datetime_to_unix_nano, parse_rfc3339

URL = "https://www.thethingsnetwork.org/gateway-data/"
USER_AGENT = "ttnmapper-update-gateway"

_NETWORK_IDS = {
    "ttnv2": "thethingsnetwork.org",
    "ttn": "NS_TTS_V3://ttn@000013",
}

_HEX_EUI = re.compile(r"[0-9A-Fa-f]{16}")

logger = logging.getLogger(__name__)


@dataclass
class WebLocation:
    """A gateway location as listed on the website."""

    latitude: float = 0.0
    longitude: float = 0.0
    altitude: int = 0


@dataclass
class WebGateway:
    """One gateway entry from the website's gateway list."""

    id: str = ""
    network: str = ""
    name: str = ""
    description: str = ""
    owner: str = ""
    owners: list[str] = field(default_factory=list)
    location: WebLocation = field(default_factory=WebLocation)
    country_code: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    online: bool = False
    last_seen: datetime | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WebGateway:
        location = data.get("location") or {}
        return cls(
            id=str(data.get("id") or ""),
            network=str(data.get("network") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            owner=str(data.get("owner") or ""),
            owners=list(data.get("owners") or []),
            location=WebLocation(
                latitude=float(location.get("latitude") or 0.0),
                longitude=float(location.get("longitude") or 0.0),
                altitude=int(location.get("altitude") or 0),
            ),
            country_code=str(data.get("country_code") or ""),
            attributes=dict(data.get("attributes") or {}),
            online=bool(data.get("online") or False),
            last_seen=parse_rfc3339(data.get("last_seen")),
        )


def fetch_web_statuses(url: str = URL, timeout: float = 60.0) -> dict[str, WebGateway | None]:
    """Fetch the website's gateway list, keyed by gateway id."""
    logger.info("Fetching web statuses")
    response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    payload = response.json()
    return {
        key: None if entry is None else WebGateway.from_dict(entry)
        for key, entry in payload.items()
    }


def _guess_eui(gateway_id: str) -> str:
    eui = ""
    if len(gateway_id) == 20 and gateway_id.startswith("eui-"):
        eui = gateway_id.removeprefix("eui-").upper()
    if _HEX_EUI.fullmatch(gateway_id):
        eui = gateway_id.upper()
    return eui


def web_gateway_to_mapper_gateway(
    gateway: WebGateway, now: datetime | None = None
) -> MapperGateway:
    """Convert a website entry to a gateway status.

    Entries with a last-seen time use it; otherwise online entries are heard at `now`.
    """
    network_id = _NETWORK_IDS.get(gateway.network, "")
    if not network_id:
        logger.warning("Unknown network %s", gateway.network)

    if gateway.last_seen is not None:
        last_heard = datetime_to_unix_nano(gateway.last_seen)
    elif gateway.online:
        last_heard = datetime_to_unix_nano(now or datetime.now(timezone.utc))
    else:
        last_heard = 0

    attributes: dict[str, Any] = {}
    if gateway.description:
        attributes["description"] = gateway.description

    return MapperGateway(
        network_id=network_id,
        gateway_id=gateway.id,
        gateway_eui=_guess_eui(gateway.id),
        time=last_heard,
        latitude=gateway.location.latitude,
        longitude=gateway.location.longitude,
        altitude=gateway.location.altitude,
        name=gateway.name,
        attributes=attributes,
    )