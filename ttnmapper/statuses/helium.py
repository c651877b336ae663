"""Hotspot statuses from the Helium API and from daily network snapshots."""

from __future__ import annotations

import bz2
import gzip
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import requests

from ttnmapper.types import MapperGateway, datetime_to_unix_nano, parse_rfc3339

NETWORK_ID = "NS_HELIUM://000024"
API_URL = "https://api.helium.io/v1/hotspots"
SNAPSHOT_BASE_URL = "https://snapshots.helium.wtf/mainnet/hotspots/network/"
DISK91_URL = "http://etl-api.disk91.com/share/coveragemap.json.bz2"
USER_AGENT = "ttnmapper-update-gateway"

logger = logging.getLogger(__name__)


@dataclass
class HotspotStatus:
    """Online state of a hotspot as reported by the API."""

    timestamp: datetime | None = None
    online: str = ""
    listen_addrs: Any = None
    height: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HotspotStatus:
        data = data or {}
        return cls(
            timestamp=parse_rfc3339(data.get("timestamp")),
            online=str(data.get("online") or ""),
            listen_addrs=data.get("listen_addrs"),
            height=data.get("height"),
        )


@dataclass
class Hotspot:
    """One hotspot entry from the API."""

    longitude: float = 0.0
    latitude: float = 0.0
    timestamp_added: datetime | None = None
    status: HotspotStatus = field(default_factory=HotspotStatus)
    reward_scale: Any = None
    payer: str = ""
    owner: str = ""
    nonce: int = 0
    name: str = ""
    mode: str = ""
    location_hex: str = ""
    location: str = ""
    last_poc_challenge: Any = None
    last_change_block: int = 0
    geocode: Any = None
    gain: int = 0
    elevation: int = 0
    block_added: int = 0
    block: int = 0
    address: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Hotspot:
        return cls(
            longitude=float(data.get("lng") or 0.0),
            latitude=float(data.get("lat") or 0.0),
            timestamp_added=parse_rfc3339(data.get("timestamp_added")),
            status=HotspotStatus.from_dict(data.get("status")),
            reward_scale=data.get("reward_scale"),
            payer=str(data.get("payer") or ""),
            owner=str(data.get("owner") or ""),
            nonce=int(data.get("nonce") or 0),
            name=str(data.get("name") or ""),
            mode=str(data.get("mode") or ""),
            location_hex=str(data.get("location_hex") or ""),
            location=str(data.get("location") or ""),
            last_poc_challenge=data.get("last_poc_challenge"),
            last_change_block=int(data.get("last_change_block") or 0),
            geocode=data.get("geocode"),
            gain=int(data.get("gain") or 0),
            elevation=int(data.get("elevation") or 0),
            block_added=int(data.get("block_added") or 0),
            block=int(data.get("block") or 0),
            address=str(data.get("address") or ""),
        )


@dataclass
class HotspotApiResponse:
    """A page of hotspots and the cursor of the next page."""

    data: list[Hotspot] = field(default_factory=list)
    cursor: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HotspotApiResponse:
        return cls(
            data=[Hotspot.from_dict(entry) for entry in data.get("data") or []],
            cursor=str(data.get("cursor") or ""),
        )


@dataclass
class HotspotSnapshot:
    """One hotspot entry from a daily network snapshot."""

    address: str = ""
    mode: str = ""
    owner: str = ""
    location: str = ""
    name: str = ""
    online: str = ""
    latitude: float = 0.0
    longitude: float = 0.0
    short_street: str = ""
    short_city: str = ""
    short_state: str = ""
    short_country: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HotspotSnapshot:
        return cls(
            address=str(data.get("address") or ""),
            mode=str(data.get("mode") or ""),
            owner=str(data.get("owner") or ""),
            location=str(data.get("location") or ""),
            name=str(data.get("name") or ""),
            online=str(data.get("online") or ""),
            latitude=float(data.get("lat") or 0.0),
            longitude=float(data.get("lng") or 0.0),
            short_street=str(data.get("short_street") or ""),
            short_city=str(data.get("short_city") or ""),
            short_state=str(data.get("short_state") or ""),
            short_country=str(data.get("short_country") or ""),
        )


@dataclass
class Disk91Position:
    """Position block of a coverage-map snapshot entry."""

    last_date_position: int = 0
    lat: float = 0.0
    lng: float = 0.0
    country: str = ""
    city: str = ""
    alt: float = 0.0
    gain: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Disk91Position:
        data = data or {}
        return cls(
            last_date_position=int(data.get("lastDatePosition") or 0),
            lat=float(data.get("lat") or 0.0),
            lng=float(data.get("lng") or 0.0),
            country=str(data.get("country") or ""),
            city=str(data.get("city") or ""),
            alt=float(data.get("alt") or 0.0),
            gain=float(data.get("gain") or 0.0),
        )


@dataclass
class Disk91Snapshot:
    """One hotspot entry from the coverage-map snapshot."""

    hotspot_id: str = ""
    animal_name: str = ""
    position: Disk91Position = field(default_factory=Disk91Position)
    last_seen: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Disk91Snapshot:
        return cls(
            hotspot_id=str(data.get("hotspotId") or ""),
            animal_name=str(data.get("animalName") or ""),
            position=Disk91Position.from_dict(data.get("position")),
            last_seen=int(data.get("lastSeen") or 0),
        )


def fetch_statuses(cursor: str = "", timeout: float = 60.0) -> HotspotApiResponse:
    """Fetch one page of hotspots, starting at cursor if given."""
    params = {"cursor": cursor} if cursor else None
    response = requests.get(
        API_URL, params=params, headers={"User-Agent": USER_AGENT}, timeout=timeout
    )
    logger.info("Fetching %s", response.url)
    try:
        payload = response.json()
    except ValueError:
        logger.error("%s", response.text)
        raise
    return HotspotApiResponse.from_dict(payload)


def helium_hotspot_to_mapper_gateway(
    hotspot: Hotspot, now: datetime | None = None
) -> MapperGateway:
    """Convert an API hotspot to a gateway status.

    A last-heard time in the future is replaced by `now`; offline hotspots get none.
    """
    now = now or datetime.now(timezone.utc)
    heard = hotspot.status.timestamp
    last_heard = 0 if heard is None else datetime_to_unix_nano(heard)
    if heard is not None and heard > now:
        last_heard = datetime_to_unix_nano(now)
    if hotspot.status.online != "online":
        last_heard = 0

    added = hotspot.timestamp_added
    return MapperGateway(
        network_id=NETWORK_ID,
        gateway_id=hotspot.address,
        name=hotspot.name,
        time=last_heard,
        latitude=hotspot.latitude,
        longitude=hotspot.longitude,
        altitude=hotspot.elevation,
        attributes={
            "mode": hotspot.mode,
            "timestamp_added": 0 if added is None else datetime_to_unix_nano(added),
            "gain": hotspot.gain,
        },
    )


def snapshot_url(day: date) -> str:
    """URL of the network snapshot published on the given day."""
    return f"{SNAPSHOT_BASE_URL}{day:%Y-%m-%d}.json.gz"


def parse_snapshot(data: bytes) -> list[HotspotSnapshot]:
    """Parse a gzip-compressed JSON array of snapshot hotspots."""
    entries = json.loads(gzip.decompress(data))
    return [HotspotSnapshot.from_dict(entry) for entry in entries]


def fetch_snapshot(day: date | None = None) -> tuple[datetime, list[HotspotSnapshot]]:
    """Fetch a day's snapshot; returns its Last-Modified time and the hotspots."""
    url = snapshot_url(day or datetime.now().date())
    logger.info("Fetching Helium Snapshot %s", url)
    response = requests.get(url)

    header = response.headers.get("Last-Modified")
    if not header:
        raise ValueError("snapshot response has no Last-Modified header")
    try:
        last_modified = parsedate_to_datetime(header)
    except (TypeError, ValueError) as error:
        raise ValueError(f"invalid Last-Modified header {header!r}") from error
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)

    return last_modified, parse_snapshot(response.content)


def hotspot_snapshot_to_mapper_gateway(
    snapshot_time: datetime, hotspot: HotspotSnapshot
) -> MapperGateway:
    """Convert a snapshot hotspot; online hotspots were heard at snapshot_time."""
    last_heard = datetime_to_unix_nano(snapshot_time) if hotspot.online == "online" else 0
    return MapperGateway(
        network_id=NETWORK_ID,
        gateway_id=hotspot.address,
        name=hotspot.name,
        time=last_heard,
        latitude=hotspot.latitude,
        longitude=hotspot.longitude,
        attributes={"mode": hotspot.mode},
    )


def parse_disk91_lines(lines: Iterable[str | bytes]) -> list[Disk91Snapshot]:
    """Parse newline-delimited JSON entries, stopping at the first unreadable line."""
    snapshots = []
    for line in lines:
        try:
            entry = json.loads(line)
        except ValueError as error:
            logger.warning("%s", error)
            break
        if not isinstance(entry, dict):
            logger.warning("unexpected entry %r", entry)
            break
        snapshots.append(Disk91Snapshot.from_dict(entry))
    logger.info("parsed done")
    return snapshots


def fetch_disk91_snapshot(url: str = DISK91_URL) -> list[Disk91Snapshot]:
    """Fetch and parse the bzip2-compressed coverage-map snapshot."""
    logger.info("Fetching Disk91 Snapshot %s", url)
    response = requests.get(url)
    text = bz2.decompress(response.content)
    return parse_disk91_lines(text.splitlines())


def disk91_snapshot_to_mapper_gateway(hotspot: Disk91Snapshot) -> MapperGateway:
    """Convert a coverage-map entry; its last-seen time is in milliseconds."""
    return MapperGateway(
        network_id=NETWORK_ID,
        gateway_id=hotspot.hotspot_id,
        name=hotspot.animal_name,
        time=hotspot.last_seen * 1_000_000,
        latitude=hotspot.position.lat,
        longitude=hotspot.position.lng,
        altitude=int(hotspot.position.alt),
        attributes={"gain": hotspot.position.gain},
    )