"""Queries for gateways, their locations and their antennas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from cachetools import TTLCache
from sqlalchemy import and_, delete, func, insert, or_, select, update
from sqlalchemy.orm import Session

from ttnmapper.database.connection import Database, RecordNotFoundError
from ttnmapper.database.models import (
    ZERO_TIME,
    Antenna,
    Base,
    Gateway,
    GatewayBoundingBox,
    GatewayLocation,
    GatewayLocationForce,
    Packet,
)
from ttnmapper.types import MapperGateway

HELIUM_NETWORK_ID = "NS_HELIUM://000024"

_CACHE_TTL_SECONDS = 300.0
_CACHE_SIZE = 100_000
_ONLINE_WINDOW = timedelta(days=5)
_THREE_WORD_NAME = r"^[a-z]*-[a-z]*-[a-z]*$"

_Model = TypeVar("_Model", bound=Base)


def _first_or_create(session: Session, model: type[_Model], **fields: Any) -> _Model:
    """The first row matching all fields, inserted if there is none."""
    query = select(model).filter_by(**fields).order_by(model.id).limit(1)
    found = session.scalars(query).first()
    if found is None:
        found = model(**fields)
        session.add(found)
        session.flush()
    return found


@dataclass
class GatewayWithBoundingBox:
    """A gateway together with the extent of its measured coverage."""

    id: int
    network_id: str
    gateway_id: str
    gateway_eui: str | None
    name: str | None
    last_heard: datetime
    latitude: float
    longitude: float
    altitude: int
    attributes: Any
    north: float = 0.0
    south: float = 0.0
    west: float = 0.0
    east: float = 0.0


class GatewayStore:
    """Gateway, gateway location and antenna queries with short-lived caches."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._gateway_cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=_CACHE_TTL_SECONDS)
        self._online_cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=_CACHE_TTL_SECONDS)
        self._antenna_cache: dict[tuple[str, str, int], Antenna] = {}

    def insert_gateway_locations_batch(self, locations: list[GatewayLocation]) -> None:
        """Insert all locations in one transaction; raises ValueError if there are none."""
        if not locations:
            raise ValueError("nothing to insert")
        rows = [
            {
                "network_id": location.network_id,
                "gateway_id": location.gateway_id,
                "installed_at": location.installed_at,
                "latitude": location.latitude,
                "longitude": location.longitude,
                "altitude": location.altitude,
            }
            for location in locations
        ]
        with self._db.session() as session:
            session.execute(insert(GatewayLocation), rows)

    def get_all_gateways(self) -> list[Gateway]:
        with self._db.session() as session:
            return list(session.scalars(select(Gateway).order_by(Gateway.id.asc())))

    def get_all_gateways_for_network(self, network_id: str) -> list[Gateway]:
        query = select(Gateway).where(Gateway.network_id == network_id).order_by(Gateway.id.asc())
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_gateways_with_id(self, gateway_id: str) -> list[Gateway]:
        query = select(Gateway).where(Gateway.gateway_id == gateway_id).order_by(Gateway.id)
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_gateways_by_name_or_id(self, search: str) -> list[Gateway]:
        """Gateways whose id or name equals the search text."""
        query = (
            select(Gateway)
            .where(or_(Gateway.gateway_id == search, Gateway.name == search))
            .order_by(Gateway.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def get_online_gateways_for_network(self, network_id: str) -> list[GatewayWithBoundingBox]:
        """Gateways heard in the last five days, with their bounding boxes; cached briefly."""
        cached = self._online_cache.get(network_id)
        if cached is not None:
            return list(cached)

        cutoff = datetime.now(timezone.utc) - _ONLINE_WINDOW
        box = GatewayBoundingBox
        query = (
            select(Gateway, box.north, box.south, box.west, box.east)
            .outerjoin(
                box,
                and_(
                    Gateway.gateway_id == box.gateway_id,
                    Gateway.network_id == box.network_id,
                ),
            )
            .where(Gateway.network_id == network_id, Gateway.last_heard > cutoff)
            .order_by(Gateway.id)
        )
        with self._db.session() as session:
            rows = session.execute(query).all()

        gateways = [
            GatewayWithBoundingBox(
                id=gateway.id,
                network_id=gateway.network_id,
                gateway_id=gateway.gateway_id,
                gateway_eui=gateway.gateway_eui,
                name=gateway.name,
                last_heard=gateway.last_heard,
                latitude=gateway.latitude,
                longitude=gateway.longitude,
                altitude=gateway.altitude,
                attributes=gateway.attributes,
                north=north or 0.0,
                south=south or 0.0,
                west=west or 0.0,
                east=east or 0.0,
            )
            for gateway, north, south, west, east in rows
        ]
        self._online_cache[network_id] = tuple(gateways)
        return gateways

    def get_online_gateways_for_network_in_bbox(
        self, network_id: str, west: float, east: float, north: float, south: float
    ) -> list[Gateway]:
        """Online gateways inside the box, leaving out those at 0,0."""
        cutoff = datetime.now(timezone.utc) - _ONLINE_WINDOW
        query = (
            select(Gateway)
            .where(Gateway.network_id == network_id, Gateway.last_heard > cutoff)
            .where(
                Gateway.latitude >= south,
                Gateway.latitude <= north,
                Gateway.longitude >= west,
                Gateway.longitude <= east,
            )
            .where(~and_(Gateway.latitude == 0, Gateway.longitude == 0))
            .order_by(Gateway.id)
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def _find_gateway(self, session: Session, network_id: str, gateway_id: str) -> Gateway | None:
        query = (
            select(Gateway)
            .filter_by(network_id=network_id, gateway_id=gateway_id)
            .order_by(Gateway.id)
            .limit(1)
        )
        return session.scalars(query).first()

    def get_gateway(self, network_id: str, gateway_id: str) -> Gateway:
        """The gateway with this id; raises RecordNotFoundError if there is none."""
        key = (network_id, gateway_id)
        cached = self._gateway_cache.get(key)
        if cached is not None:
            return cached
        with self._db.session() as session:
            found = self._find_gateway(session, network_id, gateway_id)
        if found is None:
            raise RecordNotFoundError(f"gateway {network_id}/{gateway_id} not found")
        self._gateway_cache[key] = found
        return found

    def get_or_create_gateway(self, network_id: str, gateway_id: str) -> Gateway:
        """The gateway with this id, inserted if it does not exist yet."""
        key = (network_id, gateway_id)
        cached = self._gateway_cache.get(key)
        if cached is not None:
            return cached
        with self._db.session() as session:
            gateway = _first_or_create(
                session, Gateway, network_id=network_id, gateway_id=gateway_id
            )
        self._gateway_cache[key] = gateway
        return gateway

    def save_gateway(self, gateway: Gateway) -> None:
        """Insert or update the gateway; its id is set to that of the stored row."""
        with self._db.session() as session:
            merged = session.merge(gateway)
            session.flush()
            gateway.id = merged.id

    def get_gateway_last_moved_time(self, network_id: str, gateway_id: str) -> datetime:
        """When the gateway was last installed somewhere; the zero time if never."""
        query = select(func.max(GatewayLocation.installed_at)).where(
            GatewayLocation.network_id == network_id,
            GatewayLocation.gateway_id == gateway_id,
        )
        with self._db.session() as session:
            moved = session.scalar(query)
        return ZERO_TIME if moved is None else moved

    def get_gateway_last_move(self, network_id: str, gateway_id: str) -> GatewayLocation:
        """The latest location; an unsaved empty one if the gateway has none."""
        query = (
            select(GatewayLocation)
            .filter_by(network_id=network_id, gateway_id=gateway_id)
            .order_by(GatewayLocation.installed_at.desc())
            .limit(1)
        )
        with self._db.session() as session:
            found = session.scalars(query).first()
        if found is None:
            return GatewayLocation(network_id=network_id, gateway_id=gateway_id)
        return found

    def get_all_old_naming_ttn_v2_antennas(self) -> list[Antenna]:
        query = select(Antenna).where(
            or_(
                Antenna.network_id.like("NS_TTN_V2://%"),
                Antenna.network_id.like("NS_TTS_V3://ttnv2@000013"),
            )
        )
        with self._db.session() as session:
            return list(session.scalars(query.order_by(Antenna.id)))

    def find_antenna(self, network_id: str, gateway_id: str, antenna_index: int) -> Antenna:
        """The antenna with this index on the gateway, inserted if missing."""
        key = (network_id, gateway_id, antenna_index)
        cached = self._antenna_cache.get(key)
        if cached is not None:
            return cached
        with self._db.session() as session:
            antenna = _first_or_create(
                session,
                Antenna,
                network_id=network_id,
                gateway_id=gateway_id,
                antenna_index=antenna_index,
            )
        self._antenna_cache[key] = antenna
        return antenna

    def get_antennas_for_gateway(self, network_id: str, gateway_id: str) -> list[Antenna]:
        query = select(Antenna).where(
            Antenna.network_id == network_id, Antenna.gateway_id == gateway_id
        )
        with self._db.session() as session:
            return list(session.scalars(query.order_by(Antenna.id)))

    def get_antennas_for_network(self, network_id: str) -> list[Antenna]:
        query = select(Antenna).where(Antenna.network_id == network_id).order_by(Antenna.id)
        with self._db.session() as session:
            return list(session.scalars(query))

    def update_packets_antenna_id(self, old_antenna_id: int, new_antenna_id: int) -> None:
        """Move all packets of one antenna to another."""
        statement = (
            update(Packet)
            .where(Packet.antenna_id == old_antenna_id)
            .values(antenna_id=new_antenna_id)
        )
        with self._db.session() as session:
            session.execute(statement)

    def get_distinct_gateways_in_locations(self) -> list[tuple[str, str]]:
        """Every (network id, gateway id) pair that has a recorded location."""
        query = (
            select(GatewayLocation.network_id, GatewayLocation.gateway_id)
            .distinct()
            .order_by(GatewayLocation.network_id, GatewayLocation.gateway_id)
        )
        with self._db.session() as session:
            return [(network_id, gateway_id) for network_id, gateway_id in session.execute(query)]

    def get_gateway_locations(self, network_id: str, gateway_id: str) -> list[GatewayLocation]:
        """The gateway's locations, oldest first."""
        query = (
            select(GatewayLocation)
            .where(
                GatewayLocation.network_id == network_id,
                GatewayLocation.gateway_id == gateway_id,
            )
            .order_by(GatewayLocation.installed_at.asc())
        )
        with self._db.session() as session:
            return list(session.scalars(query))

    def delete_gateway_locations(self, network_id: str, gateway_id: str) -> None:
        statement = delete(GatewayLocation).where(
            GatewayLocation.network_id == network_id,
            GatewayLocation.gateway_id == gateway_id,
        )
        with self._db.session() as session:
            session.execute(statement)

    def insert_gateway_locations(self, locations: list[GatewayLocation]) -> None:
        """Insert the locations; each gets its new id."""
        with self._db.session() as session:
            session.add_all(locations)
            session.flush()

    def insert_new_gateway_location(
        self, gateway: MapperGateway, installed_at: datetime
    ) -> GatewayLocation:
        """Record the gateway's current location as installed at the given time."""
        location = GatewayLocation(
            network_id=gateway.network_id,
            gateway_id=gateway.gateway_id,
            installed_at=installed_at,
            latitude=gateway.latitude,
            longitude=gateway.longitude,
            altitude=gateway.altitude,
        )
        with self._db.session() as session:
            session.add(location)
            session.flush()
        return location

    def gateway_coordinates_forced(
        self, gateway: MapperGateway
    ) -> tuple[bool, GatewayLocationForce]:
        """Whether the gateway's location is overridden, and the override."""
        query = (
            select(GatewayLocationForce)
            .filter_by(network_id=gateway.network_id, gateway_id=gateway.gateway_id)
            .order_by(GatewayLocationForce.id)
            .limit(1)
        )
        with self._db.session() as session:
            found = session.scalars(query).first()
        if found is None:
            return False, GatewayLocationForce(
                network_id=gateway.network_id, gateway_id=gateway.gateway_id
            )
        return True, found

    def get_old_mapped_helium_antennas(self) -> list[Antenna]:
        """Helium antennas still keyed by the hotspot's three-word name."""
        query = select(Antenna).where(
            Antenna.network_id == HELIUM_NETWORK_ID,
            Antenna.gateway_id.regexp_match(_THREE_WORD_NAME),
        )
        with self._db.session() as session:
            return list(session.scalars(query.order_by(Antenna.id)))

    def get_new_helium_antenna_for_old_antenna(self, old_antenna: Antenna) -> Antenna:
        """The antenna keyed by the hotspot address whose name is the old antenna's id.

        Raises RecordNotFoundError if no hotspot carries that name.
        """
        query = (
            select(Gateway)
            .where(Gateway.network_id == HELIUM_NETWORK_ID, Gateway.name == old_antenna.gateway_id)
            .order_by(Gateway.id)
            .limit(1)
        )
        with self._db.session() as session:
            gateway = session.scalars(query).first()
            if gateway is None:
                raise RecordNotFoundError(
                    f"no hotspot named {old_antenna.gateway_id!r} in {HELIUM_NETWORK_ID}"
                )
            return _first_or_create(
                session,
                Antenna,
                network_id=old_antenna.network_id,
                gateway_id=gateway.gateway_id,
                antenna_index=old_antenna.antenna_index,
            )