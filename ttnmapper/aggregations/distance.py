"""Distances and bearings between gateways and measurements."""

from __future__ import annotations

import logging

from ttnmapper.database.connection import RecordNotFoundError
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.models import Antenna, Gateway, Packet
from ttnmapper.geo import Point, bearing_between, check_distance
from ttnmapper.types import MapperGateway, UplinkMessage

logger = logging.getLogger(__name__)


class GatewayLocator:
    """Looks up gateway positions in the database to judge measurements."""

    def __init__(self, gateways: GatewayStore) -> None:
        self._gateways = gateways

    def point_for_gateway(self, network_id: str, gateway_id: str) -> Point:
        """The stored position of the gateway.

        Raises RecordNotFoundError if it is unknown, ValueError if it is at 0,0.
        """
        gateway = self._gateways.get_gateway(network_id, gateway_id)
        if gateway.latitude == 0 and gateway.longitude == 0:
            raise ValueError("gateway location unknown")
        return Point(gateway.latitude, gateway.longitude)

    def _distance_to(
        self, network_id: str, gateway_id: str, latitude: float, longitude: float
    ) -> float | None:
        try:
            point = self.point_for_gateway(network_id, gateway_id)
        except (RecordNotFoundError, ValueError) as error:
            logger.warning("%s", error)
            return None
        return point.great_circle_distance(Point(latitude, longitude))

    def check_distance_from_antenna(self, antenna: Antenna, packet: Packet) -> bool:
        """Whether the packet lies within plausible range of the antenna's gateway."""
        km = self._distance_to(
            antenna.network_id, antenna.gateway_id, packet.latitude, packet.longitude
        )
        return km is not None and check_distance(km)

    def check_distance_from_gateway(
        self, gateway: MapperGateway, message: UplinkMessage
    ) -> bool:
        """Whether the message lies within plausible range of the gateway."""
        km = self._distance_to(
            gateway.network_id, gateway.gateway_id, message.latitude, message.longitude
        )
        return km is not None and check_distance(km)

    def distance_live(self, gateway: MapperGateway, message: UplinkMessage) -> float:
        """Kilometres from the stored gateway position to the message; 0 if unknown."""
        km = self._distance_to(
            gateway.network_id, gateway.gateway_id, message.latitude, message.longitude
        )
        return 0.0 if km is None else km


def distance_database(gateway: Gateway, packet: Packet) -> float:
    """Kilometres from a stored gateway to a stored packet."""
    return Point(gateway.latitude, gateway.longitude).great_circle_distance(
        Point(packet.latitude, packet.longitude)
    )


def bearing_database(gateway: Gateway, packet: Packet) -> int:
    """Whole-degree bearing from a stored gateway to a stored packet."""
    return bearing_between(
        Point(gateway.latitude, gateway.longitude), Point(packet.latitude, packet.longitude)
    )


def bearing_live(gateway: MapperGateway, message: UplinkMessage) -> int:
    """Whole-degree bearing from a gateway's reported position to the message."""
    return bearing_between(
        Point(gateway.latitude, gateway.longitude), Point(message.latitude, message.longitude)
    )