"""Aggregation of packets into per-antenna signal histograms on map tiles."""

from __future__ import annotations

import logging
from datetime import datetime

from ttnmapper.aggregations.distance import GatewayLocator
from ttnmapper.database.aggregates import AggregateStore
from ttnmapper.database.connection import RecordNotFoundError
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.models import Antenna, GridCell, GridCellKey
from ttnmapper.database.packets import PacketStore
from ttnmapper.geo import GRID_ZOOM, tile_for_lat_lng
from ttnmapper.types import GatewayMoved, UplinkMessage, unix_nano_to_datetime

logger = logging.getLogger(__name__)

# Web Mercator only covers about 85.0511 degrees either side of the equator.
_MAX_LATITUDE = 85

_BUCKETS = (
    (-95, "bucket_high"),
    (-100, "bucket_100"),
    (-105, "bucket_105"),
    (-110, "bucket_110"),
    (-115, "bucket_115"),
    (-120, "bucket_120"),
    (-125, "bucket_125"),
    (-130, "bucket_130"),
    (-135, "bucket_135"),
    (-140, "bucket_140"),
    (-145, "bucket_145"),
)


def increment_bucket(grid_cell: GridCell, entry_time: datetime, rssi: float, snr: float) -> None:
    """Count one reception in the bucket for its signal and advance last_updated."""
    signal = rssi + snr if snr < 0 else rssi
    bucket = next((name for threshold, name in _BUCKETS if signal > threshold), "bucket_low")
    setattr(grid_cell, bucket, getattr(grid_cell, bucket) + 1)
    if entry_time > grid_cell.last_updated:
        grid_cell.last_updated = entry_time


def _cell_key(antenna_id: int, latitude: float, longitude: float) -> GridCellKey:
    if latitude < -_MAX_LATITUDE or latitude > _MAX_LATITUDE:
        raise ValueError("coordinates out of range")
    if latitude == 0 and longitude == 0:
        raise ValueError("null island")
    x, y = tile_for_lat_lng(latitude, longitude, GRID_ZOOM)
    return GridCellKey(antenna_id, x, y)


class GridCellAggregator:
    """Keeps grid cells up to date with new and reprocessed packets."""

    def __init__(
        self, gateways: GatewayStore, aggregates: AggregateStore, packets: PacketStore
    ) -> None:
        self._gateways = gateways
        self._aggregates = aggregates
        self._packets = packets
        self._locator = GatewayLocator(gateways)
        self._cache: dict[GridCellKey, GridCell] = {}

    def _cell_from_db(self, antenna_id: int, latitude: float, longitude: float) -> GridCell:
        key = _cell_key(antenna_id, latitude, longitude)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return self._aggregates.get_grid_cell(key)

    def _cell_in_memory(self, antenna_id: int, latitude: float, longitude: float) -> GridCell:
        key = _cell_key(antenna_id, latitude, longitude)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return GridCell(antenna_id=key.antenna_id, x=key.x, y=key.y)

    def aggregate_new_data(self, message: UplinkMessage) -> list[GridCell]:
        """Add a live measurement to the cells of every gateway that heard it.

        Returns the cells that were updated and saved.
        """
        if message.experiment:
            return []
        if message.latitude == 0 and message.longitude == 0:
            return []

        entry_time = unix_nano_to_datetime(message.time)
        updated: list[GridCell] = []
        for gateway in message.gateways:
            try:
                self._locator.point_for_gateway(gateway.network_id, gateway.gateway_id)
            except (RecordNotFoundError, ValueError):
                continue
            if not self._locator.check_distance_from_gateway(gateway, message):
                continue

            antenna = self._gateways.find_antenna(
                gateway.network_id, gateway.gateway_id, gateway.antenna_index
            )
            if not antenna.id:
                logger.warning("Can't find antenna in database")
                continue
            logger.debug("AntennaID %s", antenna.id)

            try:
                cell = self._cell_from_db(antenna.id, message.latitude, message.longitude)
            except ValueError:
                continue
            increment_bucket(cell, entry_time, gateway.rssi, gateway.snr)
            self._cache[cell.key()] = cell
            self._aggregates.save_grid_cell(cell)
            updated.append(cell)
        return updated

    def aggregate_moved_gateway(self, moved_gateway: GatewayMoved) -> list[GridCell]:
        """Rebuild the cells of every antenna of a gateway that moved."""
        moved_time = self._gateways.get_gateway_last_moved_time(
            moved_gateway.network_id, moved_gateway.gateway_id
        )
        logger.info("Gateway %s moved at %s", moved_gateway.gateway_id, moved_time)
        antennas = self._gateways.get_antennas_for_gateway(
            moved_gateway.network_id, moved_gateway.gateway_id
        )
        cells: list[GridCell] = []
        for antenna in antennas:
            cells.extend(self.reprocess_antenna(antenna, moved_time))
        return cells

    def reprocess_antenna(self, antenna: Antenna, installed_at: datetime) -> list[GridCell]:
        """Replace the antenna's cells with ones built from packets since installed_at."""
        for cell in self._aggregates.get_grid_cells_for_antenna(antenna):
            self._cache.pop(cell.key(), None)

        rebuilt: dict[GridCellKey, GridCell] = {}
        count = 0
        for packet in self._packets.iter_packets_for_antenna_after(antenna, installed_at):
            count += 1
            if not self._locator.check_distance_from_antenna(antenna, packet):
                continue
            try:
                cell = self._cell_in_memory(antenna.id, packet.latitude, packet.longitude)
            except ValueError:
                continue
            increment_bucket(cell, packet.time, packet.rssi, packet.snr)
            self._cache[cell.key()] = cell
            rebuilt[cell.key()] = cell
        logger.info("Processed %d packets", count)

        self._aggregates.delete_grid_cells_for_antenna(antenna)

        if not rebuilt:
            logger.info("No packets")
            return []

        logger.info("Result is %d grid cells", len(rebuilt))
        cells = list(rebuilt.values())
        self._aggregates.create_grid_cells(cells)
        return cells