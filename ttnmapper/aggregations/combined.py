"""Runs every aggregation for new data, moved gateways and reprocessing."""

from __future__ import annotations

from datetime import datetime

from ttnmapper.aggregations.grid_cell import GridCellAggregator
from ttnmapper.aggregations.radar_beam import RadarBeamAggregator
from ttnmapper.database.models import Antenna, GridCell, RadarBeam
from ttnmapper.types import GatewayMoved, UplinkMessage


class Aggregator:
    """Feeds the grid cell and radar beam aggregations together."""

    def __init__(self, grid_cells: GridCellAggregator, radar_beams: RadarBeamAggregator) -> None:
        self.grid_cells = grid_cells
        self.radar_beams = radar_beams

    def aggregate_new_data(
        self, message: UplinkMessage
    ) -> tuple[list[GridCell], list[RadarBeam]]:
        """Add a live measurement; returns the updated cells and beams."""
        cells = self.grid_cells.aggregate_new_data(message)
        beams = self.radar_beams.aggregate_new_data(message)
        return cells, beams

    def aggregate_moved_gateway(
        self, moved_gateway: GatewayMoved
    ) -> tuple[list[GridCell], list[RadarBeam]]:
        """Rebuild all aggregates of a gateway that moved."""
        cells = self.grid_cells.aggregate_moved_gateway(moved_gateway)
        beams = self.radar_beams.aggregate_moved_gateway(moved_gateway)
        return cells, beams

    def reprocess_antenna(
        self, antenna: Antenna, installed_at: datetime
    ) -> tuple[list[GridCell], list[RadarBeam]]:
        """Rebuild all aggregates of one antenna from packets since installed_at."""
        cells = self.grid_cells.reprocess_antenna(antenna, installed_at)
        beams = self.radar_beams.reprocess_antenna(antenna, installed_at)
        return cells, beams