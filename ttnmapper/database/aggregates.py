"""Storage of grid cell and radar beam aggregates."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from sqlalchemy import delete, inspect as sa_inspect, select

from ttnmapper.database.connection import Database
from ttnmapper.database.gateways import _first_or_create
from ttnmapper.database.models import (
    Antenna,
    GridCell,
    GridCellKey,
    RadarBeam,
    RadarBeamKey,
)

_Aggregate = TypeVar("_Aggregate", GridCell, RadarBeam)


class AggregateStore:
    """Reads and writes grid cells and radar beams."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def _save(self, row: _Aggregate) -> None:
        with self._db.session() as session:
            merged = session.merge(row)
            session.flush()
            row.id = merged.id

    def _upsert(self, model: type[_Aggregate], rows: Sequence[_Aggregate]) -> None:
        """Write rows, overwriting stored rows with the same key."""
        if not rows:
            return
        columns = [attr.key for attr in sa_inspect(model).column_attrs if attr.key != "id"]
        antenna_ids = {row.antenna_id for row in rows}
        written = []
        with self._db.session() as session:
            query = select(model).where(model.antenna_id.in_(antenna_ids))
            stored = {row.key(): row for row in session.scalars(query)}
            for row in rows:
                target = stored.get(row.key())
                if target is None:
                    target = model(**{column: getattr(row, column) for column in columns})
                    session.add(target)
                    stored[row.key()] = target
                else:
                    for column in columns:
                        setattr(target, column, getattr(row, column))
                written.append((row, target))
            session.flush()
            for row, target in written:
                row.id = target.id

    def get_grid_cell(self, key: GridCellKey) -> GridCell:
        """The grid cell with this key, inserted empty if missing."""
        with self._db.session() as session:
            return _first_or_create(
                session, GridCell, antenna_id=key.antenna_id, x=key.x, y=key.y
            )

    def save_grid_cell(self, grid_cell: GridCell) -> None:
        """Insert or update the cell; its id is set to that of the stored row."""
        self._save(grid_cell)

    def get_grid_cells_for_antenna(self, antenna: Antenna) -> list[GridCell]:
        query = select(GridCell).where(GridCell.antenna_id == antenna.id).order_by(GridCell.id)
        with self._db.session() as session:
            return list(session.scalars(query))

    def create_grid_cells(self, grid_cells: Sequence[GridCell]) -> None:
        """Store the cells, overwriting cells with the same antenna and tile."""
        self._upsert(GridCell, grid_cells)

    def delete_grid_cells_for_antenna(self, antenna: Antenna) -> None:
        with self._db.session() as session:
            session.execute(delete(GridCell).where(GridCell.antenna_id == antenna.id))

    def get_radar_beam(self, key: RadarBeamKey) -> RadarBeam:
        """The radar beam with this key, inserted empty if missing."""
        with self._db.session() as session:
            return _first_or_create(
                session,
                RadarBeam,
                antenna_id=key.antenna_id,
                level=key.level,
                bearing=key.bearing,
            )

    def save_radar_beam(self, radar_beam: RadarBeam) -> None:
        """Insert or update the beam; its id is set to that of the stored row."""
        self._save(radar_beam)

    def get_radar_beams_for_antenna(self, antenna: Antenna) -> list[RadarBeam]:
        query = select(RadarBeam).where(RadarBeam.antenna_id == antenna.id).order_by(RadarBeam.id)
        with self._db.session() as session:
            return list(session.scalars(query))

    def create_radar_beams(self, radar_beams: Sequence[RadarBeam]) -> None:
        """Store the beams, overwriting beams with the same antenna, level and bearing."""
        self._upsert(RadarBeam, radar_beams)

    def delete_radar_beams_for_antenna(self, antenna: Antenna) -> None:
        with self._db.session() as session:
            session.execute(delete(RadarBeam).where(RadarBeam.antenna_id == antenna.id))