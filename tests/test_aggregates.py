from datetime import datetime, timezone

import pytest

from ttnmapper.database.aggregates import AggregateStore
from ttnmapper.database.connection import Database
from ttnmapper.database.models import (
    ZERO_TIME,
    Antenna,
    Base,
    GridCell,
    GridCellKey,
    RadarBeam,
    RadarBeamKey,
)


@pytest.fixture
def store(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(db.engine)
    return AggregateStore(db)


ANTENNA = Antenna(id=7, network_id="net", gateway_id="gw", antenna_index=0)
OTHER = Antenna(id=8, network_id="net", gateway_id="gw", antenna_index=1)


def test_get_grid_cell_creates_empty_once(store):
    cell = store.get_grid_cell(GridCellKey(7, 100, 200))
    assert cell.key() == GridCellKey(7, 100, 200)
    assert cell.bucket_high == 0
    assert cell.last_updated == ZERO_TIME
    assert store.get_grid_cell(GridCellKey(7, 100, 200)).id == cell.id


def test_save_grid_cell_persists(store):
    cell = store.get_grid_cell(GridCellKey(7, 1, 2))
    cell.bucket_high = 3
    cell.bucket_120 = 2
    store.save_grid_cell(cell)
    [stored] = store.get_grid_cells_for_antenna(ANTENNA)
    assert (stored.bucket_high, stored.bucket_120) == (3, 2)


def test_save_new_grid_cell_assigns_id(store):
    cell = GridCell(antenna_id=7, x=5, y=6, bucket_low=1)
    store.save_grid_cell(cell)
    assert cell.id is not None
    assert [c.id for c in store.get_grid_cells_for_antenna(ANTENNA)] == [cell.id]


def test_create_grid_cells_upserts(store):
    existing = store.get_grid_cell(GridCellKey(7, 1, 1))
    store.create_grid_cells(
        [
            GridCell(antenna_id=7, x=1, y=1, bucket_105=4),
            GridCell(antenna_id=7, x=2, y=2, bucket_110=1),
        ]
    )
    cells = {c.key(): c for c in store.get_grid_cells_for_antenna(ANTENNA)}
    assert set(cells) == {GridCellKey(7, 1, 1), GridCellKey(7, 2, 2)}
    assert cells[GridCellKey(7, 1, 1)].id == existing.id
    assert cells[GridCellKey(7, 1, 1)].bucket_105 == 4
    assert cells[GridCellKey(7, 2, 2)].bucket_110 == 1


def test_create_grid_cells_empty_is_noop(store):
    store.create_grid_cells([])
    assert store.get_grid_cells_for_antenna(ANTENNA) == []


def test_delete_grid_cells_only_for_antenna(store):
    store.get_grid_cell(GridCellKey(7, 1, 1))
    store.get_grid_cell(GridCellKey(8, 1, 1))
    store.delete_grid_cells_for_antenna(ANTENNA)
    assert store.get_grid_cells_for_antenna(ANTENNA) == []
    assert len(store.get_grid_cells_for_antenna(OTHER)) == 1


def test_radar_beam_lifecycle(store):
    beam = store.get_radar_beam(RadarBeamKey(7, -100, 45))
    assert beam.key() == RadarBeamKey(7, -100, 45)
    assert beam.samples == 0
    beam.samples = 2
    beam.distance_max = 1500.0
    beam.distance_2nd = 900.0
    beam.last_updated = datetime(2022, 3, 4, tzinfo=timezone.utc)
    store.save_radar_beam(beam)
    [stored] = store.get_radar_beams_for_antenna(ANTENNA)
    assert (stored.samples, stored.distance_max, stored.distance_2nd) == (2, 1500.0, 900.0)
    assert stored.last_updated == datetime(2022, 3, 4, tzinfo=timezone.utc)


def test_create_radar_beams_upserts_and_delete(store):
    existing = store.get_radar_beam(RadarBeamKey(7, -105, 10))
    store.create_radar_beams(
        [
            RadarBeam(antenna_id=7, level=-105, bearing=10, samples=5),
            RadarBeam(antenna_id=7, level=-110, bearing=10, samples=1),
        ]
    )
    beams = {b.key(): b for b in store.get_radar_beams_for_antenna(ANTENNA)}
    assert beams[RadarBeamKey(7, -105, 10)].id == existing.id
    assert beams[RadarBeamKey(7, -105, 10)].samples == 5
    assert beams[RadarBeamKey(7, -110, 10)].samples == 1
    store.delete_radar_beams_for_antenna(ANTENNA)
    assert store.get_radar_beams_for_antenna(ANTENNA) == []