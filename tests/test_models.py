from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ttnmapper.database.models import (
    ZERO_TIME,
    Antenna,
    Base,
    Gateway,
    GridCell,
    GridCellKey,
    Packet,
    RadarBeam,
    RadarBeamKey,
)


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def test_tables_are_created(engine):
    names = set(inspect(engine).get_table_names())
    for table in ("packets", "gateways", "gateway_locations", "antennas", "grid_cells", "radar_beams"):
        assert table in names


def test_constructor_fills_defaults():
    cell = GridCell(antenna_id=7, x=1, y=2)
    assert cell.bucket_high == 0
    assert cell.bucket_no_signal == cell.bucket_100 == cell.bucket_low
    assert cell.last_updated == ZERO_TIME
    assert cell.id is None


def test_constructor_rejects_unknown_field():
    with pytest.raises(TypeError):
        GridCell(antenna_id=1, colour="red")


def test_keys_identify_aggregates():
    cell = GridCell(antenna_id=7, x=1, y=2)
    beam = RadarBeam(antenna_id=7, level=-100, bearing=45)
    assert cell.key() == GridCellKey(7, 1, 2)
    assert beam.key() == RadarBeamKey(7, -100, 45)
    cache = {cell.key(): cell}
    assert cache[GridCellKey(antenna_id=7, x=1, y=2)] is cell


def test_packet_round_trip(engine):
    local = timezone(timedelta(hours=2))
    when = datetime(2021, 9, 17, 13, 45, 10, 123456, tzinfo=local)
    with Session(engine) as session:
        session.add(
            Packet(
                time=when,
                device_id=3,
                antenna_id=4,
                rssi=-109.0,
                snr=2.5,
                latitude=52.244205,
                longitude=6.856759,
                fine_timestamp_encrypted=b"\x01\x02",
                satellites=7,
            )
        )
        session.commit()

    with Session(engine) as session:
        packet = session.scalars(select(Packet)).one()
        assert packet.time == when
        assert packet.time.tzinfo == timezone.utc
        assert packet.latitude == pytest.approx(52.244205)
        assert packet.longitude == pytest.approx(6.856759)
        assert packet.rssi == pytest.approx(-109.0)
        assert packet.fine_timestamp_encrypted == b"\x01\x02"
        assert packet.satellites == 7
        assert packet.experiment_id is None
        assert packet.gateway_time is None


def test_naive_datetime_is_stored_as_utc(engine):
    naive = datetime(2022, 1, 6, 19, 52, 56)
    with Session(engine) as session:
        session.add(GatewayLocationLike := Gateway(network_id="n", gateway_id="g", last_heard=naive))
        session.commit()
        assert GatewayLocationLike.id is not None

    with Session(engine) as session:
        gateway = session.scalars(select(Gateway)).one()
        assert gateway.last_heard == naive.replace(tzinfo=timezone.utc)


def test_zero_time_round_trip(engine):
    with Session(engine) as session:
        session.add(GridCell(antenna_id=1, x=10, y=20))
        session.commit()

    with Session(engine) as session:
        cell = session.scalars(select(GridCell)).one()
        assert cell.last_updated == ZERO_TIME
        assert cell.key() == GridCellKey(1, 10, 20)


def test_gateway_attributes_round_trip(engine):
    attributes = {"description": "roof", "frequency_plans": ["EU_863_870"]}
    with Session(engine) as session:
        session.add(Gateway(network_id="n", gateway_id="g", attributes=attributes))
        session.commit()

    with Session(engine) as session:
        gateway = session.scalars(select(Gateway)).one()
        assert gateway.attributes == attributes
        assert gateway.name is None


def test_antenna_is_unique_per_gateway_and_index(engine):
    with Session(engine) as session:
        session.add(Antenna(network_id="n", gateway_id="g", antenna_index=0))
        session.add(Antenna(network_id="n", gateway_id="g", antenna_index=0))
        with pytest.raises(IntegrityError):
            session.commit()


def test_radar_beam_distance_columns(engine):
    with Session(engine) as session:
        session.add(RadarBeam(antenna_id=2, level=-105, bearing=90, distance_max=1500.0, distance_2nd=900.0))
        session.commit()

    with Session(engine) as session:
        beam = session.scalars(select(RadarBeam)).one()
        assert beam.distance_max == 1500.0
        assert beam.distance_2nd == 900.0
        assert beam.key() == RadarBeamKey(2, -105, 90)