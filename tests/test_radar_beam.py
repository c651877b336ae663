import pytest

from ttnmapper.aggregations.radar_beam import (
    LEVELS,
    RadarBeamAggregator,
    get_level,
    increment_radar_beam,
)
from ttnmapper.database.connection import RecordNotFoundError
from ttnmapper.database.models import Antenna, Gateway, Packet, RadarBeam
from ttnmapper.geo import Point, bearing_between
from ttnmapper.types import GatewayMoved, MapperGateway, UplinkMessage, unix_nano_to_datetime

NETWORK = "NS_TTS_V3://ttn@000013"
GATEWAY_ID = "eui-0000000000000001"
GW_LAT = 52.0
GW_LNG = 6.0
T0 = 1_600_000_000 * 10**9
SECOND = 10**9


def at(nanos):
    return unix_nano_to_datetime(nanos)


class MemoryGateways:
    def __init__(self, gateways=(), antennas=(), moved_at=None):
        self.gateways = {(g.network_id, g.gateway_id): g for g in gateways}
        self.antennas = list(antennas)
        self.moved_at = moved_at if moved_at is not None else at(0)

    def get_gateway(self, network_id, gateway_id):
        try:
            return self.gateways[(network_id, gateway_id)]
        except KeyError:
            raise RecordNotFoundError(f"{network_id}/{gateway_id}") from None

    def find_antenna(self, network_id, gateway_id, antenna_index):
        for antenna in self.antennas:
            if (antenna.network_id, antenna.gateway_id, antenna.antenna_index) == (
                network_id,
                gateway_id,
                antenna_index,
            ):
                return antenna
        return Antenna(id=0, network_id=network_id, gateway_id=gateway_id, antenna_index=antenna_index)

    def get_antennas_for_gateway(self, network_id, gateway_id):
        return [a for a in self.antennas if (a.network_id, a.gateway_id) == (network_id, gateway_id)]

    def get_gateway_last_moved_time(self, network_id, gateway_id):
        return self.moved_at


class MemoryAggregates:
    def __init__(self):
        self.beams = {}
        self.saved = []
        self.created = []
        self.deleted = []
        self.fetched = 0

    def get_radar_beam(self, key):
        self.fetched += 1
        found = self.beams.get(key)
        if found is not None:
            return found
        return RadarBeam(
            antenna_id=key.antenna_id,
            level=key.level,
            bearing=key.bearing,
            samples=0,
            last_updated=at(0),
            distance_max=0.0,
            distance_2nd=0.0,
        )

    def save_radar_beam(self, beam):
        self.saved.append(beam)
        self.beams[beam.key()] = beam

    def get_radar_beams_for_antenna(self, antenna):
        return [b for b in self.beams.values() if b.antenna_id == antenna.id]

    def delete_radar_beams_for_antenna(self, antenna):
        self.deleted.append(antenna.id)
        self.beams = {k: v for k, v in self.beams.items() if v.antenna_id != antenna.id}

    def create_radar_beams(self, beams):
        self.created.extend(beams)
        for beam in beams:
            self.beams[beam.key()] = beam


class MemoryPackets:
    def __init__(self, packets=()):
        self.packets = list(packets)

    def iter_packets_for_antenna_after(self, antenna, after):
        return (p for p in self.packets if p.antenna_id == antenna.id and p.time > after)


def gateway_row():
    return Gateway(network_id=NETWORK, gateway_id=GATEWAY_ID, latitude=GW_LAT, longitude=GW_LNG)


def antenna_row():
    return Antenna(id=7, network_id=NETWORK, gateway_id=GATEWAY_ID, antenna_index=0)


def uplink(latitude, longitude, rssi=-80.0, snr=5.0, experiment=""):
    return UplinkMessage(
        network_id=NETWORK,
        app_id="app",
        dev_id="dev",
        time=T0,
        latitude=latitude,
        longitude=longitude,
        experiment=experiment,
        gateways=[
            MapperGateway(
                network_id=NETWORK,
                gateway_id=GATEWAY_ID,
                antenna_index=0,
                rssi=rssi,
                snr=snr,
                latitude=GW_LAT,
                longitude=GW_LNG,
            )
        ],
    )


def packet(latitude, time, rssi=-80.0, snr=5.0):
    return Packet(
        antenna_id=7,
        time=time,
        latitude=latitude,
        longitude=GW_LNG,
        rssi=rssi,
        snr=snr,
    )


def metres_from_gateway(latitude, longitude):
    return Point(GW_LAT, GW_LNG).great_circle_distance(Point(latitude, longitude)) * 1000.0


def make_aggregator(gateways=None, packets=()):
    gateways = gateways or MemoryGateways([gateway_row()], [antenna_row()])
    aggregates = MemoryAggregates()
    aggregator = RadarBeamAggregator(gateways, aggregates, MemoryPackets(packets))
    return aggregator, aggregates


@pytest.mark.parametrize(
    "rssi, snr, index",
    [
        (-50.0, 0.0, 0),
        (-100.0, 0.0, 1),
        (-102.0, 5.0, 1),
        (-95.0, -10.0, 2),
        (-119.0, 0.0, 4),
        (-121.0, 0.0, 5),
        (-250.0, 0.0, 5),
    ],
)
def test_get_level(rssi, snr, index):
    assert get_level(rssi, snr) == LEVELS[index]


def test_levels_are_strongest_first():
    assert [get_level(float(level) + 1.0, 0.0) for level in LEVELS] == list(LEVELS)
    assert get_level(-300.0, 0.0) == -200


def test_increment_keeps_two_largest_distances():
    beam = RadarBeam(samples=0, last_updated=at(0), distance_max=0.0, distance_2nd=0.0)
    for distance in (100.0, 300.0, 200.0, 50.0):
        increment_radar_beam(beam, at(T0), distance)
    assert beam.samples == 4
    assert beam.distance_max == 300.0
    assert beam.distance_2nd == 200.0


def test_increment_only_advances_last_updated():
    beam = RadarBeam(samples=0, last_updated=at(0), distance_max=0.0, distance_2nd=0.0)
    increment_radar_beam(beam, at(T0 + SECOND), 10.0)
    increment_radar_beam(beam, at(T0), 10.0)
    assert beam.last_updated == at(T0 + SECOND)


def test_aggregate_new_data_stores_beam():
    aggregator, aggregates = make_aggregator()
    latitude = GW_LAT + 0.05
    updated = aggregator.aggregate_new_data(uplink(latitude, GW_LNG))

    assert len(updated) == 1
    beam = updated[0]
    assert beam.antenna_id == 7
    assert beam.level == LEVELS[0]
    assert beam.bearing == bearing_between(Point(GW_LAT, GW_LNG), Point(latitude, GW_LNG))
    assert beam.distance_max == pytest.approx(metres_from_gateway(latitude, GW_LNG))
    assert beam.samples == 1
    assert beam.last_updated == at(T0)
    assert aggregates.saved == [beam]


def test_aggregate_new_data_uses_cache_on_repeat():
    aggregator, aggregates = make_aggregator()
    message = uplink(GW_LAT + 0.05, GW_LNG)
    aggregator.aggregate_new_data(message)
    second = aggregator.aggregate_new_data(message)
    assert second[0].samples == 2
    assert aggregates.fetched == 1


@pytest.mark.parametrize(
    "message",
    [
        uplink(GW_LAT + 0.05, GW_LNG, experiment="test run"),
        uplink(0.0, 0.0),
        uplink(GW_LAT + 5.0, GW_LNG),
    ],
)
def test_aggregate_new_data_skips(message):
    aggregator, aggregates = make_aggregator()
    assert aggregator.aggregate_new_data(message) == []
    assert aggregates.saved == []


def test_aggregate_new_data_skips_unknown_gateway():
    aggregator, aggregates = make_aggregator(MemoryGateways([], [antenna_row()]))
    assert aggregator.aggregate_new_data(uplink(GW_LAT + 0.05, GW_LNG)) == []
    assert aggregates.saved == []


def reprocess_packets():
    return [
        packet(GW_LAT + 0.01, at(T0 + SECOND)),
        packet(GW_LAT + 0.02, at(T0 + 2 * SECOND)),
        packet(GW_LAT + 5.0, at(T0 + 3 * SECOND)),
        packet(GW_LAT + 0.03, at(T0 - SECOND)),
    ]


def test_reprocess_antenna_rebuilds_beams():
    aggregator, aggregates = make_aggregator(packets=reprocess_packets())
    beams = aggregator.reprocess_antenna(antenna_row(), at(T0))

    assert len(beams) == 1
    beam = beams[0]
    assert beam.samples == 2
    assert beam.distance_max == pytest.approx(metres_from_gateway(GW_LAT + 0.02, GW_LNG))
    assert beam.distance_2nd == pytest.approx(metres_from_gateway(GW_LAT + 0.01, GW_LNG))
    assert beam.last_updated == at(T0 + 2 * SECOND)
    assert aggregates.deleted == [7]
    assert aggregates.created == beams


def test_reprocess_antenna_without_gateway_does_nothing():
    aggregator, aggregates = make_aggregator(
        MemoryGateways([], [antenna_row()]), packets=reprocess_packets()
    )
    assert aggregator.reprocess_antenna(antenna_row(), at(T0)) == []
    assert aggregates.deleted == []


def test_reprocess_antenna_clears_cache():
    aggregator, aggregates = make_aggregator()
    message = uplink(GW_LAT + 0.05, GW_LNG)
    aggregator.aggregate_new_data(message)

    assert aggregator.reprocess_antenna(antenna_row(), at(T0)) == []
    assert aggregates.deleted == [7]

    aggregator.aggregate_new_data(message)
    assert aggregates.fetched == 2


def test_aggregate_moved_gateway_uses_last_move():
    gateways = MemoryGateways(
        [gateway_row()], [antenna_row()], moved_at=at(T0 + SECOND + SECOND // 2)
    )
    aggregator, aggregates = make_aggregator(gateways, packets=reprocess_packets())
    beams = aggregator.aggregate_moved_gateway(
        GatewayMoved(network_id=NETWORK, gateway_id=GATEWAY_ID)
    )
    assert len(beams) == 1
    assert beams[0].samples == 1
    assert beams[0].distance_max == pytest.approx(metres_from_gateway(GW_LAT + 0.02, GW_LNG))