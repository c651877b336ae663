import pytest

from ttnmapper.aggregations.distance import (
    GatewayLocator,
    bearing_database,
    bearing_live,
    distance_database,
)
from ttnmapper.database.connection import Database, RecordNotFoundError
from ttnmapper.database.gateways import GatewayStore
from ttnmapper.database.models import Antenna, Base, Gateway, Packet
from ttnmapper.geo import Point
from ttnmapper.types import MapperGateway, UplinkMessage

NETWORK = "NS_TTS_V3://ttn@000013"
GW_LAT, GW_LNG = -33.93648714508494, 18.868361593713505
MSG_LAT, MSG_LNG = -33.93623234324361, 18.871634206336243


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'distance.db'}")
    Base.metadata.create_all(db.engine)
    yield db
    db.engine.dispose()


@pytest.fixture
def store(database):
    gateways = GatewayStore(database)
    gateways.save_gateway(
        Gateway(network_id=NETWORK, gateway_id="near", latitude=GW_LAT, longitude=GW_LNG)
    )
    gateways.save_gateway(Gateway(network_id=NETWORK, gateway_id="nowhere"))
    return gateways


@pytest.fixture
def locator(store):
    return GatewayLocator(store)


def test_point_for_gateway(locator):
    assert locator.point_for_gateway(NETWORK, "near") == Point(GW_LAT, GW_LNG)


def test_point_for_gateway_at_null_island(locator):
    with pytest.raises(ValueError, match="gateway location unknown"):
        locator.point_for_gateway(NETWORK, "nowhere")


def test_point_for_unknown_gateway(locator):
    with pytest.raises(RecordNotFoundError):
        locator.point_for_gateway(NETWORK, "missing")


def test_check_distance_from_gateway(locator):
    gateway = MapperGateway(network_id=NETWORK, gateway_id="near")
    near = UplinkMessage(latitude=MSG_LAT, longitude=MSG_LNG)
    far = UplinkMessage(latitude=MSG_LAT + 5, longitude=MSG_LNG)
    same = UplinkMessage(latitude=GW_LAT, longitude=GW_LNG)
    assert locator.check_distance_from_gateway(gateway, near) is True
    assert locator.check_distance_from_gateway(gateway, far) is False
    assert locator.check_distance_from_gateway(gateway, same) is False


def test_check_distance_for_unknown_gateways(locator):
    message = UplinkMessage(latitude=MSG_LAT, longitude=MSG_LNG)
    for gateway_id in ("missing", "nowhere"):
        gateway = MapperGateway(network_id=NETWORK, gateway_id=gateway_id)
        assert locator.check_distance_from_gateway(gateway, message) is False
        assert locator.distance_live(gateway, message) == 0.0


def test_check_distance_from_antenna(locator):
    antenna = Antenna(network_id=NETWORK, gateway_id="near", antenna_index=0)
    assert locator.check_distance_from_antenna(
        antenna, Packet(latitude=MSG_LAT, longitude=MSG_LNG)
    ) is True
    assert locator.check_distance_from_antenna(
        antenna, Packet(latitude=MSG_LAT + 5, longitude=MSG_LNG)
    ) is False


def test_live_and_database_distance_agree(locator):
    gateway = MapperGateway(network_id=NETWORK, gateway_id="near")
    message = UplinkMessage(latitude=MSG_LAT, longitude=MSG_LNG)
    stored = Gateway(latitude=GW_LAT, longitude=GW_LNG)
    packet = Packet(latitude=MSG_LAT, longitude=MSG_LNG)
    live = locator.distance_live(gateway, message)
    assert live == pytest.approx(distance_database(stored, packet))
    assert 0 < live < 1


def test_bearings_agree():
    gateway = MapperGateway(latitude=-33.936644228282525, longitude=18.87102216482163)
    message = UplinkMessage(latitude=-33.944952, longitude=18.861567)
    stored = Gateway(latitude=-33.936644228282525, longitude=18.87102216482163)
    packet = Packet(latitude=-33.944952, longitude=18.861567)
    bearing = bearing_live(gateway, message)
    assert bearing == bearing_database(stored, packet)
    assert bearing in range(360)


def test_cardinal_bearings():
    gateway = MapperGateway(latitude=0.0, longitude=10.0)
    assert bearing_live(gateway, UplinkMessage(latitude=1.0, longitude=10.0)) == 0
    assert bearing_live(gateway, UplinkMessage(latitude=0.0, longitude=11.0)) == 90