import pytest

from ttnmapper.oldstack import datarate_to_sf_bw, gwaddr_to_net_id_eui


@pytest.mark.parametrize(
    ("gwaddr", "gateway_id", "gateway_eui"),
    [
        ("0011223344556677", "eui-0011223344556677", "0011223344556677"),
        ("eui-0011223344556677", "eui-0011223344556677", "0011223344556677"),
        ("aabbccddeeff1122", "eui-aabbccddeeff1122", "AABBCCDDEEFF1122"),
        ("eui-aabbccddeeff1122", "eui-aabbccddeeff1122", "AABBCCDDEEFF1122"),
        ("hello-my-gateway", "hello-my-gateway", ""),
    ],
)
def test_gwaddr_to_net_id_eui(gwaddr, gateway_id, gateway_eui):
    network_id, got_id, got_eui = gwaddr_to_net_id_eui(gwaddr)
    assert got_id == gateway_id
    assert got_eui == gateway_eui
    assert network_id == "thethingsnetwork.org"


def test_gwaddr_long_name_is_not_an_eui():
    gwaddr = "dragino-pg1301-00000000000fffff"
    network_id, gateway_id, gateway_eui = gwaddr_to_net_id_eui(gwaddr)
    assert network_id == "thethingsnetwork.org"
    assert gateway_id == gwaddr
    assert gateway_eui == ""


@pytest.mark.parametrize(
    ("datarate", "sf", "bw"),
    [
        ("SF7BW125", 7, 125000),
        ("", 7, 125000),
        ("SF7BW250", 7, 250000),
        ("SF12BW125", 12, 125000),
    ],
)
def test_datarate_to_sf_bw(datarate, sf, bw):
    assert datarate_to_sf_bw(datarate) == (sf, bw)


@pytest.mark.parametrize("datarate", ["SF7", "SFxBW125", "SF7BWabc"])
def test_datarate_invalid(datarate):
    with pytest.raises(ValueError):
        datarate_to_sf_bw(datarate)