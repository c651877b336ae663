"""Routing policies from the packet broker and their database form."""

from __future__ import annotations

from dataclasses import dataclass, field

from ttnmapper.database.models import PacketBrokerRoutingPolicy
from ttnmapper.types import NS_TTS_V3, NS_UNKNOWN


@dataclass
class UplinkPolicy:
    """Which uplink traffic a forwarder passes on."""

    join_request: bool = False
    mac_data: bool = False
    application_data: bool = False
    signal_quality: bool = False
    localization: bool = False


@dataclass
class DownlinkPolicy:
    """Which downlink traffic a home network may send through a forwarder."""

    join_accept: bool = False
    mac_data: bool = False
    application_data: bool = False


@dataclass
class RoutingPolicy:
    """A routing policy between a forwarder network and a home network."""

    forwarder_net_id: int = 0
    forwarder_tenant_id: str = ""
    home_network_net_id: int = 0
    home_network_tenant_id: str = ""
    uplink: UplinkPolicy = field(default_factory=UplinkPolicy)
    downlink: DownlinkPolicy = field(default_factory=DownlinkPolicy)


def tenant_net_id_to_network_id(net_id: int, tenant_id: str) -> str:
    """Network id for a NetID and tenant; a tenant implies a TTS network."""
    if tenant_id:
        return f"{NS_TTS_V3}://{tenant_id}@{net_id:06X}"
    return f"{NS_UNKNOWN}://{net_id:06X}"


def routing_policy_to_db_policy(policy: RoutingPolicy) -> PacketBrokerRoutingPolicy:
    """Convert a packet broker policy to an unsaved database row."""
    return PacketBrokerRoutingPolicy(
        home_network_id=tenant_net_id_to_network_id(
            policy.home_network_net_id, policy.home_network_tenant_id
        ),
        forwarder_network_id=tenant_net_id_to_network_id(
            policy.forwarder_net_id, policy.forwarder_tenant_id
        ),
        uplink_join_request=policy.uplink.join_request,
        uplink_mac_data=policy.uplink.mac_data,
        uplink_application_data=policy.uplink.application_data,
        uplink_signal_quality=policy.uplink.signal_quality,
        uplink_localization=policy.uplink.localization,
        downlink_join_accept=policy.downlink.join_accept,
        downlink_mac_data=policy.downlink.mac_data,
        downlink_application_data=policy.downlink.application_data,
    )