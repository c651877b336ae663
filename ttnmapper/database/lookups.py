"""Conversion of uplink messages to packet rows, resolving lookup tables."""

from __future__ import annotations

from collections.abc import Hashable
from typing import Any

from sqlalchemy.orm import Session

from ttnmapper.database.connection import Database
from ttnmapper.database.gateways import _first_or_create
from ttnmapper.database.models import (
    AccuracySource,
    Antenna,
    Base,
    CodingRate,
    DataRate,
    Device,
    Experiment,
    FineTimestampKeyID,
    Frequency,
    Packet,
    User,
    UserAgent,
)
from ttnmapper.types import MapperGateway, UplinkMessage, unix_nano_to_datetime
from ttnmapper.validation import cap_float_to

_UINT32_MASK = 0xFFFFFFFF


class PacketFactory:
    """Builds packet rows, caching the ids of static lookup rows."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._devices: dict[Hashable, int] = {}
        self._frequencies: dict[Hashable, int] = {}
        self._data_rates: dict[Hashable, int] = {}
        self._coding_rates: dict[Hashable, int] = {}
        self._antennas: dict[Hashable, int] = {}
        self._accuracy_sources: dict[Hashable, int] = {}
        self._experiments: dict[Hashable, int] = {}
        self._users: dict[Hashable, int] = {}
        self._user_agents: dict[Hashable, int] = {}

    @staticmethod
    def _lookup(
        session: Session,
        cache: dict[Hashable, int],
        pending: list[tuple[dict[Hashable, int], Hashable, int]],
        key: Hashable,
        model: type[Base],
        **fields: Any,
    ) -> int:
        cached = cache.get(key)
        if cached is not None:
            return cached
        row_id = _first_or_create(session, model, **fields).id
        pending.append((cache, key, row_id))
        return row_id

    def packet_from_uplink(self, message: UplinkMessage, gateway: MapperGateway) -> Packet:
        """An unsaved packet for one gateway's reception of the message.

        Lookup rows (device, frequency, data rate and so on) are created as needed.
        """
        pending: list[tuple[dict[Hashable, int], Hashable, int]] = []
        fields: dict[str, Any] = {"time": unix_nano_to_datetime(message.time)}

        with self._db.session() as session:

            def lookup(cache, key, model, **columns):
                return self._lookup(session, cache, pending, key, model, **columns)

            device = {
                "network_id": message.network_id,
                "app_id": message.app_id,
                "dev_id": message.dev_id,
                "dev_eui": message.dev_eui,
            }
            fields["device_id"] = lookup(
                self._devices, tuple(device.values()), Device, **device
            )

            fields["f_port"] = message.f_port
            fields["f_cnt"] = message.f_cnt & _UINT32_MASK

            fields["frequency_id"] = lookup(
                self._frequencies, message.frequency, Frequency, herz=message.frequency
            )

            data_rate = {
                "modulation": message.modulation,
                "bandwidth": message.bandwidth,
                "spreading_factor": message.spreading_factor,
                "bitrate": message.bitrate,
            }
            fields["data_rate_id"] = lookup(
                self._data_rates, tuple(data_rate.values()), DataRate, **data_rate
            )

            fields["coding_rate_id"] = lookup(
                self._coding_rates, message.coding_rate, CodingRate, name=message.coding_rate
            )

            # Coverage is stored per antenna; index 0 when the antenna is unknown.
            antenna = {
                "network_id": gateway.network_id,
                "gateway_id": gateway.gateway_id,
                "antenna_index": gateway.antenna_index,
            }
            fields["antenna_id"] = lookup(
                self._antennas, tuple(antenna.values()), Antenna, **antenna
            )

            if gateway.time != 0:
                fields["gateway_time"] = unix_nano_to_datetime(gateway.time)
            if gateway.timestamp != 0:
                fields["timestamp"] = gateway.timestamp
            if gateway.fine_timestamp != 0:
                fields["fine_timestamp"] = gateway.fine_timestamp
            if gateway.fine_timestamp_encrypted:
                fields["fine_timestamp_encrypted"] = gateway.fine_timestamp_encrypted
            if gateway.fine_timestamp_encrypted_key_id:
                key_row = _first_or_create(
                    session,
                    FineTimestampKeyID,
                    fine_timestamp_encrypted_key_id=gateway.fine_timestamp_encrypted_key_id,
                )
                fields["fine_timestamp_key_id"] = key_row.id

            fields["channel_index"] = gateway.channel_index
            fields["rssi"] = gateway.rssi
            if gateway.signal_rssi != 0:
                fields["signal_rssi"] = gateway.signal_rssi
            fields["snr"] = gateway.snr

            fields["latitude"] = cap_float_to(message.latitude, 10, 6)
            fields["longitude"] = cap_float_to(message.longitude, 10, 6)
            fields["altitude"] = cap_float_to(message.altitude, 6, 1)
            if message.accuracy_meters != 0:
                fields["accuracy_meters"] = cap_float_to(message.accuracy_meters, 6, 2)
            if message.satellites != 0:
                fields["satellites"] = message.satellites
            if message.hdop != 0:
                fields["hdop"] = cap_float_to(message.hdop, 3, 1)

            fields["accuracy_source_id"] = lookup(
                self._accuracy_sources,
                message.accuracy_source,
                AccuracySource,
                name=message.accuracy_source,
            )

            if message.experiment:
                fields["experiment_id"] = lookup(
                    self._experiments, message.experiment, Experiment, name=message.experiment
                )

            fields["user_id"] = lookup(
                self._users, message.user_id, User, identifier=message.user_id
            )
            fields["user_agent_id"] = lookup(
                self._user_agents, message.user_agent, UserAgent, name=message.user_agent
            )

        for cache, key, row_id in pending:
            cache[key] = row_id
        return Packet(**fields)