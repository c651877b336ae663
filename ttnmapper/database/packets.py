"""Storage and retrieval of raw packets."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import Select, insert, select

from ttnmapper.database.connection import Database
from ttnmapper.database.models import (
    AccuracySource,
    Antenna,
    CodingRate,
    DataRate,
    Device,
    Experiment,
    Frequency,
    Packet,
    User,
    UserAgent,
)

_BATCH_FIELDS = (
    "time",
    "device_id",
    "f_port",
    "f_cnt",
    "frequency_id",
    "data_rate_id",
    "coding_rate_id",
    "antenna_id",
    "gateway_time",
    "timestamp",
    "fine_timestamp",
    "fine_timestamp_encrypted",
    "fine_timestamp_key_id",
    "channel_index",
    "rssi",
    "signal_rssi",
    "snr",
    "latitude",
    "longitude",
    "altitude",
    "accuracy_meters",
    "satellites",
    "hdop",
    "accuracy_source_id",
    "experiment_id",
    "user_id",
    "user_agent_id",
    "deleted_at",
)

_STREAM_PAGE = 1000


def _detail_select() -> Select:
    """Packets with their lookup values spelled out."""
    return select(
        Packet.id,
        Packet.time,
        Packet.f_port,
        Packet.f_cnt,
        Packet.gateway_time,
        Packet.fine_timestamp,
        Packet.channel_index,
        Packet.rssi,
        Packet.signal_rssi,
        Packet.snr,
        Packet.latitude,
        Packet.longitude,
        Packet.altitude,
        Packet.accuracy_meters,
        Packet.satellites,
        Packet.hdop,
        Device.app_id,
        Device.dev_id,
        Device.dev_eui,
        Device.network_id.label("device_network_id"),
        Frequency.herz.label("frequency"),
        DataRate.modulation,
        DataRate.bandwidth,
        DataRate.spreading_factor,
        DataRate.bitrate,
        CodingRate.name.label("coding_rate"),
        Antenna.network_id.label("gateway_network_id"),
        Antenna.gateway_id,
        Antenna.antenna_index,
        AccuracySource.name.label("accuracy_source"),
        UserAgent.name.label("user_agent"),
        Experiment.name.label("experiment"),
    ).select_from(Packet)


def _join_lookups(query: Select) -> Select:
    return (
        query.join(Device, Packet.device_id == Device.id)
        .join(Frequency, Packet.frequency_id == Frequency.id)
        .join(DataRate, Packet.data_rate_id == DataRate.id)
        .join(CodingRate, Packet.coding_rate_id == CodingRate.id)
        .join(Antenna, Packet.antenna_id == Antenna.id)
        .join(AccuracySource, Packet.accuracy_source_id == AccuracySource.id)
        .join(UserAgent, Packet.user_agent_id == UserAgent.id)
        .join(User, Packet.user_id == User.id)
    )


def _apply_limit(query: Select, limit: int | None) -> Select:
    # A limit of zero or less means no limit.
    if limit is not None and limit > 0:
        return query.limit(limit)
    return query


class PacketStore:
    """Inserts packets and streams them back out."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def insert_packet(self, packet: Packet) -> Packet:
        """Insert one packet; its id is set."""
        with self._db.session() as session:
            session.add(packet)
            session.flush()
        return packet

    def insert_packets_batch(self, packets: Sequence[Packet]) -> None:
        """Insert all packets in one transaction; raises ValueError if there are none."""
        if not packets:
            raise ValueError("nothing to insert")
        rows = [{name: getattr(packet, name) for name in _BATCH_FIELDS} for packet in packets]
        with self._db.session() as session:
            session.execute(insert(Packet), rows)

    def iter_packets_for_antenna_after(
        self, antenna: Antenna, after: datetime
    ) -> Iterator[Packet]:
        """Non-experiment packets of the antenna received after the given time."""
        query = (
            select(Packet)
            .where(
                Packet.antenna_id == antenna.id,
                Packet.time > after,
                Packet.experiment_id.is_(None),
            )
            .order_by(Packet.id)
            .execution_options(yield_per=_STREAM_PAGE)
        )
        with self._db.session() as session:
            yield from session.scalars(query)

    def _stream(self, query: Select) -> Iterator[dict[str, Any]]:
        with self._db.session() as session:
            for row in session.execute(query.execution_options(yield_per=_STREAM_PAGE)):
                yield dict(row._mapping)

    def iter_packets_for_device(
        self,
        network_id: str,
        application_id: str,
        device_id: str,
        start_time: datetime,
        end_time: datetime,
        limit: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Non-experiment packets of matching devices strictly inside the time range.

        Empty identifiers do not filter.
        """
        query = _join_lookups(_detail_select()).outerjoin(
            Experiment, Packet.experiment_id == Experiment.id
        )
        query = query.where(
            Packet.experiment_id.is_(None),
            Packet.time > start_time,
            Packet.time < end_time,
        )
        if network_id:
            query = query.where(Device.network_id == network_id)
        if application_id:
            query = query.where(Device.app_id == application_id)
        if device_id:
            query = query.where(Device.dev_id == device_id)
        return self._stream(_apply_limit(query.order_by(Packet.id), limit))

    def iter_packets_for_gateway(
        self,
        network_id: str,
        gateway_id: str,
        start_time: datetime,
        end_time: datetime,
        limit: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Non-experiment packets heard by the gateway strictly inside the time range."""
        query = _join_lookups(_detail_select()).outerjoin(
            Experiment, Packet.experiment_id == Experiment.id
        )
        query = query.where(
            Packet.experiment_id.is_(None),
            Antenna.gateway_id == gateway_id,
            Packet.time > start_time,
            Packet.time < end_time,
        )
        if network_id:
            query = query.where(Antenna.network_id == network_id)
        return self._stream(_apply_limit(query.order_by(Packet.id), limit))

    def iter_packets_for_experiment(
        self,
        experiment: str,
        start_time: datetime,
        end_time: datetime,
        limit: int | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Packets of the named experiment strictly inside the time range."""
        query = _join_lookups(
            _detail_select().join(Experiment, Packet.experiment_id == Experiment.id)
        )
        query = query.where(
            Experiment.name == experiment,
            Packet.time > start_time,
            Packet.time < end_time,
        )
        return self._stream(_apply_limit(query.order_by(Packet.id), limit))