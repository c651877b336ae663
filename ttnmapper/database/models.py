"""Database tables for raw packets, gateways and coverage aggregates."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, NamedTuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Double,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    Numeric,
    SmallInteger,
    Text,
    inspect as sa_inspect,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_Id = BigInteger().with_variant(Integer, "sqlite")


class _UTCDateTime(TypeDecorator):
    """Timestamps stored in UTC and always read back as aware datetimes."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _num(precision: int, scale: int) -> Numeric:
    return Numeric(precision, scale, asdecimal=False)


def _pk() -> Any:
    return mapped_column(_Id, primary_key=True, autoincrement=True)


class Base(DeclarativeBase):
    """Declarative base whose constructor fills unset columns with their defaults."""

    def __init__(self, **kwargs: Any) -> None:
        cls = type(self)
        for attr in sa_inspect(cls).column_attrs:
            if attr.key in kwargs:
                continue
            default = attr.columns[0].default
            if default is not None and default.is_scalar:
                kwargs[attr.key] = default.arg
        for key, value in kwargs.items():
            if not hasattr(cls, key):
                raise TypeError(f"{key!r} is not a field of {cls.__name__}")
            setattr(self, key, value)


class GridCellKey(NamedTuple):
    """Identifies a grid cell: antenna and zoom-19 tile coordinates."""

    antenna_id: int
    x: int
    y: int


class RadarBeamKey(NamedTuple):
    """Identifies a radar beam: antenna, signal level and bearing."""

    antenna_id: int
    level: int
    bearing: int


class Packet(Base):
    """One reception of an uplink by one gateway antenna."""

    __tablename__ = "packets"

    id: Mapped[int] = _pk()
    time: Mapped[datetime] = mapped_column(_UTCDateTime, nullable=False, default=ZERO_TIME)
    device_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("devices.id"), nullable=False, default=0
    )
    f_port: Mapped[int] = mapped_column(SmallInteger, default=0)
    f_cnt: Mapped[int] = mapped_column(BigInteger, default=0)
    frequency_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("frequencies.id"), default=0
    )
    data_rate_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("data_rates.id"), default=0)
    coding_rate_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("coding_rates.id"), default=0
    )
    antenna_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("antennas.id"), nullable=False, default=0
    )
    gateway_time: Mapped[datetime | None] = mapped_column(_UTCDateTime, default=None)
    timestamp: Mapped[int | None] = mapped_column(BigInteger, default=None)
    fine_timestamp: Mapped[int | None] = mapped_column(BigInteger, default=None)
    fine_timestamp_encrypted: Mapped[bytes | None] = mapped_column(LargeBinary, default=None)
    fine_timestamp_key_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    channel_index: Mapped[int] = mapped_column(BigInteger, default=0)
    rssi: Mapped[float] = mapped_column(_num(6, 2), default=0.0)
    signal_rssi: Mapped[float | None] = mapped_column(_num(6, 2), default=None)
    snr: Mapped[float] = mapped_column(_num(5, 2), default=0.0)
    latitude: Mapped[float] = mapped_column(_num(10, 6), nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(_num(10, 6), nullable=False, default=0.0)
    altitude: Mapped[float] = mapped_column(_num(6, 1), default=0.0)
    accuracy_meters: Mapped[float | None] = mapped_column(_num(6, 2), default=None)
    satellites: Mapped[int | None] = mapped_column(Integer, default=None)
    hdop: Mapped[float | None] = mapped_column(_num(4, 1), default=None)
    accuracy_source_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("accuracy_sources.id"), default=0
    )
    experiment_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("experiments.id"), default=None
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), default=0)
    user_agent_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("user_agents.id"), default=0
    )
    deleted_at: Mapped[datetime | None] = mapped_column(_UTCDateTime, default=None)

    __table_args__ = (
        Index("idx_packets_antenna_id_time_experiment_id", "time"),
        Index("idx_packets_device_id_time", "time"),
        Index(
            "idx_packets_experiment_id_time",
            "experiment_id",
            "time",
            postgresql_where=text("experiment_id is not null"),
            sqlite_where=text("experiment_id is not null"),
        ),
        Index("idx_packets_device_id_time_experiment_id", "device_id", "experiment_id"),
        Index("idx_packets_antenna_id_time", "antenna_id"),
        Index(
            "idx_packets_antenna_id_latitude_experiment_id",
            "antenna_id",
            "latitude",
            "experiment_id",
        ),
        Index(
            "idx_packets_antenna_id_longitude_experiment_id",
            "antenna_id",
            "longitude",
            "experiment_id",
        ),
        Index("idx_packets_antenna_id_frequency_id", "frequency_id"),
    )


class Device(Base):
    """An end device, identified per network and application."""

    __tablename__ = "devices"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    app_id: Mapped[str] = mapped_column(Text, default="")
    dev_id: Mapped[str] = mapped_column(Text, default="")
    dev_eui: Mapped[str] = mapped_column(Text, default="")

    __table_args__ = (
        Index("net_app_dev_eui", "network_id", "app_id", "dev_id", "dev_eui", unique=True),
    )


class Frequency(Base):
    """A radio frequency in Hz."""

    __tablename__ = "frequencies"

    id: Mapped[int] = _pk()
    herz: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, default=0)


class DataRate(Base):
    """A modulation setting: LORA, FSK or LORA-E with its parameters."""

    __tablename__ = "data_rates"

    id: Mapped[int] = _pk()
    modulation: Mapped[str] = mapped_column(Text, default="")
    bandwidth: Mapped[int] = mapped_column(BigInteger, default=0)
    spreading_factor: Mapped[int] = mapped_column(SmallInteger, default=0)
    bitrate: Mapped[int] = mapped_column(BigInteger, default=0)

    __table_args__ = (
        Index("data_rate", "modulation", "bandwidth", "spreading_factor", "bitrate", unique=True),
    )


class CodingRate(Base):
    """A LoRa coding rate such as 4/5."""

    __tablename__ = "coding_rates"

    id: Mapped[int] = _pk()
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False, default="")


class AccuracySource(Base):
    """Where a measurement's location came from."""

    __tablename__ = "accuracy_sources"

    id: Mapped[int] = _pk()
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False, default="")


class Experiment(Base):
    """A named experiment whose packets are kept out of the main map."""

    __tablename__ = "experiments"

    id: Mapped[int] = _pk()
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False, default="")


class User(Base):
    """A contributor of measurements."""

    __tablename__ = "users"

    id: Mapped[int] = _pk()
    identifier: Mapped[str] = mapped_column(Text, unique=True, nullable=False, default="")


class UserAgent(Base):
    """The application that submitted a measurement."""

    __tablename__ = "user_agents"

    id: Mapped[int] = _pk()
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False, default="")


class Antenna(Base):
    """One antenna of a gateway; coverage is stored per antenna."""

    __tablename__ = "antennas"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_id: Mapped[str] = mapped_column(Text, default="")
    antenna_index: Mapped[int] = mapped_column(SmallInteger, default=0)

    __table_args__ = (
        Index("idx_gtw_id_antenna", "network_id", "gateway_id", "antenna_index", unique=True),
    )


class Gateway(Base):
    """A gateway's latest known state."""

    __tablename__ = "gateways"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_id: Mapped[str] = mapped_column(Text, default="")
    gateway_eui: Mapped[str | None] = mapped_column(Text, default=None)
    name: Mapped[str | None] = mapped_column(Text, default=None)
    latitude: Mapped[float] = mapped_column(Double, default=0.0)
    longitude: Mapped[float] = mapped_column(Double, default=0.0)
    altitude: Mapped[int] = mapped_column(Integer, default=0)
    location_accuracy: Mapped[int | None] = mapped_column(Integer, default=None)
    location_source: Mapped[str | None] = mapped_column(Text, default=None)
    last_heard: Mapped[datetime] = mapped_column(_UTCDateTime, default=ZERO_TIME)
    attributes: Mapped[Any] = mapped_column(JSON, nullable=True, default=None)

    __table_args__ = (
        Index("idx_gtw_id", "network_id", "gateway_id", unique=True),
        Index("idx_gtw_network_name", "network_id", "name"),
    )


class GatewayLocation(Base):
    """A location a gateway was installed at, from a given time."""

    __tablename__ = "gateway_locations"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_id: Mapped[str] = mapped_column(Text, default="")
    installed_at: Mapped[datetime] = mapped_column(_UTCDateTime, default=ZERO_TIME)
    latitude: Mapped[float] = mapped_column(Double, default=0.0)
    longitude: Mapped[float] = mapped_column(Double, default=0.0)
    altitude: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_gtw_id_install", "network_id", "gateway_id", "installed_at"),
    )


class GatewayLocationForce(Base):
    """A location that overrides what a gateway reports; 0,0 blacklists it."""

    __tablename__ = "gateway_location_forces"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_id: Mapped[str] = mapped_column(Text, default="")
    latitude: Mapped[float] = mapped_column(Double, default=0.0)
    longitude: Mapped[float] = mapped_column(Double, default=0.0)
    altitude: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_gtw_id_force", "network_id", "gateway_id", unique=True),
    )


class FineTimestampKeyID(Base):
    """Identifier of the key that encrypted a fine timestamp."""

    __tablename__ = "fine_timestamp_key_ids"

    id: Mapped[int] = _pk()
    fine_timestamp_encrypted_key_id: Mapped[str] = mapped_column(Text, default="")


class TtsV3FetchStatus(Base):
    """A tenant whose gateway list is fetched through its API."""

    __tablename__ = "tts_v3_fetch_statuses"

    id: Mapped[int] = _pk()
    tenant_id: Mapped[str] = mapped_column(Text, default="")
    api_key: Mapped[str] = mapped_column(Text, default="")


class PacketBrokerRoutingPolicy(Base):
    """What a forwarder network passes on to a home network."""

    __tablename__ = "packet_broker_routing_policies"

    id: Mapped[int] = _pk()
    home_network_id: Mapped[str] = mapped_column(Text, default="")
    forwarder_network_id: Mapped[str] = mapped_column(Text, default="")
    uplink_join_request: Mapped[bool] = mapped_column(Boolean, default=False)
    uplink_mac_data: Mapped[bool] = mapped_column(Boolean, default=False)
    uplink_application_data: Mapped[bool] = mapped_column(Boolean, default=False)
    uplink_signal_quality: Mapped[bool] = mapped_column(Boolean, default=False)
    uplink_localization: Mapped[bool] = mapped_column(Boolean, default=False)
    downlink_join_accept: Mapped[bool] = mapped_column(Boolean, default=False)
    downlink_mac_data: Mapped[bool] = mapped_column(Boolean, default=False)
    downlink_application_data: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("idx_pb_route", "home_network_id", "forwarder_network_id", unique=True),
    )


class NetworkSubscription(Base):
    """Which optional gateway details a network has agreed to publish."""

    __tablename__ = "network_subscriptions"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_names: Mapped[bool] = mapped_column(Boolean, default=False)
    gateway_descriptions: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (Index("idx_subs_networkid", "network_id", unique=True),)


class GatewayBoundingBox(Base):
    """The extent of a gateway's measured coverage."""

    __tablename__ = "gateway_bounding_boxes"

    id: Mapped[int] = _pk()
    network_id: Mapped[str] = mapped_column(Text, default="")
    gateway_id: Mapped[str] = mapped_column(Text, default="")
    north: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    south: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    east: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    west: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)

    __table_args__ = (
        Index("idx_bbox_gtw_id", "network_id", "gateway_id", unique=True),
        Index("idx_coords_bbox", "north", "south", "east", "west"),
    )


class GridCell(Base):
    """Signal-strength histogram of one antenna in one zoom-19 map tile."""

    __tablename__ = "grid_cells"

    id: Mapped[int] = _pk()
    antenna_id: Mapped[int] = mapped_column(BigInteger, default=0)
    x: Mapped[int] = mapped_column(BigInteger, default=0)
    y: Mapped[int] = mapped_column(BigInteger, default=0)
    last_updated: Mapped[datetime] = mapped_column(_UTCDateTime, default=ZERO_TIME)
    bucket_high: Mapped[int] = mapped_column(BigInteger, default=0)
    bucket_100: Mapped[int] = mapped_column("bucket100", BigInteger, default=0)
    bucket_105: Mapped[int] = mapped_column("bucket105", BigInteger, default=0)
    bucket_110: Mapped[int] = mapped_column("bucket110", BigInteger, default=0)
    bucket_115: Mapped[int] = mapped_column("bucket115", BigInteger, default=0)
    bucket_120: Mapped[int] = mapped_column("bucket120", BigInteger, default=0)
    bucket_125: Mapped[int] = mapped_column("bucket125", BigInteger, default=0)
    bucket_130: Mapped[int] = mapped_column("bucket130", BigInteger, default=0)
    bucket_135: Mapped[int] = mapped_column("bucket135", BigInteger, default=0)
    bucket_140: Mapped[int] = mapped_column("bucket140", BigInteger, default=0)
    bucket_145: Mapped[int] = mapped_column("bucket145", BigInteger, default=0)
    bucket_low: Mapped[int] = mapped_column(BigInteger, default=0)
    bucket_no_signal: Mapped[int] = mapped_column(BigInteger, default=0)

    __table_args__ = (Index("idx_grid_cell", "antenna_id", "x", "y", unique=True),)

    def key(self) -> GridCellKey:
        """The cell's identifying key."""
        return GridCellKey(self.antenna_id, self.x, self.y)


class RadarBeam(Base):
    """Farthest distances heard by one antenna at one level and bearing."""

    __tablename__ = "radar_beams"

    id: Mapped[int] = _pk()
    antenna_id: Mapped[int] = mapped_column(BigInteger, default=0)
    level: Mapped[int] = mapped_column(Integer, default=0)
    bearing: Mapped[int] = mapped_column(BigInteger, default=0)
    samples: Mapped[int] = mapped_column(BigInteger, default=0)
    last_updated: Mapped[datetime] = mapped_column(_UTCDateTime, default=ZERO_TIME)
    distance_max: Mapped[float] = mapped_column(Double, default=0.0)
    distance_2nd: Mapped[float] = mapped_column("distance2nd", Double, default=0.0)

    __table_args__ = (
        Index("idx_radar_beam", "antenna_id", "level", "bearing", unique=True),
    )

    def key(self) -> RadarBeamKey:
        """The beam's identifying key."""
        return RadarBeamKey(self.antenna_id, self.level, self.bearing)