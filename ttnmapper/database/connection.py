"""Database connection settings, sessions and small lookup queries."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, select
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ttnmapper.database.models import (
    Base,
    Experiment,
    NetworkSubscription,
    PacketBrokerRoutingPolicy,
    TtsV3FetchStatus,
)

logger = logging.getLogger(__name__)

# Postgres rejects application names longer than this.
_MAX_APPLICATION_NAME = 63
_CREATE_BATCH_SIZE = 1000

PASSWORD = "password"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class RecordNotFoundError(LookupError):
    """A requested row does not exist."""


def _parse_bool(name: str, text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean value {text!r} for {name}")


def _application_name() -> str:
    program = sys.argv[0] if sys.argv and sys.argv[0] else "python"
    return os.path.basename(program)[:_MAX_APPLICATION_NAME]


@dataclass
class DatabaseSettings:
    """Connection parameters for the Postgres database."""

    host: str = "localhost"
    port: str = "5432"
    user: str = "username"
    password: str = PASSWORD
    database: str = "database"
    debug_log: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DatabaseSettings:
        """Settings from POSTGRES_* variables, falling back to the defaults."""
        env = os.environ if environ is None else environ
        settings = cls()
        for attr, name in (
            ("host", "POSTGRES_HOST"),
            ("port", "POSTGRES_PORT"),
            ("user", "POSTGRES_USER"),
            ("password", "POSTGRES_PASSWORD"),
            ("database", "POSTGRES_DATABASE"),
        ):
            if name in env:
                setattr(settings, attr, env[name])
        if "POSTGRES_DEBUG_LOG" in env:
            settings.debug_log = _parse_bool("POSTGRES_DEBUG_LOG", env["POSTGRES_DEBUG_LOG"])
        return settings

    def dsn(self, application_name: str | None = None) -> str:
        """A libpq key/value connection string."""
        name = (application_name or _application_name())[:_MAX_APPLICATION_NAME]
        return (
            f"host={self.host} port={self.port} user={self.user} dbname={self.database}"
            f" password={self.password} sslmode=disable application_name={name}"
        )

    def url(self, application_name: str | None = None) -> URL:
        """A connection URL for the Postgres dialect."""
        name = (application_name or _application_name())[:_MAX_APPLICATION_NAME]
        return URL.create(
            "postgresql",
            username=self.user,
            password=self.password,
            host=self.host,
            port=int(self.port),
            database=self.database,
            query={"sslmode": "disable", "application_name": name},
        )


class Database:
    """An engine with a session factory and the simple queries built on it."""

    def __init__(self, url: str | URL, debug_log: bool = False) -> None:
        if debug_log:
            logger.info("Database debug logging enabled")
        self.engine = create_engine(
            url, echo=debug_log, insertmanyvalues_page_size=_CREATE_BATCH_SIZE
        )
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> Database:
        url = settings.url()
        logger.info("Connecting to %s", url.render_as_string(hide_password=True))
        return cls(url, debug_log=settings.debug_log)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """A session that commits on success and rolls back on error."""
        with self._sessions.begin() as session:
            yield session

    def auto_migrate(self, *args: type[Base]) -> None:
        """Create the tables of the given models if they do not exist."""
        if not args:
            return
        logger.info("Performing auto migrate")
        try:
            Base.metadata.create_all(self.engine, tables=[model.__table__ for model in args])
        except SQLAlchemyError as error:
            logger.error("Unable autoMigrateDB - %s", error)

    def get_all_tts_networks_to_fetch(self) -> list[TtsV3FetchStatus]:
        with self.session() as session:
            return list(session.scalars(select(TtsV3FetchStatus).order_by(TtsV3FetchStatus.id)))

    def get_experiment_list(self) -> list[Experiment]:
        with self.session() as session:
            return list(session.scalars(select(Experiment).order_by(Experiment.name.asc())))

    def find_experiment(self, name: str) -> list[Experiment]:
        """Experiments whose name contains the given text, by name."""
        with self.session() as session:
            query = (
                select(Experiment)
                .where(Experiment.name.like(f"%{name}%"))
                .order_by(Experiment.name.asc())
            )
            return list(session.scalars(query))

    def get_peered_networks(self, network_id: str) -> list[PacketBrokerRoutingPolicy]:
        """Policies under which other networks forward application data to this one."""
        policy = PacketBrokerRoutingPolicy
        with self.session() as session:
            query = select(policy).where(
                policy.home_network_id == network_id,
                policy.uplink_application_data.is_(True),
            )
            return list(session.scalars(query))

    def get_network_subscription(self, network_id: str) -> NetworkSubscription:
        """The network's subscription; an unsaved one with nothing enabled if none exists."""
        with self.session() as session:
            query = select(NetworkSubscription).where(
                NetworkSubscription.network_id == network_id
            )
            found = session.scalars(query.order_by(NetworkSubscription.id).limit(1)).first()
        return found if found is not None else NetworkSubscription()

    def insert_or_update_routing_policy(
        self, policy: PacketBrokerRoutingPolicy
    ) -> PacketBrokerRoutingPolicy:
        """Store the policy, replacing any with the same home and forwarder network.

        The policy's id is set to that of the stored row.
        """
        model = PacketBrokerRoutingPolicy
        with self.session() as session:
            query = select(model).where(
                model.home_network_id == policy.home_network_id,
                model.forwarder_network_id == policy.forwarder_network_id,
            )
            existing = session.scalars(query.limit(1)).first()
            if existing is None:
                existing = model(
                    home_network_id=policy.home_network_id,
                    forwarder_network_id=policy.forwarder_network_id,
                )
                session.add(existing)
                session.flush()
            policy.id = existing.id
            return session.merge(policy)