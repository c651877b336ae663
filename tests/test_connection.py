import pytest
from sqlalchemy import func, select

from ttnmapper.database.connection import Database, DatabaseSettings
from ttnmapper.database.models import (
    Experiment,
    NetworkSubscription,
    PacketBrokerRoutingPolicy,
    TtsV3FetchStatus,
)

PASSWORD = "password"


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.auto_migrate(Experiment, PacketBrokerRoutingPolicy, NetworkSubscription, TtsV3FetchStatus)
    yield database
    database.engine.dispose()


def test_from_env_defaults():
    settings = DatabaseSettings.from_env({})
    assert settings == DatabaseSettings()
    assert settings.host == "localhost"
    assert settings.port == "5432"
    assert settings.debug_log is True


def test_from_env_overrides():
    settings = DatabaseSettings.from_env(
        {
            "POSTGRES_HOST": "db",
            "POSTGRES_PORT": "5433",
            "POSTGRES_USER": "mapper",
            "POSTGRES_PASSWORD": PASSWORD,
            "POSTGRES_DATABASE": "maps",
            "POSTGRES_DEBUG_LOG": "false",
        }
    )
    assert (settings.host, settings.port, settings.user, settings.database) == ("db", "5433", "mapper", "maps")
    assert settings.password == PASSWORD
    assert settings.debug_log is False
    assert DatabaseSettings.from_env({"POSTGRES_DEBUG_LOG": "1"}).debug_log is True


def test_from_env_rejects_bad_bool():
    with pytest.raises(ValueError):
        DatabaseSettings.from_env({"POSTGRES_DEBUG_LOG": "maybe"})


def test_dsn_holds_all_parameters():
    settings = DatabaseSettings(host="db", port="5433", user="mapper", password=PASSWORD, database="maps")
    parts = dict(part.split("=", 1) for part in settings.dsn("inserter").split())
    assert parts["host"] == "db"
    assert parts["port"] == "5433"
    assert parts["user"] == "mapper"
    assert parts["dbname"] == "maps"
    assert parts["password"] == PASSWORD
    assert parts["sslmode"] == "disable"
    assert parts["application_name"] == "inserter"


def test_application_name_is_truncated():
    dsn = DatabaseSettings().dsn("a" * 100)
    name = dsn.split("application_name=")[1]
    assert len(name) == 63
    assert set(name) == {"a"}


def test_url_matches_settings():
    settings = DatabaseSettings(host="db", port="5433", user="mapper", password=PASSWORD, database="maps")
    url = settings.url("inserter")
    assert url.host == "db"
    assert url.port == 5433
    assert url.username == "mapper"
    assert url.database == "maps"
    assert url.query["sslmode"] == "disable"
    assert url.query["application_name"] == "inserter"


def test_experiment_list_is_sorted(db):
    with db.session() as session:
        session.add_all([Experiment(name="zeta"), Experiment(name="alpha"), Experiment(name="beta-run")])
    assert [e.name for e in db.get_experiment_list()] == ["alpha", "beta-run", "zeta"]


def test_find_experiment_matches_substring(db):
    with db.session() as session:
        session.add_all([Experiment(name="zeta"), Experiment(name="alpha"), Experiment(name="beta-run")])
    assert [e.name for e in db.find_experiment("et")] == ["beta-run", "zeta"]
    assert db.find_experiment("nothing-like-this") == []


def test_session_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.session() as session:
            session.add(Experiment(name="lost"))
            raise RuntimeError("boom")
    assert db.get_experiment_list() == []


def test_peered_networks_need_application_data(db):
    with db.session() as session:
        session.add_all(
            [
                PacketBrokerRoutingPolicy(home_network_id="home", forwarder_network_id="f1", uplink_application_data=True),
                PacketBrokerRoutingPolicy(home_network_id="home", forwarder_network_id="f2", uplink_application_data=False),
                PacketBrokerRoutingPolicy(home_network_id="other", forwarder_network_id="f3", uplink_application_data=True),
            ]
        )
    assert [p.forwarder_network_id for p in db.get_peered_networks("home")] == ["f1"]


def test_missing_network_subscription_enables_nothing(db):
    subscription = db.get_network_subscription("NS_TTS_V3://ttn@000013")
    assert subscription.id is None
    assert subscription.gateway_names is False
    assert subscription.gateway_descriptions is False


def test_existing_network_subscription(db):
    with db.session() as session:
        session.add(NetworkSubscription(network_id="NS_TTS_V3://ttn@000013", gateway_names=True))
    subscription = db.get_network_subscription("NS_TTS_V3://ttn@000013")
    assert subscription.gateway_names is True
    assert subscription.gateway_descriptions is False


def test_insert_or_update_routing_policy(db):
    first = db.insert_or_update_routing_policy(
        PacketBrokerRoutingPolicy(home_network_id="h", forwarder_network_id="f", uplink_mac_data=True)
    )
    second = db.insert_or_update_routing_policy(
        PacketBrokerRoutingPolicy(home_network_id="h", forwarder_network_id="f", downlink_join_accept=True)
    )
    assert first.id == second.id
    with db.session() as session:
        assert session.scalar(select(func.count()).select_from(PacketBrokerRoutingPolicy)) == 1
        stored = session.scalars(select(PacketBrokerRoutingPolicy)).one()
        assert stored.uplink_mac_data is False
        assert stored.downlink_join_accept is True


def test_tts_networks_to_fetch(db):
    with db.session() as session:
        session.add_all([TtsV3FetchStatus(tenant_id="one", api_key="token"), TtsV3FetchStatus(tenant_id="two")])
    assert [n.tenant_id for n in db.get_all_tts_networks_to_fetch()] == ["one", "two"]