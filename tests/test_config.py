from pathlib import Path

import pytest

from cqlops.core.config import StoreConfig, load_config
from cqlops.core.errors import ConfigurationError

ENV_VARS = (
    "CQLOPS_CONFIG_FILE",
    "CQLOPS_NODES",
    "CQLOPS_PORT",
    "CQLOPS_KEYSPACE",
    "CQLOPS_USERNAME",
    "CQLOPS_PASSWORD",
    "CQLOPS_DATACENTER",
    "CQLOPS_REPLICATION",
    "CQLOPS_DURABLE_WRITES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "cqlopscfg"
    path.write_text(body)
    return path


def test_default_profile(tmp_path: Path):
    path = _write(
        tmp_path,
        "[DEFAULT]\n"
        "nodes = 10.0.0.1, 10.0.0.2\n"
        "port = 19042\n"
        "keyspace = app\n"
        "replication = dc1:3, dc2:2\n"
        "durable_writes = yes\n",
    )

    config = load_config(path=path)

    assert isinstance(config, StoreConfig)
    assert config.model_dump() == {
        "keyspace": "app",
        "nodes": ("10.0.0.1", "10.0.0.2"),
        "port": 19042,
        "username": None,
        "password": None,
        "datacenter": None,
        "replication": {"dc1": 3, "dc2": 2},
        "durable_writes": True,
    }
    assert config.local_datacenter == "dc1"


def test_named_profile_inherits_defaults(tmp_path: Path):
    path = _write(
        tmp_path,
        "[DEFAULT]\nkeyspace = app\nport = 9043\n\n[staging]\nnodes = staging-db\n",
    )

    config = load_config("staging", path=path)

    assert config.nodes == ("staging-db",)
    assert config.port == 9043
    assert config.keyspace == "app"


def test_environment_overrides_the_file(tmp_path: Path, monkeypatch):
    path = _write(tmp_path, "[DEFAULT]\nkeyspace = app\nnodes = a\n")
    monkeypatch.setenv("CQLOPS_NODES", "b,c")
    monkeypatch.setenv("CQLOPS_KEYSPACE", "other")
    monkeypatch.setenv("CQLOPS_USERNAME", "svc")
    monkeypatch.setenv("CQLOPS_PASSWORD", "secret")
    monkeypatch.setenv("CQLOPS_DATACENTER", "eu-west")
    monkeypatch.setenv("CQLOPS_REPLICATION", "eu-west:2")

    config = load_config(path=path)

    assert config.nodes == ("b", "c")
    assert config.keyspace == "other"
    assert (config.username, config.password) == ("svc", "secret")
    assert config.local_datacenter == "eu-west"
    assert config.replication == {"eu-west": 2}
    assert config.redacted().password == "***"
    assert config.password == "secret"


def test_empty_environment_values_are_ignored(tmp_path: Path, monkeypatch):
    path = _write(tmp_path, "[DEFAULT]\nkeyspace = app\nnodes = a\n")
    monkeypatch.setenv("CQLOPS_NODES", "")

    assert load_config(path=path).nodes == ("a",)


def test_keyword_overrides_win(tmp_path: Path, monkeypatch):
    path = _write(tmp_path, "[DEFAULT]\nkeyspace = app\n")
    monkeypatch.setenv("CQLOPS_KEYSPACE", "from_env")

    assert load_config(path=path, keyspace="explicit").keyspace == "explicit"


def test_config_file_location_from_environment(tmp_path: Path, monkeypatch):
    path = _write(tmp_path, "[DEFAULT]\nkeyspace = from_env_file\n")
    monkeypatch.setenv("CQLOPS_CONFIG_FILE", str(path))

    assert load_config().keyspace == "from_env_file"


def test_missing_file_uses_environment_only(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CQLOPS_KEYSPACE", "app")

    config = load_config(path=tmp_path / "absent")

    assert config.nodes == ("127.0.0.1",)
    assert config.port == 9042
    assert config.local_datacenter == "datacenter1"


@pytest.mark.parametrize(
    ("body", "match"),
    [
        ("[DEFAULT]\nnodes = a\n", "No keyspace"),
        ("[DEFAULT]\nkeyspace = bad-name\n", "Invalid keyspace"),
        ("[DEFAULT]\nkeyspace = app\nport = nine\n", "Invalid port"),
        ("[DEFAULT]\nkeyspace = app\nport = 70000\n", "Invalid port"),
        ("[DEFAULT]\nkeyspace = app\nnodes = ,\n", "Invalid nodes"),
        ("[DEFAULT]\nkeyspace = app\nreplication = dc1\n", "Invalid replication"),
        ("[DEFAULT]\nkeyspace = app\nreplication = dc1:x\n", "Invalid replication"),
        ("[DEFAULT]\nkeyspace = app\ndurable_writes = maybe\n", "Invalid durable_writes"),
    ],
)
def test_invalid_values(tmp_path: Path, body: str, match: str):
    with pytest.raises(ConfigurationError, match=match):
        load_config(path=_write(tmp_path, body))


def test_unknown_profile(tmp_path: Path):
    path = _write(tmp_path, "[DEFAULT]\nkeyspace = app\n")

    with pytest.raises(ConfigurationError, match="Profile 'prod' not found"):
        load_config("prod", path=path)


def test_direct_construction_validates():
    config = StoreConfig(keyspace="app", nodes="x, y")

    assert config.nodes == ("x", "y")
    with pytest.raises(ValueError):
        StoreConfig(keyspace="not valid")
