"""
Tests for configuration defaults, document loading and validation
"""

import os
import json
import tempfile

import pytest

from provisioner.config import Config, load_desired_state, parse_desired_state, resolve_env
from provisioner.errors import ConfigError
from provisioner.models import DatabaseGrant, DesiredState, ServerTarget


def write_config(directory, content, name="config.yaml"):
    path = os.path.join(directory, name)
    with open(path, 'w') as f:
        f.write(content)
    return path


def test_config_defaults():
    """Test configuration loading"""
    print("🧪 Testing Config...")

    assert Config.CONFIG_PATH == "/config/config.json", "Default config path should be /config/config.json"
    assert Config.WATCH_MODE is False, "Watch mode should be off by default"
    assert Config.CHECK_INTERVAL == 10, "Default check interval should be 10"
    assert Config.MAX_RETRIES == 5, "Default max retries should be 5"

    print("✅ Config tests passed!")


def test_load_json_config():
    document = {
        "servers": [
            {
                "name": "pg",
                "root_connection_string": "postgres://postgres:pw@db:5432/postgres",
                "databases": [
                    {"database": "app", "user": "alice", "password": "secret"},
                    {"database": "reports", "user": "alice", "password": "secret"},
                ],
            },
            {
                "root_connection_string": "mariadb://root:pw@maria:3306/",
                "databases": [{"database": "shop", "user": "bob", "password": "pw"}],
            },
        ]
    }

    with tempfile.TemporaryDirectory() as tmp:
        path = write_config(tmp, json.dumps(document), name="config.json")
        state = load_desired_state(path)

    assert len(state.servers) == 2
    assert state.servers[0].managed_entities[1] == DatabaseGrant("reports", "alice", "secret")
    assert state.servers[1].name == ""
    assert state.servers[1].display_name(1) == "Server 2", "Empty name should fall back to position"


def test_load_yaml_config_resolves_environment():
    content = """
servers:
  - name: primary
    root_connection_string: postgres://postgres:${TEST_PG_ROOT}@db:5432/postgres
    databases:
      - database: app
        user: app
        password: ${TEST_APP_PASSWORD}
"""
    env = {"TEST_PG_ROOT": "rootpw", "TEST_APP_PASSWORD": "apppw"}

    with tempfile.TemporaryDirectory() as tmp:
        path = write_config(tmp, content)
        with pytest.MonkeyPatch.context() as mp:
            for key, value in env.items():
                mp.setenv(key, value)
            state = load_desired_state(path)

    server = state.servers[0]
    assert server.connection_descriptor == "postgres://postgres:rootpw@db:5432/postgres"
    assert server.managed_entities[0].password == "apppw"


def test_resolve_env_missing_variable():
    with pytest.raises(ConfigError):
        resolve_env({"password": "${DEFINITELY_NOT_SET_ANYWHERE}"}, environ={})

    assert resolve_env(["a-${X}", 3], environ={"X": "1"}) == ["a-1", 3]


def test_missing_file_is_config_error():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(ConfigError):
            load_desired_state(os.path.join(tmp, "absent.json"))


def test_malformed_file_is_config_error():
    with tempfile.TemporaryDirectory() as tmp:
        path = write_config(tmp, "servers: [unclosed")
        with pytest.raises(ConfigError):
            load_desired_state(path)


def test_empty_desired_state_fails_validation():
    with pytest.raises(ConfigError):
        DesiredState(servers=()).validate()
    with pytest.raises(ConfigError):
        parse_desired_state({"servers": []})
    with pytest.raises(ConfigError):
        parse_desired_state(["not", "a", "mapping"])


def test_server_without_descriptor_fails_validation():
    grant = DatabaseGrant("app", "alice", "pw")
    with pytest.raises(ConfigError) as exc_info:
        DesiredState(servers=(ServerTarget("pg", "", (grant,)),)).validate()

    assert "root connection string is required" in str(exc_info.value)


def test_server_without_grants_fails_validation():
    with pytest.raises(ConfigError) as exc_info:
        parse_desired_state({"servers": [{"name": "pg", "root_connection_string": "postgres://db"}]})

    assert "at least one database configuration is required" in str(exc_info.value)


def test_entry_missing_password_fails_validation():
    document = {"servers": [{
        "root_connection_string": "postgres://db",
        "databases": [{"database": "app", "user": "alice"}],
    }]}

    with pytest.raises(ConfigError) as exc_info:
        parse_desired_state(document)

    assert "'password' is required" in str(exc_info.value)


def test_unquoted_yaml_scalars_are_rejected():
    """YAML ints and bools must not silently become different credentials"""
    template = """
servers:
  - root_connection_string: postgres://db
    databases:
      - database: app
        user: alice
        password: {password}
"""
    with tempfile.TemporaryDirectory() as tmp:
        for password in ("0755", "yes", "12345"):
            path = write_config(tmp, template.format(password=password))
            with pytest.raises(ConfigError) as exc_info:
                load_desired_state(path)
            assert "'password' must be a string" in str(exc_info.value)

        path = write_config(tmp, template.format(password='"0755"'))
        state = load_desired_state(path)

    assert state.servers[0].managed_entities[0].password == "0755", "Quoted value stays verbatim"


def test_non_string_descriptor_is_rejected():
    document = {"servers": [{
        "root_connection_string": 5432,
        "databases": [{"database": "app", "user": "alice", "password": "pw"}],
    }]}

    with pytest.raises(ConfigError):
        parse_desired_state(document)


def test_password_hidden_from_repr():
    grant = DatabaseGrant("app", "alice", "top-secret")
    server = ServerTarget("pg", "postgres://root:root-secret@db", (grant,))

    assert "top-secret" not in repr(grant)
    assert "root-secret" not in repr(server)
