import json

import pytest

from mucbot.shared.config import Config, read_room_conf
from mucbot.shared.config_keys import ConfigKeys
from mucbot.shared.exceptions import ConfigurationError

from .helpers import logged

BOT_YAML = """
name: Bot
connection:
  jid: bot@example.com
  password: secret
handlers:
  - id: hello
    type: hello
rooms:
  - local: chat
    domain: conf.example
    nick: bot1
    handlers:
      - id: quotes
        type: quotes
        options:
          quotes: [a, b]
rooms_dir: rooms
handler_files: [extra.py]
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "XMPP_JID",
        "XMPP_PASSWORD",
        "XMPP_HOST",
        "XMPP_PORT",
        "MUCBOT_LOG_LEVEL",
        "MUCBOT_LOG_PATH",
        "MUCBOT_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)


def write(tmp_path, content, name="bot.yaml"):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_load_yaml(tmp_path):
    config = Config(str(write(tmp_path, BOT_YAML)))
    config.load()
    model = config.model
    assert model.name == "Bot"
    assert model.debug is False
    assert model.connection.type == "client"
    assert model.connection.port == 5222
    assert model.connection.host is None
    assert model.rooms_dir == str(tmp_path / "rooms")
    assert model.handler_files == [str(tmp_path / "extra.py")]
    assert model.log.level == "INFO"
    assert config.get(ConfigKeys.CONNECTION_JID) == "bot@example.com"


def test_room_confs_prepend_global_handlers(tmp_path):
    config = Config(str(write(tmp_path, BOT_YAML)))
    config.load()
    [room] = config.room_confs()
    assert (room.local, room.domain, room.nick, room.enabled) == (
        "chat",
        "conf.example",
        "bot1",
        True,
    )
    assert [h.id for h in room.handlers] == ["hello", "quotes"]
    assert room.handlers[1].options == {"quotes": ["a", "b"]}
    assert room.handlers[0].options == {}
    assert [h.id for h in config.model.rooms[0].handlers] == ["quotes"]


def test_load_json(tmp_path):
    data = {
        "connection": {
            "type": "component",
            "jid": "bot.example.com",
            "password": "secret",
            "host": "localhost",
        }
    }
    config = Config(str(write(tmp_path, json.dumps(data), "bot.json")))
    config.load()
    assert config.model.connection.port == 5347
    assert config.model.rooms == []


def test_component_requires_host(tmp_path):
    content = "connection: {type: component, jid: bot.example.com, password: s}\n"
    with pytest.raises(ConfigurationError):
        Config(str(write(tmp_path, content))).load()


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("XMPP_JID", "other@example.com")
    monkeypatch.setenv("XMPP_PORT", "5223")
    monkeypatch.setenv("MUCBOT_LOG_LEVEL", "debug")
    config = Config(str(write(tmp_path, BOT_YAML)))
    config.load()
    assert config.model.connection.jid == "other@example.com"
    assert config.model.connection.port == 5223
    assert config.model.log.level == "DEBUG"


def test_dotted_overrides(tmp_path):
    config = Config(str(write(tmp_path, BOT_YAML)))
    config.load({ConfigKeys.DEBUG: True, ConfigKeys.LOG_LEVEL: "WARNING"})
    assert config.model.debug is True
    assert config.get(ConfigKeys.LOG_LEVEL) == "WARNING"


def test_log_path_directory_is_created(tmp_path):
    log_path = tmp_path / "logs" / "bot.log"
    config = Config(str(write(tmp_path, BOT_YAML + f"log:\n  path: {log_path}\n")))
    config.load()
    assert log_path.parent.is_dir()


@pytest.mark.parametrize(
    "content",
    [
        "",
        "- a\n- b\n",
        "name: [unclosed\n",
        "name: Bot\n",
        "connection: {jid: a@b, password: p}\nlog: {level: LOUD}\n",
        "connection: {jid: a@b, password: p}\nrooms: [{local: '', domain: x}]\n",
    ],
)
def test_invalid_configuration(tmp_path, content):
    with pytest.raises(ConfigurationError):
        Config(str(write(tmp_path, content))).load()


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        Config(str(tmp_path / "missing.yaml")).load()


def test_get_before_load():
    config = Config("unused.yaml")
    assert config.get(ConfigKeys.LOG_PATH) is None
    assert config.get(ConfigKeys.LOG_PATH, "x") == "x"
    with pytest.raises(ConfigurationError):
        config.model


def test_read_room_conf(tmp_path, log_records):
    path = write(
        tmp_path,
        json.dumps(
            {
                "local": "Chat",
                "domain": "conf.example",
                "enabled": False,
                "handlers": [
                    {"id": "h1", "type": "hello", "options": None},
                    {"type": "hello"},
                    "nope",
                ],
            }
        ),
        "chat.json",
    )
    conf = read_room_conf(path)
    assert conf is not None
    assert conf.local == "Chat"
    assert conf.enabled is False
    assert conf.nick is None
    assert [h.id for h in conf.handlers] == ["h1"]
    assert conf.handlers[0].options == {}
    assert logged(log_records, "WARNING", "without id or type")


@pytest.mark.parametrize(
    "content",
    ["", "{not json", "{\"domain\": \"conf.example\"}", "[1, 2]"],
)
def test_read_room_conf_failures(tmp_path, content, log_records):
    assert read_room_conf(write(tmp_path, content, "room.json")) is None
    assert logged(log_records, "ERROR", "Failed to read room configuration")


def test_read_missing_room_conf(tmp_path):
    assert read_room_conf(tmp_path / "missing.json") is None
