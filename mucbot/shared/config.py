import os
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .config_keys import ConfigKeys
from .constants import CLIENT_DEFAULT_PORT, COMPONENT_DEFAULT_PORT
from .exceptions import ConfigurationError

__all__ = (
    "AppConfig",
    "Config",
    "ConnectionConfig",
    "HandlerConf",
    "LogConfig",
    "RoomConf",
    "read_room_conf",
)

_MISSING = object()

_ENV_TO_KEY = {
    "XMPP_JID": ConfigKeys.CONNECTION_JID,
    "XMPP_PASSWORD": ConfigKeys.CONNECTION_PASSWORD,
    "XMPP_HOST": ConfigKeys.CONNECTION_HOST,
    "XMPP_PORT": ConfigKeys.CONNECTION_PORT,
    "MUCBOT_LOG_PATH": ConfigKeys.LOG_PATH,
    "MUCBOT_LOG_LEVEL": ConfigKeys.LOG_LEVEL,
}


def _set_dotted(config: dict[str, Any], dotted: str, value: Any) -> None:
    cur: dict[str, Any] = config
    parts = dotted.split(".")
    for key in parts[:-1]:
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _get_dotted(config: dict[str, Any], dotted: str) -> Any:
    cur: Any = config
    for key in dotted.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _load_mapping(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(f"config path is not a file: {path}")
    try:
        raw = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Config file decode error: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Config file read error: {e}") from e
    try:
        loaded = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config parse error: {e}") from e
    if not loaded:
        raise ConfigurationError(f"File {path} seems to be empty")
    if not isinstance(loaded, dict):
        raise ConfigurationError("config file root node must be an object")
    return loaded


class HandlerConf(BaseModel):
    id: str
    type: str
    enabled: bool = True
    options: dict[str, Any] = {}

    @field_validator("options", mode="before")
    @classmethod
    def _normalize_options(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v


class RoomConf(BaseModel):
    local: str
    domain: str
    nick: str | None = None
    enabled: bool = True
    handlers: list[HandlerConf] = []

    @field_validator("local", "domain")
    @classmethod
    def _validate_not_empty(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("room local and domain must not be empty")
        return s

    @field_validator("nick")
    @classmethod
    def _normalize_nick(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("handlers", mode="before")
    @classmethod
    def _normalize_handlers(cls, v: Any) -> Any:
        if v is None:
            return []
        return v


class ConnectionConfig(BaseModel):
    type: Literal["client", "component"] = "client"
    jid: str
    password: str
    host: str | None = None
    port: int | None = None

    @model_validator(mode="after")
    def _default_port(self) -> "ConnectionConfig":
        if self.port is None:
            self.port = (
                COMPONENT_DEFAULT_PORT
                if self.type == "component"
                else CLIENT_DEFAULT_PORT
            )
        if self.type == "component" and not self.host:
            raise ValueError("component connections require a host")
        return self


class LogConfig(BaseModel):
    path: str | None = None
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        s = v.strip().upper()
        if s not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"}:
            raise ValueError(f"unknown log level: {v}")
        return s


class AppConfig(BaseModel):
    name: str = "Bot"
    debug: bool = False
    connection: ConnectionConfig
    rooms: list[RoomConf] = []
    handlers: list[HandlerConf] = []
    rooms_dir: str | None = None
    handler_files: list[str] = []
    log: LogConfig = LogConfig()


class Config:
    def __init__(self, config_path: str | None = None):
        self.config_path = config_path or os.environ.get(
            "MUCBOT_CONFIG", "config.yaml"
        )
        self._model: AppConfig | None = None
        self.data: dict[str, Any] = {}

    @property
    def model(self) -> AppConfig:
        if self._model is None:
            raise ConfigurationError("configuration not loaded")
        return self._model

    def load(self, overrides: dict[str, Any] | None = None) -> None:
        config_path = Path(self.config_path)
        merged = _load_mapping(config_path)
        self._apply_env_overrides(merged)
        for key, value in (overrides or {}).items():
            _set_dotted(merged, key, value)
        self._model = self._validate_model(merged)
        self.data = self._model.model_dump()
        self._resolve_paths(config_path)

    @staticmethod
    def _apply_env_overrides(config: dict[str, Any]) -> None:
        for env_name, key in _ENV_TO_KEY.items():
            if (env_value := os.environ.get(env_name)) is not None:
                _set_dotted(config, key, env_value)

    @staticmethod
    def _validate_model(config: dict[str, Any]) -> AppConfig:
        try:
            return AppConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    def _resolve_paths(self, config_path: Path) -> None:
        config_dir = config_path.parent
        model = self.model
        if model.rooms_dir and not Path(model.rooms_dir).is_absolute():
            model.rooms_dir = str(config_dir / model.rooms_dir)
        model.handler_files = [
            f if Path(f).is_absolute() else str(config_dir / f)
            for f in model.handler_files
        ]
        if model.log.path:
            try:
                Path(model.log.path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(
                    f"failed to create log directory: {model.log.path}"
                ) from e
        self.data = model.model_dump()

    def room_confs(self) -> list[RoomConf]:
        """Room configurations with the global handlers prepended."""
        model = self.model
        return [
            room.model_copy(update={"handlers": [*model.handlers, *room.handlers]})
            for room in model.rooms
        ]

    def get(self, key: str, default: Any = _MISSING) -> Any:
        if self._model is None:
            if default is not _MISSING:
                return default
            return None
        value = _get_dotted(self.data, key)
        if value is None and default is not _MISSING:
            return default
        return value


def _filter_handler_entries(raw: Any, source: str) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    handlers: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            logger.warning(f"Ignoring invalid handler entry in {source}")
            continue
        if not isinstance(item.get("id"), str) or not isinstance(
            item.get("type"), str
        ):
            logger.warning(
                f"Ignoring handler entry without id or type in {source}: {item}"
            )
            continue
        handlers.append(item)
    return handlers


def read_room_conf(filepath: str | Path) -> RoomConf | None:
    path = Path(filepath)
    try:
        loaded = _load_mapping(path)
        loaded["handlers"] = _filter_handler_entries(loaded.get("handlers"), str(path))
        return RoomConf.model_validate(loaded)
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Failed to read room configuration {path}: {e}")
        return None
