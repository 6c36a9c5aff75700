import asyncio
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from loguru import logger

from ..bot.core import Bot
from ..bot.watch import RoomConfWatcher
from ..clients.xmpp.connection import XMPPConnection
from ..handler.registry import HandlerRegistry
from ..handlers import register_builtin_handlers
from ..shared.config import Config
from ..shared.config_keys import ConfigKeys
from ..shared.exceptions import (
    AuthenticationError,
    ConfigurationError,
    TransportError,
)

__all__ = ("BotRunner", "load_configs", "main", "setup_logging")


def setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def load_configs(
    config_paths: Sequence[str], overrides: dict[str, Any] | None = None
) -> list[Config]:
    configs = []
    for path in config_paths:
        config = Config(path)
        config.load(overrides)
        configs.append(config)
    return configs


def load_handler_files(configs: Sequence[Config], registry: HandlerRegistry) -> None:
    loaded: set[str] = set()
    for config in configs:
        for path in config.model.handler_files:
            if (resolved := str(Path(path).resolve())) in loaded:
                continue
            loaded.add(resolved)
            registry.register_from_file(path)


class BotRunner:
    def __init__(
        self,
        config_paths: Sequence[str],
        *,
        debug: bool = False,
        log_level: str | None = None,
    ):
        self.config_paths = list(config_paths)
        self.debug = debug
        self.log_level = log_level
        self.bots: list[Bot] = []
        self.watchers: list[RoomConfWatcher] = []
        self.shutdown_event: asyncio.Event | None = None
        self._shutdown_called = False

    def _overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        if self.debug:
            overrides[ConfigKeys.DEBUG] = True
        if self.log_level:
            overrides[ConfigKeys.LOG_LEVEL] = self.log_level
        return overrides

    async def run(self) -> None:
        self.shutdown_event = asyncio.Event()
        load_dotenv()
        configs = load_configs(self.config_paths, self._overrides())
        level = "DEBUG" if self.debug else configs[0].get(ConfigKeys.LOG_LEVEL, "INFO")
        setup_logging(level)
        for config in configs:
            if log_path := config.get(ConfigKeys.LOG_PATH):
                logger.add(
                    Path(log_path),
                    level=config.get(ConfigKeys.LOG_LEVEL),
                    rotation="10 MB",
                    compression="zip",
                    enqueue=True,
                )
        registry = register_builtin_handlers()
        load_handler_files(configs, registry)
        logger.info(f"Starting {len(configs)} bot(s)...")
        try:
            for config in configs:
                await self._start_bot(config, registry)
            self._setup_signals()
            await self.shutdown_event.wait()
        finally:
            try:
                await asyncio.shield(self.shutdown())
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error during shutdown")

    async def _start_bot(self, config: Config, registry: HandlerRegistry) -> None:
        model = config.model
        connection = XMPPConnection(model.connection, debug=model.debug)
        bot = Bot(model.name, connection, registry=registry, debug=model.debug)
        self.bots.append(bot)
        await bot.connect()
        for room_conf in config.room_confs():
            await bot.load_room_conf(room_conf)
        if model.rooms_dir:
            watcher = RoomConfWatcher(bot, model.rooms_dir, handlers=model.handlers)
            if await watcher.start():
                self.watchers.append(watcher)

    def _setup_signals(self) -> None:
        signals = (
            (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)
            if sys.platform != "win32"
            else (signal.SIGINT, signal.SIGTERM)
        )

        def signal_handler(sig, _):
            logger.info(
                f"Received signal {signal.Signals(sig).name}; preparing to shut down..."
            )
            if self.shutdown_event and not self.shutdown_event.is_set():
                self.shutdown_event.set()
                try:
                    loop = asyncio.get_running_loop()
                    loop.call_soon_threadsafe(lambda: None)
                except RuntimeError:
                    pass

        for sig in signals:
            try:
                signal.signal(sig, signal_handler)
            except (OSError, ValueError):
                logger.warning(f"Failed to register signal handler: {sig}")

    async def shutdown(self) -> None:
        if self._shutdown_called:
            return
        self._shutdown_called = True
        logger.info("Shutting down...")
        for watcher in self.watchers:
            watcher.stop()
        for bot in self.bots:
            try:
                await bot.disconnect()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Error stopping bot {bot.name}")
        logger.info("All bots shut down")


def main(
    config_paths: Sequence[str],
    *,
    debug: bool = False,
    log_level: str | None = None,
) -> int:
    try:
        asyncio.run(BotRunner(config_paths, debug=debug, log_level=log_level).run())
        logger.info("Bye")
        return 0
    except KeyboardInterrupt:
        return 130
    except ConfigurationError as e:
        logger.error(f"Startup error: {e}")
        return 2
    except AuthenticationError as e:
        logger.error(f"Startup error: {e}")
        return 3
    except TransportError as e:
        logger.error(f"Startup error: {e}")
        return 4
    except Exception:
        logger.exception("Unhandled exception during startup")
        return 1
