import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..shared.config import HandlerConf, read_room_conf
from ..shared.constants import CONF_RELOAD_DEBOUNCE_SECONDS

if TYPE_CHECKING:
    from .core import Bot

__all__ = ("RoomConfWatcher",)

ROOM_CONF_SUFFIXES = (".json", ".yaml", ".yml")


class _RoomConfEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "RoomConfWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify(event.dest_path)


class RoomConfWatcher:
    """Loads the room files of a directory and reloads them on change.

    Each file holds the configuration of one room. Sub-directories are
    ignored. Bursts of events for the same file are coalesced into a
    single reload.
    """

    def __init__(
        self,
        bot: "Bot",
        directory: str | Path,
        *,
        handlers: list[HandlerConf] | None = None,
        debounce: float = CONF_RELOAD_DEBOUNCE_SECONDS,
    ):
        self.bot = bot
        self.directory = Path(directory)
        self.handlers = handlers or []
        self.debounce = debounce
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Any = None
        self._pending: dict[Path, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def room_conf_files(self) -> list[Path]:
        return sorted(
            p
            for p in self.directory.iterdir()
            if p.is_file() and p.suffix.lower() in ROOM_CONF_SUFFIXES
        )

    async def start(self) -> bool:
        if not self.directory.is_dir():
            logger.error(f"Room configuration directory not found: {self.directory}")
            return False
        self._loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_RoomConfEventHandler(self), str(self.directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.debug(f"Loading room configurations from {self.directory}...")
        for path in self.room_conf_files():
            await self.load_file(path)
        logger.info(f"Watching room configurations in {self.directory}")
        return True

    def stop(self) -> None:
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        if self._observer is None:
            return
        try:
            self._observer.stop()
            self._observer.join(timeout=1.5)
        except RuntimeError as e:
            logger.warning(f"Failed stopping room configuration watcher: {e}")
        self._observer = None

    def notify(self, path: str | bytes) -> None:
        """Called from the observer thread."""
        if isinstance(path, bytes):
            path = path.decode()
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.schedule_reload, Path(path))

    def schedule_reload(self, path: Path) -> None:
        if path.suffix.lower() not in ROOM_CONF_SUFFIXES:
            return
        if path in self._pending:
            return
        logger.debug(f"Change on {path}")
        loop = self._loop or asyncio.get_running_loop()
        self._pending[path] = loop.call_later(self.debounce, self._reload, path)

    def _reload(self, path: Path) -> None:
        self._pending.pop(path, None)
        task = asyncio.get_running_loop().create_task(self.load_file(path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def load_file(self, path: Path) -> None:
        if not path.is_file():
            logger.debug(f"Ignoring {path}: not a file")
            return
        logger.debug(f"Loading room configuration {path}")
        if (conf := read_room_conf(path)) is None:
            return
        if self.handlers:
            conf = conf.model_copy(update={"handlers": [*self.handlers, *conf.handlers]})
        try:
            await self.bot.load_room_conf(conf)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Failed to load room configuration {path}: {e}")
