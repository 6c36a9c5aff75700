import asyncio
from collections.abc import Callable, Coroutine
from functools import partial
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from loguru import logger

from ..room.events import RoomEvent

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("Handler", "UNSET")


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class Handler:
    """Base class of the room behaviours.

    Subclasses set their option defaults *before* calling
    ``super().__init__``: the constructor applies the initial options with
    ``load_options`` and then attaches the handler to its room. The owner
    calls ``start()`` once the handler is attached.
    """

    description = "No description available"

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.id = handler_id
        self.room = room
        self.started = False
        self._subscriptions: list[tuple[RoomEvent, Callable[..., Any]]] = []
        self._job_ids: dict[str, str] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self.load_options(options)
        room.attach_handler(self)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.id!r}, room={self.room.address})"

    def load_options(self, options: Any) -> None:
        """Merge ``options`` over the current values.

        Fields with a wrong type are ignored; only options that cannot be
        applied at all raise ``HandlerOptionsError``.
        """

    @staticmethod
    def _option(options: Any, *keys: str) -> Any:
        if not isinstance(options, dict):
            return UNSET
        for key in keys:
            if key in options:
                return options[key]
        return UNSET

    def start(self) -> None:
        if self.started:
            self.stop()
        self.started = True
        self._log_action("started")

    def stop(self) -> None:
        for event, callback in self._subscriptions:
            self.room.off(event, callback)
        self._subscriptions.clear()
        for name in list(self._job_ids):
            self._unschedule(name)
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()
        if self.started:
            self._log_action("stopped")
        self.started = False

    def get_info(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "class": self.__class__.__name__,
            "room": str(self.room.address),
            "started": self.started,
            "description": self.description,
        }

    def _subscribe(self, event: RoomEvent, callback: Callable[..., Any]) -> None:
        self.room.on(event, callback)
        self._subscriptions.append((event, callback))

    def _schedule_interval(
        self,
        name: str,
        func: Callable[[], Coroutine[Any, Any, Any]],
        seconds: float,
    ) -> None:
        job_id = f"{self.room.address}:{self.id}:{name}"
        self.room.scheduler.add_job(
            func, "interval", seconds=seconds, id=job_id, replace_existing=True
        )
        self._job_ids[name] = job_id

    def _unschedule(self, name: str) -> None:
        if (job_id := self._job_ids.pop(name, None)) is None:
            return
        try:
            self.room.scheduler.remove_job(job_id)
        except JobLookupError:
            logger.debug(f"Handler {self.id}: job {job_id} already removed")

    def _fire(self, coro: Coroutine[Any, Any, Any], action: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.error(f"Handler {self.id}: no running loop to {action}")
            return
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_task_done, action))

    def _on_task_done(self, action: str, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.opt(exception=exc).error(f"Handler {self.id}: failed to {action}: {exc}")

    def _log_action(self, action: str, details: str = "") -> None:
        logger.info(
            f"Handler {self.id} ({self.room.address}) {action}"
            f"{': ' + details if details else ''}"
        )
