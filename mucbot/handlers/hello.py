import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache
from loguru import logger

from ..clients.xmpp.reference import ReferenceMention
from ..handler.base import UNSET, Handler
from ..room.events import RoomEvent
from ..room.user import RoomUser
from ..shared.constants import GREETER_CACHE_MAX

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("HelloHandler",)


class HelloHandler(Handler):
    """Says hello to incoming users.

    Options:
        txt: the greeting, ``{{NICK}}`` is replaced by a mention of the user.
        delay: if set, do not greet again a user who was already greeted (or
            who joined again) less than ``delay`` seconds ago.
    """

    description = "Greets users joining the room"

    def __init__(
        self,
        handler_id: str,
        room: "Room",
        options: Any = None,
        *,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.txt = "Hello {{NICK}}!"
        self.delay: float | None = None
        self._timer = timer
        self._last_greeted: TTLCache[str, float] | None = None
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        if isinstance(txt := self._option(options, "txt"), str):
            self.txt = txt
        delay = self._option(options, "delay")
        if delay is UNSET:
            return
        if delay is None or (
            isinstance(delay, (int, float)) and not isinstance(delay, bool)
        ):
            self._set_delay(delay)

    def _set_delay(self, delay: float | None) -> None:
        if delay is not None and delay <= 0:
            delay = None
        if delay == self.delay:
            return
        self.delay = delay
        previous = self._last_greeted
        if delay is None:
            self._last_greeted = None
            return
        self._last_greeted = TTLCache(
            maxsize=GREETER_CACHE_MAX, ttl=delay, timer=self._timer
        )
        if previous is not None:
            # recency is checked against the stored timestamp, not the TTL
            self._last_greeted.update(list(previous.items()))

    def start(self) -> None:
        super().start()
        self._subscribe(RoomEvent.JOINED, self._on_room_joined)

    def stop(self) -> None:
        super().stop()
        if self._last_greeted is not None:
            self._last_greeted.clear()

    def _recently_greeted(self, user: RoomUser) -> bool:
        if self._last_greeted is None or self.delay is None:
            return False
        key = str(user.address)
        now = self._timer()
        last = self._last_greeted.get(key)
        # every attempt slides the window, greeted or not
        self._last_greeted[key] = now
        return last is not None and now - last < self.delay

    def _on_room_joined(self, user: RoomUser) -> None:
        if user.is_me or not self.room.is_online():
            return
        if self._recently_greeted(user):
            logger.debug(f"Handler {self.id}: {user.nick} was greeted recently")
            return
        txt, references = ReferenceMention.mention(self.txt, user.address)
        self._fire(self.room.send_groupchat(txt, references), "send greeting")
