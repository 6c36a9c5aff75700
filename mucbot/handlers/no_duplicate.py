import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from loguru import logger

from ..clients.xmpp.stanza import MessageStanza
from ..handler.base import UNSET, Handler
from ..room.events import RoomEvent
from ..room.user import RoomUser
from ..shared.constants import NO_DUPLICATE_DEFAULT_DELAY, NO_DUPLICATE_PRUNE_INTERVAL
from ..shared.utils import normalize_message

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("NoDuplicateHandler",)

_JOB_NAME = "prune"


class NoDuplicateHandler(Handler):
    """Moderates a message repeated by the same occupant within ``delay`` seconds."""

    description = "Moderates duplicate messages"

    def __init__(
        self,
        handler_id: str,
        room: "Room",
        options: Any = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delay: float = NO_DUPLICATE_DEFAULT_DELAY
        self.reason: str | None = None
        self.apply_to_moderators = False
        self._clock = clock
        self.user_messages: dict[str, dict[str, float]] = {}
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        apply = self._option(options, "apply_to_moderators", "applyToModerators")
        if isinstance(apply, bool):
            self.apply_to_moderators = apply
        delay = self._option(options, "delay")
        if delay is None:
            self.delay = NO_DUPLICATE_DEFAULT_DELAY
        elif isinstance(delay, (int, float)) and not isinstance(delay, bool):
            self.delay = delay
        reason = self._option(options, "reason")
        if reason is not UNSET and (reason is None or isinstance(reason, str)):
            self.reason = reason

    def start(self) -> None:
        super().start()
        self._subscribe(RoomEvent.MESSAGE, self._on_room_message)
        self._schedule_interval(_JOB_NAME, self.prune, NO_DUPLICATE_PRUNE_INTERVAL)

    def stop(self) -> None:
        super().stop()
        self.user_messages.clear()

    def _on_room_message(self, stanza: MessageStanza, user: RoomUser) -> None:
        if not (content := stanza.body()):
            return
        content = normalize_message(content)
        user_key = stanza.occupant_id() or str(user.address)
        messages = self.user_messages.setdefault(user_key, {})
        last_sent = messages.get(content)
        now = self._clock()
        messages[content] = now
        if last_sent is None or last_sent < now - self.delay:
            return
        logger.debug(
            f"Handler {self.id}: {user_key} already sent this message "
            f"{now - last_sent:.1f}s ago"
        )
        if not self.apply_to_moderators and user.is_moderator():
            logger.debug(f"Handler {self.id}: ignoring duplicate, {user_key} is moderator")
            return
        self._fire(self.room.moderate_message(stanza, self.reason), "moderate duplicate")

    async def prune(self) -> None:
        limit = self._clock() - self.delay
        logger.debug(f"Handler {self.id}: pruning messages older than {self.delay}s")
        for user_key in list(self.user_messages):
            messages = self.user_messages[user_key]
            for content in [c for c, ts in messages.items() if ts < limit]:
                del messages[content]
            if not messages:
                del self.user_messages[user_key]
