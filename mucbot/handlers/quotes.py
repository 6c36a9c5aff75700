import random
from typing import TYPE_CHECKING, Any

from loguru import logger

from ..handler.base import Handler
from ..shared.constants import QUOTES_DEFAULT_DELAY_MS
from ..shared.utils import as_string_list

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("QuotesBaseHandler", "QuotesHandler", "RandomQuotesHandler")

_JOB_NAME = "quote"


class QuotesBaseHandler(Handler):
    """Periodically sends a quote while someone is there to read it.

    Options:
        quotes: a quote or a list of quotes.
        delay: the interval between two quotes, in milliseconds.
    """

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.quotes: list[str] = []
        self.delay: int = QUOTES_DEFAULT_DELAY_MS
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        if (quotes := as_string_list(self._option(options, "quotes"))) is not None:
            self.quotes = quotes
        delay = self._option(options, "delay")
        if isinstance(delay, (int, float)) and not isinstance(delay, bool) and delay > 0:
            if delay != self.delay:
                self.delay = delay
                if self.started:
                    self._schedule()

    def start(self) -> None:
        super().start()
        self._schedule()

    def _schedule(self) -> None:
        self._unschedule(_JOB_NAME)
        self._schedule_interval(_JOB_NAME, self.tick, self.delay / 1000)

    async def tick(self) -> None:
        if not self.started:
            return
        if not self.room.is_online():
            logger.debug(f"Handler {self.id}: room {self.room.address} is not online")
            return
        # checking if there is someone to listen
        online_user_count = self.room.online_user_count()
        if online_user_count < 2:
            return
        if not (txt := self.next_quote()):
            return
        try:
            await self.room.send_groupchat(txt)
        except Exception as e:
            logger.error(f"Handler {self.id}: failed to send quote: {e}")

    def next_quote(self) -> str | None:
        raise NotImplementedError


class QuotesHandler(QuotesBaseHandler):
    description = "Sends quotes in order, cycling"

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.count = 0
        super().__init__(handler_id, room, options)

    def next_quote(self) -> str | None:
        if not self.quotes:
            return None
        index = self.count % len(self.quotes)
        self.count += 1
        logger.debug(f"Handler {self.id}: emitting quote number {index}")
        return self.quotes[index]


class RandomQuotesHandler(QuotesBaseHandler):
    description = "Sends randomly chosen quotes"

    def next_quote(self) -> str | None:
        if not self.quotes:
            return None
        return random.choice(self.quotes)
