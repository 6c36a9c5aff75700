import random
from typing import TYPE_CHECKING, Any

from loguru import logger

from ...clients.xmpp.stanza import MessageStanza
from ...room.user import RoomUser
from ...shared.utils import as_string_list
from .base import CommandHandler

if TYPE_CHECKING:
    from ...room.room import Room

__all__ = ("SayCommandHandler",)


class SayCommandHandler(CommandHandler):
    description = "Answers a command with a random quote"

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.quotes: list[str] = []
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        super().load_options(options)
        if (quotes := as_string_list(self._option(options, "quotes"))) is not None:
            self.quotes = quotes

    def handle_command(
        self,
        command: str,
        parameters: list[str],
        stanza: MessageStanza,
        user: RoomUser,
    ) -> None:
        if not self.quotes:
            return
        txt = random.choice(self.quotes)
        logger.info(f"Handler {self.id}: responding to !{command}")
        self._fire(self.room.send_groupchat(txt), f"respond to !{command}")
