from typing import TYPE_CHECKING, Any

from ..clients.xmpp.reference import ReferenceMention
from ..clients.xmpp.stanza import MessageStanza
from ..handler.base import Handler
from ..room.events import RoomEvent
from ..room.user import RoomUser

if TYPE_CHECKING:
    from ..room.room import Room

__all__ = ("RespondHandler",)


class RespondHandler(Handler):
    description = "Responds when the bot is mentionned"

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.txt = "Yes {{NICK}}?"
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        if isinstance(txt := self._option(options, "txt"), str):
            self.txt = txt

    def start(self) -> None:
        super().start()
        self._subscribe(RoomEvent.MENTIONNED, self._on_room_mentionned)

    def _on_room_mentionned(self, stanza: MessageStanza, user: RoomUser) -> None:
        if user.is_me:
            return
        txt, references = ReferenceMention.mention(self.txt, user.address)
        self._fire(self.room.send_groupchat(txt, references), "send response")
