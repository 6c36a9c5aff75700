from typing import TYPE_CHECKING, Any

from ...clients.xmpp.stanza import MessageStanza
from ...handler.base import Handler
from ...room.events import RoomEvent
from ...room.user import RoomUser
from ...shared.utils import as_string_list

if TYPE_CHECKING:
    from ...room.room import Room

__all__ = ("CommandHandler",)


class CommandHandler(Handler):
    """Base of the ``!command`` handlers.

    Only the commands listed in the ``command`` option reach
    ``handle_command``.
    """

    def __init__(self, handler_id: str, room: "Room", options: Any = None):
        self.command_names: list[str] = []
        super().__init__(handler_id, room, options)

    def load_options(self, options: Any) -> None:
        if (names := as_string_list(self._option(options, "command"))) is not None:
            self.command_names = names

    def start(self) -> None:
        super().start()
        self._subscribe(RoomEvent.COMMAND, self._on_room_command)

    def _on_room_command(
        self,
        command: str,
        parameters: list[str],
        stanza: MessageStanza,
        user: RoomUser,
    ) -> None:
        if command not in self.command_names:
            return
        self.handle_command(command, parameters, stanza, user)

    def handle_command(
        self,
        command: str,
        parameters: list[str],
        stanza: MessageStanza,
        user: RoomUser,
    ) -> None:
        raise NotImplementedError
