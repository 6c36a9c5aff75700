import asyncio
import uuid
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

from ..clients.xmpp.reference import Reference
from ..clients.xmpp.stanza import MessageStanza, PresenceStanza, Stanza
from ..shared.address import Address
from ..shared.constants import (
    COMMAND_MARKER,
    NS_FASTEN,
    NS_MODERATE,
    NS_MUC,
    NS_RETRACT,
)
from ..shared.exceptions import DuplicateHandlerError
from ..shared.utils import format_log_text
from .events import RoomEvent
from .user import RoomUser

if TYPE_CHECKING:
    from ..bot.core import Bot
    from ..handler.base import Handler

__all__ = ("Room", "parse_command")

RoomState = Literal["offline", "online"]


def parse_command(body: str, marker: str = COMMAND_MARKER) -> tuple[str, list[str]] | None:
    """Find the first ``!command`` token of a message body.

    Returns the command name and the tokens that follow it.
    """
    tokens = body.split()
    for i, token in enumerate(tokens):
        if token.startswith(marker) and len(token) > len(marker):
            return token[len(marker) :], tokens[i + 1 :]
    return None


class Room:
    def __init__(self, bot: "Bot", address: Address):
        self.bot = bot
        self.address = address.bare
        self.state: RoomState = "offline"
        self.roster: dict[Address, RoomUser] = {}
        self.handlers: dict[str, "Handler"] = {}
        self._user_address: Address | None = None
        self._listeners: dict[RoomEvent, list[Callable[..., Any]]] = {
            event: [] for event in RoomEvent
        }

    def __repr__(self) -> str:
        return f"Room({self.address}, state={self.state})"

    @property
    def scheduler(self):
        return self.bot.scheduler

    @property
    def user_address(self) -> Address | None:
        return self._user_address

    @property
    def my_nick(self) -> str | None:
        if self._user_address is None:
            return None
        return self._user_address.resource

    def is_online(self) -> bool:
        return self.state == "online"

    def online_user_count(self) -> int:
        return sum(1 for user in self.roster.values() if user.is_online())

    def reset(self) -> None:
        logger.debug(f"Room {self.address}: resetting roster")
        self.state = "offline"
        self.roster.clear()

    def on(self, event: RoomEvent, callback: Callable[..., Any]) -> None:
        self._listeners[RoomEvent(event)].append(callback)

    def off(self, event: RoomEvent, callback: Callable[..., Any]) -> None:
        listeners = self._listeners[RoomEvent(event)]
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: RoomEvent, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Room {self.address}: {event} listener failed: {e}")

    async def join(self, nick: str) -> None:
        self._user_address = self.address.with_resource(nick)
        logger.debug(f"Room {self.address}: sending presence as {nick}")
        await self.bot.send_stanza(
            "presence",
            {"to": str(self._user_address)},
            ET.Element("x", {"xmlns": NS_MUC}),
        )

    async def part(self) -> None:
        if self._user_address is None:
            return
        logger.debug(f"Room {self.address}: sending unavailable presence")
        await self.bot.send_stanza(
            "presence",
            {"to": str(self._user_address), "type": "unavailable"},
        )

    async def send_groupchat(
        self, txt: str, references: Iterable[Reference] = ()
    ) -> None:
        if self._user_address is None:
            return
        logger.debug(f"Room {self.address}: sending groupchat {format_log_text(txt)}")
        body = ET.Element("body")
        body.text = txt
        await self.bot.send_stanza(
            "message",
            {"type": "groupchat", "to": str(self.address)},
            body,
            *(reference.to_xml() for reference in references),
        )

    async def moderate_message(
        self, stanza: MessageStanza, reason: str | None = None
    ) -> bool:
        stanza_id = stanza.stanza_id()
        if not stanza_id:
            logger.error(
                f"Room {self.address}: cannot moderate a message without stanza-id"
            )
            return False
        apply_to = ET.Element("apply-to", {"xmlns": NS_FASTEN, "id": stanza_id})
        moderate = ET.SubElement(apply_to, "moderate", {"xmlns": NS_MODERATE})
        ET.SubElement(moderate, "retract", {"xmlns": NS_RETRACT})
        if reason:
            ET.SubElement(moderate, "reason").text = reason
        logger.debug(f"Room {self.address}: moderating message {stanza_id}")
        await self.bot.send_stanza(
            "iq",
            {"type": "set", "to": str(self.address), "id": uuid.uuid4().hex},
            apply_to,
        )
        return True

    def receive_stanza(self, stanza: Stanza) -> None:
        if isinstance(stanza, PresenceStanza):
            self._receive_presence(stanza)
        elif isinstance(stanza, MessageStanza):
            self._receive_message(stanza)

    def _receive_presence(self, stanza: PresenceStanza) -> None:
        if stanza.from_ is None or stanza.from_.is_bare:
            logger.debug(f"Room {self.address}: presence without occupant; skipping")
            return
        if stanza.is_error():
            logger.warning(f"Room {self.address}: error presence received: {stanza}")
            return
        user = self.roster.get(stanza.from_)
        if user is None:
            user = RoomUser(self, stanza)
            self.roster[stanza.from_] = user
        changed = user.update(stanza)
        if user.is_me:
            self._update_self(user, stanza)
        if not changed or not self.is_online():
            return
        if user.is_online():
            logger.debug(f"Room {self.address}: {user.nick} joined")
            self._emit(RoomEvent.JOINED, user)
        else:
            logger.debug(f"Room {self.address}: {user.nick} parted")
            self._emit(RoomEvent.PARTED, user)

    def _update_self(self, user: RoomUser, stanza: PresenceStanza) -> None:
        if user.is_online():
            self._user_address = user.address
            if self.state != "online":
                logger.info(f"Room {self.address}: joined as {user.nick}")
            self.state = "online"
            return
        if new_nick := stanza.nickname_change():
            logger.info(f"Room {self.address}: nickname changed to {new_nick}")
            self._user_address = self.address.with_resource(new_nick)
        elif self.state != "offline":
            logger.info(f"Room {self.address}: left the room")
        self.state = "offline"

    def _receive_message(self, stanza: MessageStanza) -> None:
        if not self.is_online():
            return
        if stanza.type != "groupchat":
            return
        if stanza.from_ is None or stanza.from_ == self._user_address:
            return
        if stanza.is_delayed():
            return
        body = stanza.body()
        if body is None:
            return
        if stanza.from_.is_bare:
            logger.debug(f"Room {self.address}: message from the room itself; skipping")
            return
        user = self.roster.get(stanza.from_)
        if user is None:
            logger.error(
                f"Room {self.address}: message from unknown occupant {stanza.from_}"
            )
            return
        self._emit(RoomEvent.MESSAGE, stanza, user)
        if command := parse_command(body):
            name, parameters = command
            self._emit(RoomEvent.COMMAND, name, parameters, stanza, user)
        if stanza.is_mentionned([self._user_address, self.bot.address]):
            self._emit(RoomEvent.MENTIONNED, stanza, user)

    def attach_handler(self, handler: "Handler") -> None:
        if handler.id in self.handlers:
            raise DuplicateHandlerError(
                f"Room {self.address}: handler {handler.id} already exists"
            )
        self.handlers[handler.id] = handler

    def get_handler_by_id(self, handler_id: str) -> "Handler | None":
        return self.handlers.get(handler_id)

    def detach_handler_by_id(self, handler_id: str) -> None:
        if (handler := self.handlers.pop(handler_id, None)) is None:
            return
        self._stop_handler(handler)

    def detach_handlers(self) -> None:
        handlers = list(self.handlers.values())
        self.handlers.clear()
        for handler in handlers:
            self._stop_handler(handler)

    def _stop_handler(self, handler: "Handler") -> None:
        try:
            handler.stop()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                f"Room {self.address}: error stopping handler {handler.id}: {e}"
            )
