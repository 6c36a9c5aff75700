import asyncio
import xml.etree.ElementTree as ET
from typing import Any, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from ..clients.xmpp.stanza import Stanza
from ..handler.base import Handler
from ..handler.registry import HandlerRegistry
from ..room.room import Room
from ..shared.address import Address
from ..shared.config import HandlerConf, RoomConf
from ..shared.exceptions import ConfigurationError, TransportError
from ..shared.utils import get_memory_usage

__all__ = ("Bot",)


class Connection(Protocol):
    def on_online(self, callback: Any) -> None: ...

    def on_offline(self, callback: Any) -> None: ...

    def on_stanza(self, callback: Any) -> None: ...

    async def start(self) -> Address: ...

    async def stop(self) -> None: ...

    async def send(self, element: ET.Element) -> None: ...


class Bot:
    """Owns one transport connection and the rooms joined through it."""

    def __init__(
        self,
        name: str,
        connection: Connection,
        *,
        scheduler: AsyncIOScheduler | None = None,
        registry: HandlerRegistry | None = None,
        debug: bool = False,
    ):
        self.name = name
        self.connection = connection
        self.scheduler = scheduler or AsyncIOScheduler()
        self.registry = registry or HandlerRegistry.singleton()
        self.debug = debug
        self.address: Address | None = None
        self.rooms: dict[Address, Room] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._running = False
        connection.on_online(self._on_online)
        connection.on_offline(self._on_offline)
        connection.on_stanza(self._on_stanza)

    def __repr__(self) -> str:
        return f"Bot({self.name!r}, address={self.address})"

    async def connect(self) -> None:
        if self._running:
            logger.warning(f"Bot {self.name} is already running")
            return
        logger.info(f"Bot {self.name}: starting...")
        self._running = True
        if not self.scheduler.running:
            self.scheduler.start()
        self.address = await self.connection.start()
        logger.info(f"Bot {self.name}: online as {self.address}")
        memory_usage = get_memory_usage()
        logger.debug(f"Memory usage: {memory_usage['rss_mb']} MB")

    def _on_online(self, address: Address) -> None:
        self.address = address
        for room in self.rooms.values():
            room.reset()
            if (nick := room.my_nick) is not None:
                self._spawn(room.join(nick), f"rejoin {room.address}")

    def _on_offline(self) -> None:
        logger.warning(f"Bot {self.name}: transport offline, resetting rooms")
        for room in self.rooms.values():
            room.reset()

    def _on_stanza(self, xml: ET.Element) -> None:
        stanza = Stanza.parse_incoming(xml)
        if stanza is None:
            logger.debug(f"Bot {self.name}: discarding unrecognized stanza <{xml.tag}>")
            return
        if self.debug:
            logger.debug(f"Bot {self.name}: received {stanza.dump()}")
        if stanza.from_ is None:
            logger.debug(f"Bot {self.name}: discarding stanza without sender")
            return
        room = self.rooms.get(stanza.from_.bare)
        if room is None:
            logger.debug(f"Bot {self.name}: no room for stanza from {stanza.from_}")
            return
        room.receive_stanza(stanza)

    async def send_stanza(
        self, name: str, attrs: dict[str, str], *children: ET.Element
    ) -> None:
        if self.address is None:
            raise TransportError(f"Bot {self.name} is not connected")
        element = ET.Element(name, {"from": str(self.address), **attrs})
        element.extend(children)
        await self.connection.send(element)

    def get_room(self, local: str, domain: str) -> Room | None:
        return self.rooms.get(Address(local, domain))

    async def join_room(self, local: str, domain: str, nick: str) -> Room:
        address = Address(local, domain)
        room = self.rooms.get(address)
        if room is None:
            room = Room(self, address)
            self.rooms[address] = room
        logger.info(f"Bot {self.name}: joining {address} as {nick}")
        await room.join(nick)
        return room

    async def part_room(self, local: str, domain: str) -> None:
        address = Address(local, domain)
        if (room := self.rooms.pop(address, None)) is None:
            return
        logger.info(f"Bot {self.name}: leaving {address}")
        room.detach_handlers()
        await room.part()

    async def load_room_conf(self, conf: RoomConf) -> None:
        """Reconcile a room and its handlers with ``conf``."""
        if not conf.enabled:
            await self.part_room(conf.local, conf.domain)
            return
        nick = conf.nick or self.name
        room = self.get_room(conf.local, conf.domain)
        if room is None or room.my_nick != nick:
            room = await self.join_room(conf.local, conf.domain, nick)
        listed: set[str] = set()
        for handler_conf in conf.handlers:
            listed.add(handler_conf.id)
            self._load_handler_conf(room, handler_conf)
        for handler_id in list(room.handlers):
            if handler_id not in listed:
                logger.info(f"Room {room.address}: removing handler {handler_id}")
                room.detach_handler_by_id(handler_id)
        for handler in room.handlers.values():
            logger.debug(f"Room {room.address}: {handler.get_info()}")

    def _load_handler_conf(self, room: Room, conf: HandlerConf) -> None:
        handler_class = self.registry.get_class(conf.type)
        if handler_class is None:
            logger.error(
                f"Room {room.address}: unknown handler type {conf.type}"
                f" (known: {', '.join(self.registry.tags())})"
            )
            return
        handler = room.get_handler_by_id(conf.id)
        if handler is not None and type(handler) is not handler_class:
            logger.info(f"Room {room.address}: handler {conf.id} changed type")
            room.detach_handler_by_id(conf.id)
            handler = None
        if not conf.enabled:
            if handler is not None:
                room.detach_handler_by_id(conf.id)
            return
        if handler is not None:
            try:
                handler.load_options(conf.options)
            except ConfigurationError as e:
                logger.error(
                    f"Room {room.address}: failed to reload handler {conf.id}: {e}"
                )
            return
        self._create_handler(room, handler_class, conf)

    @staticmethod
    def _create_handler(
        room: Room, handler_class: type[Handler], conf: HandlerConf
    ) -> None:
        try:
            handler = handler_class(conf.id, room, conf.options)
        except ConfigurationError as e:
            logger.error(f"Room {room.address}: failed to load handler {conf.id}: {e}")
            return
        try:
            handler.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                f"Room {room.address}: failed to start handler {conf.id}: {e}"
            )
            room.detach_handler_by_id(conf.id)

    async def disconnect(self) -> None:
        if not self._running:
            logger.warning(f"Bot {self.name} is already stopped")
            return
        logger.info(f"Bot {self.name}: stopping...")
        self._running = False
        for room in list(self.rooms.values()):
            room.detach_handlers()
        for room in list(self.rooms.values()):
            try:
                await room.part()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Bot {self.name}: failed to leave {room.address}: {e}")
        self.rooms.clear()
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        try:
            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)
            await self.connection.stop()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Error stopping bot {self.name}: {e}")
        finally:
            self.address = None
            logger.info(f"Bot {self.name}: stopped")

    def _spawn(self, coro: Any, action: str) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and (exc := t.exception()) is not None:
                logger.opt(exception=exc).error(f"Bot {self.name}: failed to {action}")

        task.add_done_callback(_done)
