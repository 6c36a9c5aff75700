import asyncio
import inspect
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import Any

from loguru import logger
from slixmpp import ClientXMPP, ComponentXMPP
from slixmpp.xmlstream.handler import Callback
from slixmpp.xmlstream.matcher import MatchXPath

from ...shared.address import Address
from ...shared.config import ConnectionConfig
from ...shared.constants import CONNECT_MAX_RETRIES, CONNECT_TIMEOUT
from ...shared.exceptions import (
    AuthenticationError,
    ConnectionFailedError,
    TransportError,
)
from ...shared.utils import format_log_text, retry_async

__all__ = ("XMPPConnection",)

_PLUGINS = ("xep_0030", "xep_0199")
_DISCONNECT_WAIT = 2.0


def _connect_client(client: Any, host: str | None, port: int) -> Any:
    """Call ``connect`` with a host override across slixmpp API variants."""
    connect_method = client.connect
    param_names = set(inspect.signature(connect_method).parameters)
    if not host:
        return connect_method()
    if "host" in param_names and "port" in param_names:
        return connect_method(host=host, port=port)
    return connect_method((host, port))


class XMPPConnection:
    """slixmpp transport shared by the rooms of one bot.

    Emits three kinds of events: ``online`` with the bound address,
    ``offline`` and ``stanza`` with the raw inbound message or presence
    element.
    """

    def __init__(self, config: ConnectionConfig, debug: bool = False):
        self.config = config
        self.debug = debug
        self.address: Address | None = None
        self._online_callbacks: list[Callable[[Address], Any]] = []
        self._offline_callbacks: list[Callable[[], Any]] = []
        self._stanza_callbacks: list[Callable[[ET.Element], Any]] = []
        self._ready: asyncio.Future[Address] | None = None
        self._stopping = False
        self.xmpp = self._create_client()

    def _create_client(self) -> ClientXMPP | ComponentXMPP:
        config = self.config
        if config.type == "component":
            xmpp = ComponentXMPP(config.jid, config.password, config.host, config.port)
        else:
            xmpp = ClientXMPP(config.jid, config.password)
        for plugin in _PLUGINS:
            xmpp.register_plugin(plugin)
        xmpp.add_event_handler("session_start", self._on_session_start)
        xmpp.add_event_handler("disconnected", self._on_disconnected)
        xmpp.add_event_handler("failed_auth", self._on_failed_auth)
        for name in ("message", "presence"):
            xmpp.register_handler(
                Callback(
                    f"mucbot {name}",
                    MatchXPath(f"{{{xmpp.default_ns}}}{name}"),
                    self._on_raw_stanza,
                )
            )
        return xmpp

    def on_online(self, callback: Callable[[Address], Any]) -> None:
        self._online_callbacks.append(callback)

    def on_offline(self, callback: Callable[[], Any]) -> None:
        self._offline_callbacks.append(callback)

    def on_stanza(self, callback: Callable[[ET.Element], Any]) -> None:
        self._stanza_callbacks.append(callback)

    def is_online(self) -> bool:
        return self.address is not None

    @retry_async(
        max_retries=CONNECT_MAX_RETRIES,
        retryable_exceptions=(ConnectionFailedError,),
    )
    async def start(self) -> Address:
        self._stopping = False
        self._ready = asyncio.get_running_loop().create_future()
        logger.info(f"Connecting to XMPP service as {self.config.jid}...")
        if _connect_client(self.xmpp, self.config.host, self.config.port) is False:
            raise ConnectionFailedError(f"Failed to connect as {self.config.jid}")
        try:
            return await asyncio.wait_for(
                asyncio.shield(self._ready), timeout=CONNECT_TIMEOUT
            )
        except asyncio.TimeoutError as e:
            self.xmpp.abort()
            raise ConnectionFailedError(
                f"No session established within {CONNECT_TIMEOUT}s"
            ) from e

    async def stop(self) -> None:
        self._stopping = True
        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        result = self.xmpp.disconnect(wait=_DISCONNECT_WAIT)
        if inspect.isawaitable(result):
            try:
                await asyncio.wait_for(result, timeout=_DISCONNECT_WAIT * 2)
            except asyncio.TimeoutError:
                logger.warning("XMPP disconnection timed out")
        self.address = None

    async def send(self, element: ET.Element) -> None:
        if not self.is_online():
            raise TransportError("XMPP connection is not online")
        raw = ET.tostring(element, encoding="unicode")
        if self.debug:
            logger.debug(f"Outgoing stanza: {raw}")
        self.xmpp.send_raw(raw)

    def _on_session_start(self, _event: Any) -> None:
        if self.config.type == "client":
            self.xmpp.send_presence()
        self.address = Address.parse(str(self.xmpp.boundjid))
        logger.info(f"XMPP session started as {self.address}")
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(self.address)
        for callback in list(self._online_callbacks):
            self._call(callback, self.address)

    def _on_disconnected(self, _event: Any) -> None:
        was_online = self.is_online()
        self.address = None
        if not was_online:
            return
        logger.warning("XMPP connection lost")
        for callback in list(self._offline_callbacks):
            self._call(callback)
        if not self._stopping:
            logger.info("Reconnecting to XMPP service...")
            _connect_client(self.xmpp, self.config.host, self.config.port)

    def _on_failed_auth(self, _event: Any) -> None:
        logger.error(f"XMPP authentication failed for {self.config.jid}")
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(
                AuthenticationError(f"Authentication failed for {self.config.jid}")
            )

    def _on_raw_stanza(self, stanza: Any) -> None:
        if self.debug:
            logger.debug(
                f"Incoming stanza: {format_log_text(str(stanza), max_length=500)}"
            )
        for callback in list(self._stanza_callbacks):
            self._call(callback, stanza.xml)

    @staticmethod
    def _call(callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"XMPP event callback failed: {e}")
