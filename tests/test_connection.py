import xml.etree.ElementTree as ET
from types import SimpleNamespace

import pytest

from mucbot.clients.xmpp.connection import XMPPConnection, _connect_client
from mucbot.shared.address import Address
from mucbot.shared.config import ConnectionConfig
from mucbot.shared.exceptions import AuthenticationError, TransportError


def component_connection() -> XMPPConnection:
    return XMPPConnection(
        ConnectionConfig(
            type="component", jid="bot.example.com", password="secret", host="localhost"
        )
    )


class HostPortClient:
    def __init__(self):
        self.calls = []

    def connect(self, host=None, port=None):
        self.calls.append((host, port))
        return True


class AddressClient:
    def __init__(self):
        self.calls = []

    def connect(self, address=()):
        self.calls.append(address)
        return True


def test_connect_with_host_and_port():
    client = HostPortClient()
    _connect_client(client, "xmpp.example.com", 5222)
    assert client.calls == [("xmpp.example.com", 5222)]


def test_connect_with_address_tuple():
    client = AddressClient()
    _connect_client(client, "xmpp.example.com", 5222)
    assert client.calls == [("xmpp.example.com", 5222)]


def test_connect_without_host_uses_defaults():
    client = HostPortClient()
    _connect_client(client, None, 5222)
    assert client.calls == [(None, None)]


async def test_send_while_offline_fails():
    connection = component_connection()
    assert not connection.is_online()
    with pytest.raises(TransportError):
        await connection.send(ET.Element("message"))


async def test_session_start_reports_online():
    connection = component_connection()
    online = []
    connection.on_online(online.append)
    connection._on_session_start(None)
    assert connection.is_online()
    assert online == [Address("", "bot.example.com")]


async def test_disconnect_reports_offline_once():
    connection = component_connection()
    connection._stopping = True
    offline = []
    connection.on_offline(lambda: offline.append(True))
    connection._on_session_start(None)
    connection._on_disconnected(None)
    connection._on_disconnected(None)
    assert offline == [True]
    assert not connection.is_online()


async def test_send_serializes_element(monkeypatch):
    connection = component_connection()
    connection._on_session_start(None)
    raw = []
    monkeypatch.setattr(connection.xmpp, "send_raw", raw.append)
    element = ET.Element("message", {"to": "chat@conf.example", "type": "groupchat"})
    ET.SubElement(element, "body").text = "a < b"
    await connection.send(element)
    assert raw == [
        '<message to="chat@conf.example" type="groupchat"><body>a &lt; b</body></message>'
    ]


async def test_raw_stanzas_are_forwarded():
    connection = component_connection()
    received = []
    connection.on_stanza(received.append)

    def broken(xml):
        raise RuntimeError("boom")

    connection.on_stanza(broken)
    xml = ET.fromstring("<message xmlns='jabber:component:accept'/>")
    connection._on_raw_stanza(SimpleNamespace(xml=xml))
    assert received == [xml]


async def test_failed_auth_fails_pending_start():
    import asyncio

    connection = component_connection()
    connection._ready = asyncio.get_running_loop().create_future()
    connection._on_failed_auth(None)
    with pytest.raises(AuthenticationError):
        await connection._ready
