import asyncio
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

from apscheduler.jobstores.base import JobLookupError

from mucbot.clients.xmpp.stanza import MessageStanza, PresenceStanza, Stanza
from mucbot.room.room import Room
from mucbot.shared.address import Address
from mucbot.shared.constants import NS_MUC_USER, NS_REFERENCE

NS_CLIENT = "jabber:client"
ROOM_ADDRESS = Address("chat", "conf.example")
BOT_ADDRESS = Address("bot", "example.com", "mucbot")


@dataclass
class FakeJob:
    id: str
    func: Any
    trigger: str
    kwargs: dict[str, Any] = field(default_factory=dict)


class FakeScheduler:
    def __init__(self):
        self.jobs: dict[str, FakeJob] = {}
        self.running = False

    def start(self) -> None:
        self.running = True

    def shutdown(self, wait: bool = True) -> None:
        self.running = False

    def add_job(self, func, trigger, id=None, replace_existing=False, **kwargs):
        if id in self.jobs and not replace_existing:
            raise ValueError(f"job {id} exists")
        self.jobs[id] = FakeJob(id, func, trigger, kwargs)
        return self.jobs[id]

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def get_job(self, job_id: str) -> FakeJob | None:
        return self.jobs.get(job_id)


class FakeBot:
    """Stands for the bot in room and handler tests; records sent stanzas."""

    def __init__(self, address: Address = BOT_ADDRESS):
        self.address = address
        self.scheduler = FakeScheduler()
        self.sent: list[ET.Element] = []

    async def send_stanza(self, name: str, attrs: dict[str, str], *children: ET.Element):
        element = ET.Element(name, attrs)
        element.extend(children)
        self.sent.append(element)

    def sent_bodies(self) -> list[str]:
        bodies = []
        for element in self.sent:
            if element.tag == "message":
                body = element.find("body")
                bodies.append(body.text if body is not None else None)
        return bodies

    def sent_iqs(self) -> list[ET.Element]:
        return [element for element in self.sent if element.tag == "iq"]


def _tag(name: str, ns: str = NS_CLIENT) -> str:
    return f"{{{ns}}}{name}"


def presence(
    sender: str,
    *,
    type_: str | None = None,
    status: tuple[str, ...] = (),
    role: str | None = None,
    affiliation: str | None = None,
    nick: str | None = None,
) -> PresenceStanza:
    attrs = {"from": sender, "to": str(BOT_ADDRESS)}
    if type_:
        attrs["type"] = type_
    xml = ET.Element(_tag("presence"), attrs)
    x = ET.SubElement(xml, _tag("x", NS_MUC_USER))
    item_attrs = {}
    if role:
        item_attrs["role"] = role
    if affiliation:
        item_attrs["affiliation"] = affiliation
    if nick:
        item_attrs["nick"] = nick
    if item_attrs:
        ET.SubElement(x, _tag("item", NS_MUC_USER), item_attrs)
    for code in status:
        ET.SubElement(x, _tag("status", NS_MUC_USER), {"code": code})
    stanza = Stanza.parse_incoming(xml)
    assert isinstance(stanza, PresenceStanza)
    return stanza


def message(
    sender: str,
    body: str | None = "hello",
    *,
    type_: str = "groupchat",
    delayed: bool = False,
    stanza_id: str | None = None,
    occupant_id: str | None = None,
    mentions: tuple[str, ...] = (),
) -> MessageStanza:
    xml = ET.Element(
        _tag("message"), {"from": sender, "to": str(BOT_ADDRESS), "type": type_}
    )
    if body is not None:
        ET.SubElement(xml, _tag("body")).text = body
    if delayed:
        ET.SubElement(
            xml, _tag("delay", "urn:xmpp:delay"), {"stamp": "2024-01-01T00:00:00Z"}
        )
    if stanza_id:
        ET.SubElement(
            xml,
            _tag("stanza-id", "urn:xmpp:sid:0"),
            {"id": stanza_id, "by": str(ROOM_ADDRESS)},
        )
    if occupant_id:
        ET.SubElement(xml, _tag("occupant-id", "urn:xmpp:occupant-id:0"), {"id": occupant_id})
    for uri in mentions:
        ET.SubElement(
            xml,
            _tag("reference", NS_REFERENCE),
            {"type": "mention", "uri": uri, "begin": "0", "end": "1"},
        )
    stanza = Stanza.parse_incoming(xml)
    assert isinstance(stanza, MessageStanza)
    return stanza


def occupant(nick: str) -> str:
    return f"{ROOM_ADDRESS}/{nick}"


async def online_room(
    bot: FakeBot | None = None, nick: str = "bot1", others: tuple[str, ...] = ()
) -> Room:
    """A room where the bot joined as ``nick``, with ``others`` present."""
    room = Room(bot or FakeBot(), ROOM_ADDRESS)
    await room.join(nick)
    for other in others:
        room.receive_stanza(presence(occupant(other), role="participant"))
    room.receive_stanza(
        presence(occupant(nick), status=("110",), role="moderator", affiliation="owner")
    )
    assert room.is_online()
    return room


async def drain(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class Clock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def logged(records: list[dict], level: str, fragment: str) -> bool:
    return any(r["level"].name == level and fragment in r["message"] for r in records)
