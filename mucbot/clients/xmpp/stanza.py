import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator
from typing import Any, ClassVar
from urllib.parse import unquote

from ...shared.address import Address
from ...shared.constants import STATUS_NICK_CHANGE, STATUS_SELF_PRESENCE

__all__ = (
    "IqStanza",
    "MessageStanza",
    "PresenceStanza",
    "Stanza",
    "local_name",
)


def local_name(tag: Any) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _children(xml: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in xml:
        if local_name(child.tag) == name:
            yield child


def _child(xml: ET.Element, name: str) -> ET.Element | None:
    return next(_children(xml, name), None)


class Stanza:
    """Read-only view over an inbound XML stanza.

    Children are matched on their local name, whatever their namespace.
    """

    kind: ClassVar[str] = ""

    def __init__(self, xml: ET.Element):
        self.xml = xml
        self.from_ = Address.try_parse(xml.get("from"))
        self.to = Address.try_parse(xml.get("to"))
        self.type = xml.get("type")

    @staticmethod
    def parse_incoming(xml: ET.Element) -> "Stanza | None":
        cls = _STANZA_CLASSES.get(local_name(xml.tag))
        if cls is None:
            return None
        return cls(xml)

    def is_error(self) -> bool:
        return self.type == "error"

    def dump(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "from": str(self.from_) if self.from_ else None,
            "to": str(self.to) if self.to else None,
            "xml": ET.tostring(self.xml, encoding="unicode"),
        }

    def __str__(self) -> str:
        return ET.tostring(self.xml, encoding="unicode")


class MessageStanza(Stanza):
    kind = "message"

    def is_delayed(self) -> bool:
        """True for messages replayed from the room history."""
        return _child(self.xml, "delay") is not None

    def stanza_id(self) -> str | None:
        """The unique and stable stanza id set by the room (XEP-0359)."""
        elem = _child(self.xml, "stanza-id")
        return elem.get("id") if elem is not None else None

    def occupant_id(self) -> str | None:
        """The anonymous unique occupant id (XEP-0421)."""
        elem = _child(self.xml, "occupant-id")
        return elem.get("id") if elem is not None else None

    def body(self) -> str | None:
        elem = _child(self.xml, "body")
        if elem is None:
            return None
        return elem.text or ""

    def is_mentionned(self, addresses: Address | Iterable[Address | None]) -> bool:
        if isinstance(addresses, Address):
            addresses = [addresses]
        uris = {f"xmpp:{a}" for a in addresses if a is not None}
        if not uris:
            return False
        for reference in _children(self.xml, "reference"):
            if reference.get("type") != "mention":
                continue
            uri = reference.get("uri") or ""
            # servers may percent-encode the nickname in the uri
            if uri in uris or unquote(uri) in uris:
                return True
        return False


class IqStanza(Stanza):
    kind = "iq"


class PresenceStanza(Stanza):
    kind = "presence"

    def __init__(self, xml: ET.Element):
        super().__init__(xml)
        self._is_me = False
        self._role: str | None = None
        self._affiliation: str | None = None
        self._is_nick_change = False
        self._new_nick: str | None = None
        for x in _children(xml, "x"):
            for status in _children(x, "status"):
                code = status.get("code")
                if code == STATUS_SELF_PRESENCE:
                    self._is_me = True
                elif code == STATUS_NICK_CHANGE:
                    self._is_nick_change = True
            for item in _children(x, "item"):
                if role := item.get("role"):
                    self._role = role
                if affiliation := item.get("affiliation"):
                    self._affiliation = affiliation
                if nick := item.get("nick"):
                    self._new_nick = nick

    def is_me(self) -> bool:
        return self._is_me

    def is_available(self) -> bool:
        return self.type not in ("unavailable", "error")

    def role(self) -> str | None:
        return self._role

    def affiliation(self) -> str | None:
        return self._affiliation

    def nickname_change(self) -> str | None:
        """The new nickname if this presence announces a nick change."""
        if not self._is_nick_change:
            return None
        return self._new_nick


_STANZA_CLASSES: dict[str, type[Stanza]] = {
    "message": MessageStanza,
    "iq": IqStanza,
    "presence": PresenceStanza,
}
