import xml.etree.ElementTree as ET
from dataclasses import dataclass

from ...shared.address import Address
from ...shared.constants import MENTION_PLACEHOLDER, NS_REFERENCE

__all__ = ("Reference", "ReferenceMention")


class Reference:
    type: str = ""

    def to_xml(self) -> ET.Element:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class ReferenceMention(Reference):
    """XEP-0372 mention of an occupant, covering ``text[begin:end]``."""

    address: Address
    begin: int
    end: int
    type: str = "mention"

    def to_xml(self) -> ET.Element:
        return ET.Element(
            "reference",
            {
                "xmlns": NS_REFERENCE,
                "begin": str(self.begin),
                "end": str(self.end),
                "type": self.type,
                "uri": f"xmpp:{self.address}",
            },
        )

    @classmethod
    def mention(
        cls, txt: str, address: Address, placeholder: str = MENTION_PLACEHOLDER
    ) -> tuple[str, list["ReferenceMention"]]:
        """Replace each placeholder with the nickname of ``address``.

        Returns the new text and one reference per replaced placeholder.
        """
        references: list[ReferenceMention] = []
        if not placeholder:
            return txt, references
        nick = address.resource or ""
        parts = txt.split(placeholder)
        out = parts[0]
        for part in parts[1:]:
            begin = len(out)
            out += nick
            references.append(cls(address, begin, begin + len(nick)))
            out += part
        return out, references
