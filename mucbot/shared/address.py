from dataclasses import dataclass

from slixmpp.jid import JID, InvalidJID

__all__ = ("Address", "InvalidAddressError")


class InvalidAddressError(ValueError):
    """Unparseable address"""


@dataclass(frozen=True, slots=True)
class Address:
    """An XMPP address: ``local@domain/resource``.

    Local part and domain compare case-insensitively (they are stored
    lower-cased), the resource is compared as is.
    """

    local: str
    domain: str
    resource: str | None = None

    def __post_init__(self):
        if not self.domain:
            raise InvalidAddressError("address domain must not be empty")
        object.__setattr__(self, "local", (self.local or "").lower())
        object.__setattr__(self, "domain", self.domain.lower())
        if not self.resource:
            object.__setattr__(self, "resource", None)

    @classmethod
    def parse(cls, value: str) -> "Address":
        if not isinstance(value, str) or not value.strip():
            raise InvalidAddressError(f"invalid address: {value!r}")
        try:
            jid = JID(value.strip())
        except InvalidJID as e:
            raise InvalidAddressError(f"invalid address: {value!r}") from e
        if not jid.domain:
            raise InvalidAddressError(f"invalid address: {value!r}")
        return cls(jid.node or "", jid.domain, jid.resource or None)

    @classmethod
    def try_parse(cls, value: str | None) -> "Address | None":
        if not value:
            return None
        try:
            return cls.parse(value)
        except InvalidAddressError:
            return None

    @property
    def bare(self) -> "Address":
        if self.resource is None:
            return self
        return Address(self.local, self.domain)

    @property
    def is_bare(self) -> bool:
        return self.resource is None

    def with_resource(self, resource: str) -> "Address":
        return Address(self.local, self.domain, resource)

    def __str__(self) -> str:
        s = f"{self.local}@{self.domain}" if self.local else self.domain
        if self.resource is not None:
            s = f"{s}/{self.resource}"
        return s
