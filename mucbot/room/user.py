from typing import TYPE_CHECKING, Literal

from ..clients.xmpp.stanza import PresenceStanza
from ..shared.address import Address
from ..shared.exceptions import RoomUserMismatchError

if TYPE_CHECKING:
    from .room import Room

__all__ = ("RoomUser", "RoomUserState")

RoomUserState = Literal["offline", "online"]


class RoomUser:
    """One occupant of a room, keyed by its full address (resource = nick)."""

    def __init__(self, room: "Room", presence: PresenceStanza):
        if presence.from_ is None or presence.from_.is_bare:
            raise RoomUserMismatchError("presence has no occupant address")
        self.room = room
        self.address: Address = presence.from_
        self.is_me = presence.is_me()
        self.state: RoomUserState = "offline"
        self.role = "none"
        self.affiliation = "none"

    @property
    def nick(self) -> str:
        return self.address.resource or ""

    def is_online(self) -> bool:
        return self.state == "online"

    def is_moderator(self) -> bool:
        return self.role == "moderator"

    def update(self, presence: PresenceStanza) -> bool:
        """Apply a presence and return True if online/offline changed.

        Role and affiliation are only overwritten when the presence carries
        them.
        """
        if presence.from_ != self.address:
            raise RoomUserMismatchError(
                f"presence from {presence.from_} cannot update occupant {self.address}"
            )
        previous = self.state
        self.state = "online" if presence.is_available() else "offline"
        if role := presence.role():
            self.role = role
        if affiliation := presence.affiliation():
            self.affiliation = affiliation
        return previous != self.state

    def __repr__(self) -> str:
        return (
            f"RoomUser({self.address}, state={self.state}, role={self.role}, "
            f"affiliation={self.affiliation}, is_me={self.is_me})"
        )
