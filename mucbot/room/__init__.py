from .events import RoomEvent
from .room import Room
from .user import RoomUser

__all__ = ("Room", "RoomEvent", "RoomUser")
