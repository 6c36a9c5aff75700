from enum import StrEnum

__all__ = ("RoomEvent",)


class RoomEvent(StrEnum):
    JOINED = "room_joined"
    PARTED = "room_parted"
    MESSAGE = "room_message"
    MENTIONNED = "room_mentionned"
    COMMAND = "room_command"
