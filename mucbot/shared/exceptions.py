__all__ = (
    "MucBotError",
    "ConfigurationError",
    "HandlerOptionsError",
    "DuplicateHandlerError",
    "DuplicateHandlerTypeError",
    "RoomUserMismatchError",
    "TransportError",
    "ConnectionFailedError",
    "AuthenticationError",
)


class MucBotError(Exception):
    """Base error"""


class ConfigurationError(MucBotError):
    """Configuration error"""


class HandlerOptionsError(ConfigurationError):
    """Handler options cannot be applied"""


class DuplicateHandlerError(MucBotError):
    """Handler id already attached to the room"""


class DuplicateHandlerTypeError(MucBotError):
    """Handler type already registered"""


class RoomUserMismatchError(MucBotError):
    """Presence does not belong to this occupant"""


class TransportError(MucBotError):
    """Transport error"""


class ConnectionFailedError(TransportError):
    """Connection could not be established"""


class AuthenticationError(MucBotError):
    """Authentication error"""
