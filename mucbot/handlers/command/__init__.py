from .base import CommandHandler
from .say import SayCommandHandler

__all__ = ("CommandHandler", "SayCommandHandler")
