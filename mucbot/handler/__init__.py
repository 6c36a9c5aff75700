from .base import UNSET, Handler
from .registry import HandlerRegistry

__all__ = ("Handler", "HandlerRegistry", "UNSET")
