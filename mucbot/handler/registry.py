import importlib.util
import sys
from pathlib import Path

from loguru import logger

from ..shared.exceptions import ConfigurationError, DuplicateHandlerTypeError
from .base import Handler

__all__ = ("HandlerRegistry",)

_registry: "HandlerRegistry | None" = None


class HandlerRegistry:
    """Maps handler type tags to handler classes."""

    def __init__(self):
        self.handlers: dict[str, type[Handler]] = {}

    @staticmethod
    def singleton() -> "HandlerRegistry":
        global _registry
        if _registry is None:
            _registry = HandlerRegistry()
        return _registry

    def register(self, tag: str, handler_class: type[Handler]) -> None:
        if tag in self.handlers:
            raise DuplicateHandlerTypeError(f"Handler {tag} already exists")
        if not (isinstance(handler_class, type) and issubclass(handler_class, Handler)):
            raise TypeError(f"Handler {tag} must be a Handler subclass")
        self.handlers[tag] = handler_class
        logger.debug(f"Registered handler type: {tag} ({handler_class.__name__})")

    def get_class(self, tag: str) -> type[Handler] | None:
        return self.handlers.get(tag)

    def tags(self) -> list[str]:
        return sorted(self.handlers)

    def register_from_file(self, file_path: str | Path) -> None:
        """Import a Python file and call its ``register_handlers(registry)``."""
        path = Path(file_path).resolve()
        if not path.exists():
            raise ConfigurationError(f'File "{path}" does not exist')
        if not path.is_file():
            raise ConfigurationError(f'"{path}" is not a file')
        module_name = f"mucbot_handlers.{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"Failed to load handler file spec: {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(spec.name, None)
            raise
        register = getattr(module, "register_handlers", None)
        if not callable(register):
            raise ConfigurationError(
                f'"{path}" has no exported "register_handlers" function'
            )
        register(self)
        logger.info(f"Loaded handlers from {path}")
