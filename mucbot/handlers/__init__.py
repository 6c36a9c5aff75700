from ..handler.base import Handler
from ..handler.registry import HandlerRegistry
from .command import CommandHandler, SayCommandHandler
from .hello import HelloHandler
from .moderate import ModerateHandler
from .no_duplicate import NoDuplicateHandler
from .quotes import QuotesBaseHandler, QuotesHandler, RandomQuotesHandler
from .respond import RespondHandler

__all__ = (
    "BUILTIN_HANDLERS",
    "CommandHandler",
    "HelloHandler",
    "ModerateHandler",
    "NoDuplicateHandler",
    "QuotesBaseHandler",
    "QuotesHandler",
    "RandomQuotesHandler",
    "RespondHandler",
    "SayCommandHandler",
    "register_builtin_handlers",
)

BUILTIN_HANDLERS: dict[str, type[Handler]] = {
    "hello": HelloHandler,
    "respond": RespondHandler,
    "quotes": QuotesHandler,
    "quotes_random": RandomQuotesHandler,
    "moderate": ModerateHandler,
    "no-duplicate": NoDuplicateHandler,
    "command_say": SayCommandHandler,
}


def register_builtin_handlers(registry: HandlerRegistry | None = None) -> HandlerRegistry:
    registry = registry or HandlerRegistry.singleton()
    for tag, handler_class in BUILTIN_HANDLERS.items():
        if registry.get_class(tag) is None:
            registry.register(tag, handler_class)
    return registry
