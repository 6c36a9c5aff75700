import pytest
from loguru import logger

from mucbot.handler.registry import HandlerRegistry
from mucbot.handlers import register_builtin_handlers

from .helpers import FakeBot


@pytest.fixture
def bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def registry() -> HandlerRegistry:
    return register_builtin_handlers(HandlerRegistry())


@pytest.fixture
def log_records():
    records: list[dict] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)