import logging

import pytest

from duplex_chat.appstatus import AppStatus

_log = logging.getLogger(__name__)
log_fmt = r"%(asctime)-15s %(levelname)s %(name)s %(funcName)s:%(lineno)d %(message)s"
datefmt = "%Y-%m-%d %H:%M:%S"
logging.basicConfig(format=log_fmt, level=logging.DEBUG, datefmt=datefmt)


@pytest.fixture
def anyio_backend():
    """Exclude trio from tests"""
    return "asyncio"


@pytest.fixture
def reset_appstatus():
    """Fixture to reset AppStatus state for testing."""
    original_callbacks = AppStatus._shutdown_callbacks.copy()
    AppStatus.reset()

    yield

    AppStatus.reset()
    AppStatus._shutdown_callbacks.extend(original_callbacks)
