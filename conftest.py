"""Test-session setup shared by the test suite and the module doctests."""

import pytest
import structlog

from punit.budget import accumulator, suite
from punit.spec import registry


def _configure_structlog() -> None:
    # Route through stdlib logging so doctests see no log output on stdout.
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


_configure_structlog()


@pytest.fixture(autouse=True)
def _isolate_process_state():
    suite.reset()
    accumulator.reset()
    registry.reset()
    yield
    suite.reset()
    accumulator.reset()
    registry.reset()
    _configure_structlog()
