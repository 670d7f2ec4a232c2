import logging
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from urlshortener.common.clock import ManualClock
from urlshortener.common.logging import LOGGER_NAME


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start_ms=1_000_000.0)


@pytest.fixture
def schema_path() -> Path:
    return REPO_ROOT / "config" / "schema.json"


@pytest.fixture(autouse=True)
def _reset_app_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
