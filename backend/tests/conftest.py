import os
import sys
from pathlib import Path

import pytest

# Keep tests off Redis and TLS before settings import
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("DB_SSL", "false")

# Add the backend directory so `deliverytracker` imports resolve during tests
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from deliverytracker.core.cache import LocalCache  # noqa: E402
from deliverytracker.sync.orchestrator import SyncOrchestrator  # noqa: E402

from fakes import FIXED_NOW, FakeRemoteStore  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def cache():
    return LocalCache(use_redis=False)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def orchestrator(remote, cache):
    return SyncOrchestrator("owner-1", remote=remote, cache=cache, clock=lambda: FIXED_NOW)
