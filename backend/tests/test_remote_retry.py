import anyio
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from deliverytracker.core.config import settings
from deliverytracker.core.errors import RemoteUnavailable, UniquenessConflict
from deliverytracker.core.remote_retry import translate_remote_error, with_remote_retry


class DummyOrig(Exception):
    def __init__(self, sqlstate: str | None, message: str):
        super().__init__(message)
        self.sqlstate = sqlstate


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(settings, "REMOTE_RETRY_ATTEMPTS", 2)
    monkeypatch.setattr(settings, "REMOTE_RETRY_BASE_DELAY", 0.0)
    monkeypatch.setattr(settings, "REMOTE_RETRY_JITTER", 0.0)


@pytest.mark.anyio
async def test_transient_failure_is_retried(no_backoff):
    calls = {"count": 0}

    async def flaky_operation():
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("stmt", {}, DummyOrig("08006", "connection failure"))
        return "ok"

    assert await with_remote_retry(flaky_operation) == "ok"
    assert calls["count"] == 2


@pytest.mark.anyio
async def test_exhausted_retries_become_remote_unavailable(no_backoff):
    calls = {"count": 0}

    async def offline():
        calls["count"] += 1
        raise ConnectionRefusedError("refused")

    with pytest.raises(RemoteUnavailable):
        await with_remote_retry(offline)
    assert calls["count"] == 2


@pytest.mark.anyio
async def test_unique_violation_is_not_retried(no_backoff):
    calls = {"count": 0}

    async def duplicate():
        calls["count"] += 1
        raise IntegrityError("stmt", {}, DummyOrig("23505", "duplicate key value"))

    with pytest.raises(UniquenessConflict):
        await with_remote_retry(duplicate)
    assert calls["count"] == 1


@pytest.mark.anyio
async def test_timeout_counts_as_unavailable(no_backoff):
    async def slow():
        await anyio.sleep(1)

    with pytest.raises(RemoteUnavailable):
        await with_remote_retry(slow, attempts=1, timeout=0.01)


@pytest.mark.anyio
async def test_other_errors_propagate_untouched(no_backoff):
    async def broken():
        raise ProgrammingError("stmt", {}, DummyOrig("42P01", "relation does not exist"))

    with pytest.raises(ProgrammingError):
        await with_remote_retry(broken)


def test_translate_remote_error():
    syntax = OperationalError("stmt", {}, DummyOrig("42601", "syntax"))
    assert translate_remote_error(syntax) is syntax
    shutdown = OperationalError("stmt", {}, DummyOrig("57P01", "admin shutdown"))
    assert isinstance(translate_remote_error(shutdown), RemoteUnavailable)
