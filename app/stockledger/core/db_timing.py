from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_db_time_ms: ContextVar[float | None] = ContextVar("stockledger_db_time_ms", default=None)


@contextmanager
def track_db_time() -> Iterator[None]:
    token = _db_time_ms.set(0.0)
    try:
        yield
    finally:
        _db_time_ms.reset(token)


def add_db_time(delta_ms: float) -> None:
    current = _db_time_ms.get()
    if current is None:
        return
    _db_time_ms.set(current + delta_ms)


def get_db_time_ms() -> float | None:
    return _db_time_ms.get()
