from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_TABLE_ID_CTX: ContextVar[str | None] = ContextVar("table_id", default=None)


def set_request_context(*, request_id: str | None = None, table_id: str | None = None) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if table_id is not None:
        _TABLE_ID_CTX.set(table_id)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_table_id() -> str | None:
    return _TABLE_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _TABLE_ID_CTX.set(None)
