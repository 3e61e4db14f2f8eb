from contextvars import ContextVar
from contextlib import contextmanager


request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
ingest_source_var: ContextVar[str | None] = ContextVar("ingest_source", default=None)


@contextmanager
def ingest_context(source: str | None):
    token = ingest_source_var.set(source)
    try:
        yield
    finally:
        ingest_source_var.reset(token)
