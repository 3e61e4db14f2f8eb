import logging
import os

from .request_context import ingest_source_var, request_id_var


LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "request_id=%(request_id)s source=%(ingest_source)s %(message)s"
)


def _stamp(record: logging.LogRecord) -> logging.LogRecord:
    if not hasattr(record, "request_id"):
        record.request_id = request_id_var.get() or "-"
    if not hasattr(record, "ingest_source"):
        record.ingest_source = ingest_source_var.get() or "-"
    return record


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.ingest_source = ingest_source_var.get() or "-"
        return True


class SafeFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return super().format(_stamp(record))


def setup_logging() -> None:
    level = os.getenv("FITNESS_LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    # Records created by third-party loggers still need the context fields.
    old_factory = logging.getLogRecordFactory()

    def record_factory(*args, **kwargs):
        return _stamp(old_factory(*args, **kwargs))

    logging.setLogRecordFactory(record_factory)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    root = logging.getLogger()
    root.addFilter(ContextFilter())

    formatter = SafeFormatter(LOG_FORMAT)
    for handler in root.handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
