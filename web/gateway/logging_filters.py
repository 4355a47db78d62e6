"""Logging filters for enriching log records with request context.

This module provides a logging filter that injects the current request id
into log records using the ContextVar set by the gateway middleware. Adding
the filter to the logging configuration enables per-request correlation in
the JSON logs without modifying individual log statements.
"""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value is retrieved from ``REQUEST_ID_CTX``. Outside a request it is a
    hyphen ("-") so formatters can reliably reference ``%(request_id)s``.
    Records that already carry a ``request_id`` are left untouched.
    """

    def filter(self, record: LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = REQUEST_ID_CTX.get()
        return True
