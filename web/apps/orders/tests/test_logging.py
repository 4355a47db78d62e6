"""The JSON log formatter configured in settings renders request-correlated records."""

import json
import logging
import warnings

from django.conf import settings
from django.utils.module_loading import import_string

from gateway.logging_filters import RequestIdFilter
from gateway.middleware import REQUEST_ID_CTX


def _formatter():
    conf = dict(settings.LOGGING["formatters"]["json"])
    factory = import_string(conf.pop("()"))
    return factory(**conf)


def test_json_formatter_loads_without_deprecation_warning():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        _formatter()


def test_json_log_line_carries_request_id():
    record = logging.LogRecord("apps.orders.service", logging.INFO, __file__, 1, "order created", None, None)
    token = REQUEST_ID_CTX.set("req-42")
    try:
        RequestIdFilter().filter(record)
    finally:
        REQUEST_ID_CTX.reset(token)

    line = json.loads(_formatter().format(record))
    assert line["message"] == "order created"
    assert line["levelname"] == "INFO"
    assert line["name"] == "apps.orders.service"
    assert line["request_id"] == "req-42"
