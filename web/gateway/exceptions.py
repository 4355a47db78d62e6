"""Error rendering for the HTTP API.

Every error leaves the API with the same JSON body::

    {"error": "<CODE>", "message": "...", "timestamp": "...", "trace_id": "...",
     "field_errors": {...}}   # field_errors only for VALIDATION_ERROR

``api_exception_handler`` is installed as DRF's ``EXCEPTION_HANDLER``; it maps
domain faults (``OrderError``), Pydantic validation errors and DRF's own
exceptions to that body and an HTTP status. ``not_found_view`` and
``server_error_view`` render the same shape for errors raised outside DRF.
"""

import logging

from django.http import JsonResponse
from django.utils import timezone
from pydantic import ValidationError
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response

from apps.orders.errors import ErrorCode, OrderError, OrderValidationError

from .middleware import REQUEST_ID_CTX

logger = logging.getLogger("gateway.errors")

# DRF exception -> error code
_DRF_CODES = {
    drf_exceptions.NotFound: "NOT_FOUND",
    drf_exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
    drf_exceptions.Throttled: "TOO_MANY_REQUESTS",
    drf_exceptions.UnsupportedMediaType: "UNSUPPORTED_MEDIA_TYPE",
    drf_exceptions.NotAcceptable: "NOT_ACCEPTABLE",
    drf_exceptions.AuthenticationFailed: "UNAUTHORIZED",
    drf_exceptions.NotAuthenticated: "UNAUTHORIZED",
    drf_exceptions.PermissionDenied: "FORBIDDEN",
}


def error_body(code: str, message: str, field_errors: dict | None = None) -> dict:
    body = {
        "error": code,
        "message": message,
        "timestamp": timezone.now().isoformat(),
        "trace_id": REQUEST_ID_CTX.get(),
    }
    if field_errors:
        body["field_errors"] = field_errors
    return body


def _field_errors(exc: ValidationError) -> dict:
    """Flatten Pydantic errors into ``{"items.0.quantity": "message"}``."""
    out: dict[str, str] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "body"
        out.setdefault(loc, err.get("msg", "Invalid value"))
    return out


def _log(status_code: int, code: str, message: str, exc_info=None) -> None:
    extra = {"error_code": code, "status": status_code}
    if status_code >= 500:
        logger.error(message, extra=extra, exc_info=exc_info)
    else:
        logger.warning(message, extra=extra)


def api_exception_handler(exc, context):
    """DRF exception handler producing the common error body.

    Args:
        exc: The raised exception.
        context: DRF handler context (view, request, ...). Unused.

    Returns:
        Response: Always a response; unexpected exceptions become a 500 with
        ``INTERNAL_ERROR`` after being logged with their traceback.
    """
    if isinstance(exc, OrderValidationError):
        status_code, code = exc.http_status, exc.code.value
        body = error_body(code, exc.message, exc.field_errors)
        _log(status_code, code, exc.message)
        return Response(body, status=status_code)

    if isinstance(exc, OrderError):
        status_code, code = exc.http_status, exc.code.value
        _log(status_code, code, exc.message)
        return Response(error_body(code, exc.message), status=status_code)

    if isinstance(exc, ValidationError):
        code = ErrorCode.VALIDATION_ERROR.value
        _log(400, code, "request validation failed")
        return Response(error_body(code, "Validation failed", _field_errors(exc)), status=400)

    if isinstance(exc, drf_exceptions.ParseError):
        code = ErrorCode.VALIDATION_ERROR.value
        _log(400, code, str(exc.detail))
        return Response(error_body(code, str(exc.detail)), status=400)

    if isinstance(exc, drf_exceptions.APIException):
        code = next((c for cls, c in _DRF_CODES.items() if isinstance(exc, cls)), "BAD_REQUEST")
        message = str(exc.detail) if not isinstance(exc.detail, (dict, list)) else "Request rejected"
        _log(exc.status_code, code, message)
        resp = Response(error_body(code, message), status=exc.status_code)
        wait = getattr(exc, "wait", None)
        if wait:
            resp["Retry-After"] = str(int(wait))
        return resp

    code = ErrorCode.INTERNAL_ERROR.value
    _log(500, code, f"unhandled error: {exc!r}", exc_info=exc)
    return Response(error_body(code, "An unexpected error occurred"), status=500)


def not_found_view(request, exception=None):
    return JsonResponse(error_body("NOT_FOUND", f"No route for {request.path}"), status=404)


def server_error_view(request):
    return JsonResponse(error_body(ErrorCode.INTERNAL_ERROR.value, "An unexpected error occurred"), status=500)
