"""Middleware that assigns and propagates a request identifier.

This module provides Django middleware that ensures every incoming HTTP
request receives a request identifier (UUID). The identifier is read from the
incoming ``X-Request-Id`` header when provided by the client, or generated
server-side otherwise. The middleware stores the id on the ``request`` object
and in a context variable so code running downstream (log filters, the
outbound HTTP clients, the error handler) can access it without passing the
value explicitly. The same id is returned as ``trace_id`` in error bodies.

Behavior contract:
- If the incoming request contains the ``X-Request-Id`` header, that value
  is reused as the request id.
- Otherwise a new UUIDv4 is generated.
- The response will include the same id in the ``X-Request-ID`` header.
- The context variable is restored once the response is produced, so a
  worker thread never leaks an id into the next request.

``ApiSizeLimitMiddleware`` rejects ``/api/`` requests whose declared body is
larger than ``settings.API_MAX_BYTES`` with HTTP 413.
"""

import contextvars
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
DEFAULT_MAX_API_BYTES = 1 * 1024 * 1024


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): The name of the incoming HTTP header (in Django's
            ``request.META`` casing) that may contain a client-provided id.
        RESPONSE_HEADER (str): The name of the header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"   # header to add to outgoing responses
    MAX_LENGTH = 128

    def process_request(self, request):
        """Populate the request with a request id and set the context var.

        Client-supplied ids longer than ``MAX_LENGTH`` are replaced with a
        generated one.
        """
        rid = (request.META.get(self.HEADER) or "").strip()
        if not rid or len(rid) > self.MAX_LENGTH:
            rid = str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        """Set the ``X-Request-ID`` response header and restore the context var."""
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
            request._request_id_token = None
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        limit = getattr(settings, "API_MAX_BYTES", DEFAULT_MAX_API_BYTES)
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > limit:
            return JsonResponse(
                {
                    "error": "PAYLOAD_TOO_LARGE",
                    "message": f"Request body exceeds {limit} bytes",
                    "timestamp": timezone.now().isoformat(),
                    "trace_id": REQUEST_ID_CTX.get(),
                },
                status=413,
            )
        return None
