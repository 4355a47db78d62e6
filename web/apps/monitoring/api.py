import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.orders.providers import get_idempotency_cache

logger = logging.getLogger(__name__)


def health_view(_request):
    """Report database reachability and idempotency cache occupancy.

    Returns 200 when the database answers, 503 otherwise.
    """
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health check: database unreachable")

    code = 200 if db_ok else 503
    return JsonResponse(
        {
            "ok": db_ok,
            "components": {
                "db": {"ok": db_ok},
                "idempotency_cache": {"ok": True, **get_idempotency_cache().stats()},
            },
        },
        status=code,
    )
