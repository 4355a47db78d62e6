"""Service provider helpers for wiring OrderService with ports.

``get_order_service`` returns a configured ``OrderService``. With
``settings.USE_HTTP_ADAPTERS`` enabled it talks to the member, product and
payment services over HTTP; otherwise it uses the fast in-process stubs from
``adapters`` suitable for tests and local development. Orders are always
persisted through the Django ORM repository.

``get_idempotency_cache`` returns the process-wide ``IdempotencyCache``
shared by every create request, built lazily from settings.
"""

import threading

from django.conf import settings

from .adapters import MemberStub, PaymentsStub, ProductStub
from .http_adapters import HttpMemberClient, HttpPaymentsClient, HttpProductClient
from .idempotency import IdempotencyCache
from .repository import OrderRepository
from .service import DEFAULT_CREATE_TIMEOUT, DEFAULT_MAX_ITEMS, OrderService

_cache_lock = threading.Lock()
_cache: IdempotencyCache | None = None


def get_order_service() -> OrderService:
    """Return a configured OrderService instance.

    Returns:
        OrderService: A service instance with HTTP or stub ports, depending
        on ``settings.USE_HTTP_ADAPTERS``.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        members, products, payments = HttpMemberClient(), HttpProductClient(), HttpPaymentsClient()
    else:
        members, products, payments = MemberStub(), ProductStub(), PaymentsStub()

    return OrderService(
        members=members,
        products=products,
        payments=payments,
        orders=OrderRepository(),
        create_timeout=getattr(settings, "ORDER_CREATE_TIMEOUT_SECS", DEFAULT_CREATE_TIMEOUT),
        max_items=getattr(settings, "ORDER_MAX_ITEMS", DEFAULT_MAX_ITEMS),
    )


def worst_case_create_seconds() -> float:
    """Upper bound on how long ``create_order`` can run.

    The time budget is only checked before each downstream call, so one call
    started just before the budget ends can still run its full retry policy.
    """
    attempts = max(1, getattr(settings, "HTTP_RETRY_MAX", 3))
    per_attempt = getattr(settings, "HTTP_TIMEOUT_SECS", 3.0) + getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
    return getattr(settings, "ORDER_CREATE_TIMEOUT_SECS", DEFAULT_CREATE_TIMEOUT) + attempts * per_attempt


def get_idempotency_cache() -> IdempotencyCache:
    global _cache
    with _cache_lock:
        if _cache is None:
            _cache = IdempotencyCache(
                ttl_seconds=getattr(settings, "IDEMPOTENCY_TTL_SECS", 600),
                max_entries=getattr(settings, "IDEMPOTENCY_MAX_ENTRIES", 1000),
                wait_timeout=getattr(settings, "IDEMPOTENCY_WAIT_TIMEOUT_SECS", 15.0),
                takeover_after=worst_case_create_seconds(),
            )
        return _cache


def reset_idempotency_cache() -> None:
    """Drop the shared cache so the next call rebuilds it from settings."""
    global _cache
    with _cache_lock:
        _cache = None
