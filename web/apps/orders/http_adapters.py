"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service (members, products, payments) to
    avoid hammering unhealthy dependencies, with HALF_OPEN probing after a
    timeout.
- Simple retry policy with exponential backoff for transport errors and 5xx.
- Payments idempotency: charges and refunds carry an ``Idempotency-Key``
    derived from the order id / transaction id so a retried call is not
    applied twice downstream.

Once retries are exhausted or the circuit is open, every client raises
``ServiceUnavailable``. Business rejections (unknown member or product,
declined payment) are mapped to domain results, not to circuit failures.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import (
    Member,
    MemberPort,
    PaymentRequest,
    PaymentResult,
    PaymentStatus,
    PaymentsPort,
    Product,
    ProductPort,
    Stock,
)
from .errors import MemberNotFound, ProductNotFound, ServiceUnavailable

logger = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = self.CLOSED
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == self.OPEN and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = self.HALF_OPEN
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Returns:
            str: The state at call time.

        Raises:
            ServiceUnavailable: If the circuit is OPEN or a HALF_OPEN probe is
                already in flight.
        """
        with self._lock:
            st = self.state
            if st == self.OPEN:
                raise ServiceUnavailable(f"{self.name} service unavailable (circuit open)")
            if st == self.HALF_OPEN:
                # allow only one concurrent probe
                if self._half_open_probe_in_flight:
                    raise ServiceUnavailable(f"{self.name} service unavailable (probe in flight)")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        """Record a successful call and close/reset the breaker."""
        with self._lock:
            self._failures = 0
            self._state = self.CLOSED
            self._half_open_probe_in_flight = False

    def on_failure(self):
        """Record a failed call and open the breaker if threshold exceeded."""
        with self._lock:
            self._failures += 1
            if self._state == self.HALF_OPEN or (
                self._failures >= self.fail_threshold and self._state != self.OPEN
            ):
                self._state = self.OPEN
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False
                logger.warning("circuit opened", extra={"service": self.name, "failures": self._failures})

    def on_finish(self):
        """Release any HALF_OPEN probe flag after a call finishes."""
        with self._lock:
            if self._state == self.HALF_OPEN:
                self._half_open_probe_in_flight = False

    def reset(self):
        self.on_success()


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# Per-service instances
_members_cb = _breaker("members")
_products_cb = _breaker("products")
_payments_cb = _breaker("payments")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds, max_sleep)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


def _call(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    timeout: float,
    json: Optional[dict] = None,
    headers: Optional[dict] = None,
    business_statuses: Iterable[int] = (),
) -> httpx.Response:
    """Send a request with circuit breaker and retry handling.

    Returns the response for 2xx and for any status in ``business_statuses``
    (which do not count as circuit failures).

    Raises:
        ServiceUnavailable: Circuit open, retries exhausted, or a
            non-retriable unexpected status.
    """
    max_attempts, backoff, cap = _retry_policy()
    business = set(business_statuses)
    tries = 0

    state = breaker.before_call()
    headers = _request_headers({**(headers or {}), "X-Circuit-State": state, "X-Retry-Count": "0"})

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = client.request(method, url, json=json, headers=headers)
                    if 200 <= resp.status_code < 300 or resp.status_code in business:
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)

                if tries >= max_attempts or not _should_retry(resp, exc):
                    breaker.on_failure()
                    detail = str(exc) if exc else f"HTTP {resp.status_code}"
                    logger.error(
                        "downstream call failed",
                        extra={"service": breaker.name, "url": url, "attempts": tries, "error": detail},
                    )
                    raise ServiceUnavailable(f"{breaker.name} service unavailable: {detail}") from exc

                sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                time.sleep(min(sleep_s, cap))
    finally:
        breaker.on_finish()


def _json_or_none(resp: httpx.Response) -> Optional[dict]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _timeout(value: Optional[float]) -> float:
    return value or getattr(settings, "HTTP_TIMEOUT_SECS", 3.0)


# ---------------- Members Adapter ---------------- #

class HttpMemberClient(MemberPort):
    """HTTP client for the member directory."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.MEMBER_BASE_URL
        self.timeout = _timeout(timeout)

    def get_member(self, member_id: str) -> Optional[Member]:
        """Fetch a member. 404 → ``MemberNotFound``; unreadable body → None."""
        resp = _call(
            _members_cb, "GET", f"{self.base_url}/members/{member_id}", self.timeout, business_statuses=(404,)
        )
        if resp.status_code == 404:
            raise MemberNotFound(f"Member not found with id: {member_id}")
        data = _json_or_none(resp)
        if not data or not data.get("status"):
            return None
        return Member(id=str(data.get("id", member_id)), status=str(data["status"]), grade=data.get("grade"))


# ---------------- Products Adapter ---------------- #

class HttpProductClient(ProductPort):
    """HTTP client for the product catalog and its stock endpoint."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PRODUCT_BASE_URL
        self.timeout = _timeout(timeout)

    def get_product(self, product_id: str) -> Optional[Product]:
        """Fetch product details. 404 → ``ProductNotFound``; unreadable body → None."""
        resp = _call(
            _products_cb, "GET", f"{self.base_url}/products/{product_id}", self.timeout, business_statuses=(404,)
        )
        if resp.status_code == 404:
            raise ProductNotFound(f"Product not found with id: {product_id}")
        data = _json_or_none(resp)
        if not data:
            return None
        try:
            price = Decimal(str(data["price"]))
            return Product(id=str(data.get("id", product_id)), name=str(data["name"]), price=price, status=str(data["status"]))
        except (KeyError, InvalidOperation):
            logger.warning("malformed product payload", extra={"product_id": product_id})
            return None

    def get_stock(self, product_id: str) -> Optional[Stock]:
        resp = _call(_products_cb, "GET", f"{self.base_url}/products/{product_id}/stock", self.timeout)
        data = _json_or_none(resp)
        if not data or "available" not in data:
            return None
        return Stock(
            quantity=int(data.get("quantity", 0)),
            reserved=int(data.get("reserved", 0)),
            available=int(data["available"]),
        )


# ---------------- Payments Adapter ---------------- #

class HttpPaymentsClient(PaymentsPort):
    """HTTP client for the payment gateway.

    Business mappings for charges:
    - 200 → ``PaymentResult`` from the body (``None`` if unreadable)
    - 402 or 409 → ``FAILED`` result, not counted as circuit failures
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = _timeout(timeout)

    def create_payment(self, request: PaymentRequest) -> Optional[PaymentResult]:
        payload = {
            "order_id": str(request.order_id),
            "amount": str(request.amount),
            "method": request.method.value,
        }
        resp = _call(
            _payments_cb,
            "POST",
            f"{self.base_url}/payments",
            self.timeout,
            json=payload,
            headers={"Idempotency-Key": f"order-{request.order_id}"},
            business_statuses=(402, 409),
        )
        if resp.status_code in (402, 409):
            return PaymentResult(status=PaymentStatus.FAILED.value)
        return self._result(resp)

    def refund_payment(self, transaction_id: str, amount: Decimal) -> Optional[PaymentResult]:
        resp = _call(
            _payments_cb,
            "POST",
            f"{self.base_url}/payments/{transaction_id}/refund",
            self.timeout,
            json={"amount": str(amount)},
            headers={"Idempotency-Key": f"refund-{transaction_id}"},
            business_statuses=(402, 409),
        )
        if resp.status_code in (402, 409):
            return PaymentResult(status=PaymentStatus.FAILED.value)
        return self._result(resp)

    @staticmethod
    def _result(resp: httpx.Response) -> Optional[PaymentResult]:
        data = _json_or_none(resp)
        if not data or not data.get("status"):
            return None
        tx = data.get("transaction_id")
        return PaymentResult(status=str(data["status"]), transaction_id=str(tx) if tx else None)
