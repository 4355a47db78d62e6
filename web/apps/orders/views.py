"""HTTP views for the orders app.

This module contains DRF API views used by the orders service. Views are
kept intentionally small: they validate requests (via Pydantic), map to
service commands, delegate to ``OrderService``, and return the
``OrderReadDTO`` projection.

The views obtain a configured ``OrderService`` from ``get_order_service()``
which returns HTTP adapter-backed ports or in-process stubs depending on
runtime settings. Errors are not handled here: domain faults and Pydantic
validation errors propagate to ``gateway.exceptions.api_exception_handler``,
which renders the common error body.

Idempotency: when an ``Idempotency-Key`` header is provided, the create
endpoint runs through the shared ``IdempotencyCache``. The first request
creates the order and its outcome is stored; retries with the same payload
get the stored body with HTTP 200 and ``Idempotent-Replay: true`` (or the
same error, when the first attempt failed with a business error). Reusing
the key with a different payload returns HTTP 409.
"""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from .providers import get_idempotency_cache, get_order_service
from .schemas import CreateOrderDTO, ListOrdersQuery, OrderReadDTO, UpdateOrderDTO

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replay"


class OrdersPingView(APIView):
    """Simple health-check endpoint for the orders module.

    This view returns a minimal JSON payload used by liveness/health
    checks and by automated smoke-tests.
    """

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """List orders (GET) and create an order (POST)."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # throttles run in initial(), before the handler is dispatched
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        query = ListOrdersQuery.model_validate(request.query_params.dict())
        page = get_order_service().list_orders(
            page=query.page,
            page_size=query.page_size,
            sort_by=query.sort_by,
            sort_dir=query.sort_dir,
        )
        return Response(
            {
                "count": page.count,
                "page": page.page,
                "page_size": page.page_size,
                "results": [OrderReadDTO.from_domain(o).model_dump(mode="json") for o in page.items],
            },
            status=status.HTTP_200_OK,
        )

    def post(self, request):
        """Create a new order.

        Returns:
            Response: 201 with the order projection when the order is
            created, or 200 with the stored body on an idempotent replay.
            Failures are raised and rendered by the exception handler.
        """
        idem_key = request.headers.get(IDEMPOTENCY_HEADER) or None
        dto = CreateOrderDTO.model_validate(request.data)
        command = dto.to_command()
        service = get_order_service()

        def create():
            order = service.create_order(command)
            return OrderReadDTO.from_domain(order).model_dump(mode="json")

        replayed, body = get_idempotency_cache().get_or_compute(
            idem_key, create, payload=dto.model_dump(mode="json")
        )
        if replayed:
            resp = Response(body, status=status.HTTP_200_OK)
            resp[REPLAY_HEADER] = "true"
            return resp
        return Response(body, status=status.HTTP_201_CREATED)


class RetrieveOrderView(APIView):
    """Read (GET) or cancel (PUT) a single order."""

    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        self.throttle_scope = "orders_cancel" if self.request.method == "PUT" else "orders_detail"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request, oid):
        order = get_order_service().get_order(oid)
        return Response(OrderReadDTO.from_domain(order).model_dump(mode="json"), status=status.HTTP_200_OK)

    def put(self, request, oid):
        dto = UpdateOrderDTO.model_validate(request.data)
        order = get_order_service().cancel_order(oid, dto.status)
        return Response(OrderReadDTO.from_domain(order).model_dump(mode="json"), status=status.HTTP_200_OK)
