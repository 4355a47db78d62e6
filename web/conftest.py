import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False


@pytest.fixture(autouse=True)
def clean_shared_state():
    # throttle counters, the idempotency cache and the breakers are process-wide;
    # imported here so models load only after Django is set up
    from django.core.cache import cache

    from apps.orders import http_adapters
    from apps.orders.providers import reset_idempotency_cache

    def reset():
        cache.clear()
        reset_idempotency_cache()
        for breaker in (http_adapters._members_cb, http_adapters._products_cb, http_adapters._payments_cb):
            breaker.reset()

    reset()
    yield
    reset()
