import os


def cpu():
    return max(1, (os.cpu_count() or 1))


wsgi_app = "orderflow.wsgi:application"
bind = os.getenv("GUNI_BIND", "0.0.0.0:8000")

# Workers: the idempotency cache is per process, so retries are only
# deduplicated within one worker unless GUNI_WORKERS=1.
workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, cpu() * 2), 8))))

# Threads per worker for blocking downstream IO
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# The request timeout must outlive the order creation budget plus the
# idempotency wait, otherwise a worker is killed mid-creation.
_create_budget = float(os.getenv("ORDER_CREATE_TIMEOUT_SECS", "10"))
_idem_wait = float(os.getenv("IDEMPOTENCY_WAIT_TIMEOUT_SECS", "15"))
timeout = int(os.getenv("GUNI_TIMEOUT", str(int(_create_budget + _idem_wait) + 30)))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
