# Gunicorn configuration for the WHMCS assistant (gunicorn -c gunicorn.conf.py)
import multiprocessing
import os

wsgi_app = "whmcs_assistant.main:app"

# Server socket
bind = f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '8000')}"
backlog = 2048

# Worker processes; without Redis the cache (and the user thread map) is per process
_default_workers = multiprocessing.cpu_count() * 2 + 1 if os.getenv("REDIS_URL") else 1
workers = int(os.getenv("WEB_CONCURRENCY", _default_workers))
worker_class = "uvicorn.workers.UvicornWorker"
max_requests = 1000
max_requests_jitter = 50

# Assistant runs are polled inside background tasks after the webhook is answered
timeout = 60
keepalive = 5
graceful_timeout = 45

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "whmcs-assistant"

limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def on_starting(server):
    server.log.info("Starting WHMCS assistant (%s workers)", workers)


def post_worker_init(worker):
    worker.log.info("Worker initialized (pid: %s)", worker.pid)


def worker_abort(worker):
    worker.log.info("Worker aborted (pid: %s)", worker.pid)
