import multiprocessing
import os

# Gunicorn configuration for the DueSync API (Uvicorn workers)

bind = os.getenv("BIND", "0.0.0.0:8000")

# (2 x num_cores) + 1 unless WEB_CONCURRENCY says otherwise
workers = int(os.getenv("WEB_CONCURRENCY", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"

# Calendar calls are bounded by CALENDAR_TIMEOUT_SECONDS, well below this
timeout = 60
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "duesync_api"
reload = False
