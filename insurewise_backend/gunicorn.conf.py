# Gunicorn configuration for InsureWise Backend
# Run with: gunicorn -c insurewise_backend/gunicorn.conf.py "insurewise_backend.app:create_app()"

import os

# Server socket
port = os.environ.get('PORT', '5000')
bind = f"0.0.0.0:{port}"
backlog = 2048

# Worker processes
workers = int(os.environ.get('WEB_CONCURRENCY', '2'))
worker_class = 'sync'
max_requests = 1000  # Restart workers periodically to cap memory growth
max_requests_jitter = 50

# Timeouts; Paystack calls carry their own request timeout
timeout = 60
keepalive = 5
graceful_timeout = 30

# Claim analysis timers are per worker, so the app is built after fork
preload_app = False

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'insurewise-backend'

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190


def when_ready(server):
    server.log.info("InsureWise Backend server is ready. Listening on %s", server.address)


def worker_int(worker):
    worker.log.info("Worker received INT or QUIT signal")


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)
