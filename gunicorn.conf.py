# Gunicorn configuration for OpsDesk
# Package upgrades can migrate thousands of tasks in one request

# Worker settings
workers = 2
worker_class = 'sync'

# Timeout settings
timeout = 120
graceful_timeout = 60
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Request handling
max_requests = 1000  # Restart workers after 1000 requests to prevent memory leaks
max_requests_jitter = 50

# Bind
bind = '0.0.0.0:5000'

# Entry point: gunicorn -c gunicorn.conf.py "opsdesk:create_app()"
