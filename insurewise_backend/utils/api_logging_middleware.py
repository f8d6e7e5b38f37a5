"""
API Logging Middleware - log every API call with timing and the calling user
"""
from flask import request, g
import logging
import time

logger = logging.getLogger('insurewise.access')


def setup_api_logging(app):
    """Setup middleware to log all API calls"""

    @app.before_request
    def before_request():
        """Record request start time"""
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        """Log API call after request completes"""
        if hasattr(g, 'start_time'):
            response_time_ms = (time.time() - g.start_time) * 1000
        else:
            response_time_ms = 0

        # Set by token_required
        user_id = getattr(g, 'current_user_id', None)

        logger.info(
            '%s %s %s %.1fms ip=%s user=%s',
            request.method,
            request.path,
            response.status_code,
            response_time_ms,
            request.remote_addr,
            user_id or '-',
        )
        return response

    return app
