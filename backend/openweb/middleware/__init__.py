from openweb.middleware.request_log import RequestLoggingMiddleware
from openweb.middleware.security import SecurityHeadersMiddleware

__all__ = ["RequestLoggingMiddleware", "SecurityHeadersMiddleware"]
