"""Request context for audit entries.

The middleware opens a context for every request. Audit writes made
while it is open pick up the client address, the signed-in user as actor
and, once ``require_clinic_permission`` has resolved it, the clinic, so
services never need the request passed in.

Usage in settings.py:

    MIDDLEWARE = [
        ...
        'django.contrib.auth.middleware.AuthenticationMiddleware',
        'orthodesk.core.middleware.AuditContextMiddleware',  # After auth
        ...
    ]
"""
import threading
import uuid

REQUEST_ID_HEADER = "X-Request-ID"

_thread_locals = threading.local()


class AuditContext:
    """Who is acting, for which clinic, on which request."""

    def __init__(self, request, request_id):
        self.request = request
        self.request_id = request_id
        self.clinic = None

    @property
    def actor(self):
        user = getattr(self.request, "user", None)
        if user is None or not user.is_authenticated:
            return None
        return user


def get_audit_context():
    """The context of the request being served, or None outside a request."""
    return getattr(_thread_locals, "context", None)


def bind_clinic(clinic):
    """Record the tenant resolved for the current request."""
    context = get_audit_context()
    if context is not None:
        context.clinic = clinic


class AuditContextMiddleware:
    """Open an AuditContext per request and echo its correlation ID."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.audit_request_id = request_id

        _thread_locals.context = AuditContext(request, request_id)
        try:
            response = self.get_response(request)
        finally:
            _thread_locals.context = None

        response[REQUEST_ID_HEADER] = request_id
        return response
