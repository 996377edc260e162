"""JSON API helpers shared by every module's views.

Responses use one envelope:
    {"success": true, "data": ...}
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

import json
import logging
import math
from functools import wraps

from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.http import JsonResponse

from .conf import get_setting
from .exceptions import NotFound, OrthodeskError, ValidationFailed

logger = logging.getLogger(__name__)


def api_success(data=None, status: int = 200, **extra) -> JsonResponse:
    payload = {"success": True, "data": data}
    payload.update(extra)
    return JsonResponse(payload, status=status, encoder=DjangoJSONEncoder)


def api_error(code: str, message: str, status: int = 400, details=None) -> JsonResponse:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JsonResponse({"success": False, "error": error}, status=status, encoder=DjangoJSONEncoder)


def error_response(exc: OrthodeskError) -> JsonResponse:
    """Map a domain error to its JSON response."""
    return api_error(exc.code, exc.message, status=exc.status, details=exc.details)


def parse_json_body(request) -> dict:
    """Decode a JSON object body.

    Raises:
        ValidationFailed: If the body is not a JSON object
    """
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationFailed(f"Invalid JSON body: {e}", code="INVALID_JSON")
    if not isinstance(body, dict):
        raise ValidationFailed("JSON body must be an object", code="INVALID_JSON")
    return body


def get_for_clinic(model, clinic, pk, label: str | None = None, clinic_field: str = "clinic"):
    """Fetch a clinic-owned row or raise NotFound.

    ``label`` feeds the error code, e.g. 'PACKAGE' -> 'PACKAGE_NOT_FOUND'.
    ``clinic_field`` lets child rows be scoped through a parent, e.g. 'plan__clinic'.
    """
    label = label or model.__name__.upper()
    try:
        return model.objects.get(pk=pk, **{clinic_field: clinic})
    except (ObjectDoesNotExist, ValidationError, ValueError, TypeError):
        raise NotFound(
            f"{model._meta.verbose_name.capitalize()} not found",
            code=f"{label}_NOT_FOUND",
        )


def _as_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(queryset, page=1, page_size=None) -> dict:
    """Slice a queryset (or list) into a page.

    ``page`` is clamped to >= 1 and ``page_size`` to 1..MAX_PAGE_SIZE.

    Returns:
        {"items", "total", "page", "page_size", "total_pages"}
    """
    max_size = get_setting("MAX_PAGE_SIZE")
    page = max(1, _as_int(page, 1))
    page_size = _as_int(page_size, get_setting("DEFAULT_PAGE_SIZE"))
    page_size = min(max(1, page_size), max_size)

    total = len(queryset) if isinstance(queryset, list) else queryset.count()
    start = (page - 1) * page_size
    items = list(queryset[start:start + page_size])

    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if total else 0,
    }


def api_view(view_func):
    """Convert domain errors and permission failures into JSON envelopes.

    Apply outside ``require_clinic_permission`` so its PermissionDenied is
    caught too. Anything else propagates to Django.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except OrthodeskError as e:
            logger.info("API %s %s -> %s: %s", request.method, request.path, e.code, e.message)
            return error_response(e)
        except PermissionDenied as e:
            return api_error("FORBIDDEN", str(e) or "Permission denied", status=403)
    return wrapper
