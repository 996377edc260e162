"""Project-level views."""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from orthodesk.core.conf import get_setting

logger = logging.getLogger(__name__)


def _database_ok() -> bool:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError:
        logger.exception("Health check could not reach the database")
        return False
    return True


@require_GET
def health_check(request):
    """Liveness probe.

    Reports the database round trip and how many enabled autoclave
    integrations are in ERROR. A dead database answers 503; autoclave
    errors only degrade the status.
    """
    from orthodesk.sterilization.models import AutoclaveIntegration

    if not _database_ok():
        return JsonResponse({"status": "down", "database": "error"}, status=503)

    failing = AutoclaveIntegration.objects.filter(
        enabled=True, status=AutoclaveIntegration.Status.ERROR
    ).count()
    return JsonResponse({
        "status": "degraded" if failing else "ok",
        "practice": get_setting("PRACTICE_NAME"),
        "database": "ok",
        "autoclaves_in_error": failing,
    })
