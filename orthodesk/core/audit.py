"""Audit log writer.

This is the only place AuditLog rows are created. Domain modules call
their own adapter (``<app>/audit.py``) which forwards here with stable
action strings.

    from orthodesk.core.audit import log

    log(action="cycle_completed", obj=cycle, actor=user, clinic=cycle.clinic)
"""
from .middleware import get_audit_context
from .models import AuditLog


def _get_client_ip(request):
    """Extract client IP from request, handling proxies."""
    if not request:
        return None
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def _get_user_agent(request):
    """Extract user agent from request."""
    if not request:
        return ""
    return request.META.get("HTTP_USER_AGENT", "")[:500]


def _get_actor_display(actor):
    """Get display string for actor."""
    if not actor:
        return ""
    if getattr(actor, "email", None):
        return actor.email
    if getattr(actor, "username", None):
        return actor.username
    return str(actor)


def log(
    action,
    obj=None,
    actor=None,
    clinic=None,
    request=None,
    changes=None,
    metadata=None,
    sensitivity="normal",
    is_system=False,
):
    """Write an audit event.

    Args:
        action: Stable action string
        obj: Model instance affected (label/id/repr are snapshotted)
        actor: User who performed the action; defaults to the signed-in user
            of the current request unless is_system
        clinic: Tenant; defaults to obj.clinic, then the clinic resolved for
            the current request
        request: HTTP request; defaults to the current request
        changes: {"field": {"old": x, "new": y}}
        metadata: Additional context
        sensitivity: normal, high or critical (PHI access is high)
        is_system: True when no user initiated the action

    Returns:
        AuditLog instance
    """
    obj_label = obj_id = obj_repr = ""
    if obj is not None:
        obj_label = f"{obj._meta.app_label}.{obj._meta.model_name}"
        obj_id = str(obj.pk) if obj.pk else ""
        obj_repr = str(obj)[:200]
        if clinic is None:
            clinic = getattr(obj, "clinic", None)

    context = get_audit_context()
    if context is not None:
        request = request or context.request
        clinic = clinic or context.clinic
        if actor is None and not is_system:
            actor = context.actor

    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None

    return AuditLog.objects.create(
        clinic=clinic,
        actor_user=actor,
        actor_display=_get_actor_display(actor),
        action=action,
        model_label=obj_label,
        object_id=obj_id,
        object_repr=obj_repr,
        changes=changes or {},
        metadata=metadata or {},
        ip_address=_get_client_ip(request),
        user_agent=_get_user_agent(request),
        request_id=context.request_id if context is not None else "",
        sensitivity=sensitivity,
        is_system=is_system or actor is None,
    )
