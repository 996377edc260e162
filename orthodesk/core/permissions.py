"""
Clinic-scoped role permissions.

Each ClinicMembership role grants a fixed set of ``area:action`` codes.
Views are protected with :func:`require_clinic_permission`, which also
resolves the tenant for the request.

Usage:
    @require_clinic_permission("sterilization:create")
    def api_cycles(request):
        clinic = request.clinic
        ...
"""

from functools import wraps

from django.core.exceptions import PermissionDenied, ValidationError
from django.db.models import Q

from .exceptions import ClinicNotResolved
from .middleware import bind_clinic
from .models import Clinic, ClinicMembership

AREAS = ("patients", "treatment", "sterilization", "billing")
ACTIONS = ("view", "create", "update", "delete", "export")


def _codes(areas, actions):
    return frozenset(f"{area}:{action}" for area in areas for action in actions)


Role = ClinicMembership.Role

ROLE_PERMISSIONS = {
    Role.SUPER_ADMIN: _codes(AREAS, ACTIONS),
    Role.CLINIC_ADMIN: _codes(AREAS, ACTIONS),
    Role.DOCTOR: _codes(("patients", "treatment", "sterilization"), ACTIONS)
    | _codes(("billing",), ("view",)),
    Role.CLINICAL_STAFF: _codes(("patients", "treatment"), ("view", "update"))
    | _codes(("sterilization",), ("view", "create", "update")),
    Role.FRONT_DESK: _codes(("patients",), ("view", "create", "update"))
    | _codes(("treatment", "billing"), ("view",)),
    Role.BILLING: _codes(("billing",), ACTIONS) | _codes(("patients", "treatment"), ("view",)),
    Role.READ_ONLY: _codes(AREAS, ("view",)),
}


def get_membership(user, clinic):
    """Return the active membership of user in clinic, or None."""
    if not user or not user.is_authenticated:
        return None
    return ClinicMembership.objects.filter(
        user=user, clinic=clinic, is_active=True
    ).first()


def permissions_for(user, clinic) -> frozenset:
    """All permission codes the user holds in clinic."""
    if user is not None and user.is_authenticated and user.is_superuser:
        return ROLE_PERMISSIONS[Role.SUPER_ADMIN]
    membership = get_membership(user, clinic)
    if membership is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(membership.role, frozenset())


def has_permission(user, clinic, code: str) -> bool:
    """Check whether user may perform ``code`` (e.g. 'billing:update') in clinic."""
    return code in permissions_for(user, clinic)


def resolve_clinic(request):
    """Find the clinic named by the X-Clinic header or ?clinic= parameter.

    Accepts a slug or a primary key. Falls back to the user's only
    membership when neither is given.

    Raises:
        ClinicNotResolved: If no active clinic matches
    """
    ref = request.headers.get("X-Clinic") or request.GET.get("clinic")
    clinics = Clinic.objects.filter(is_active=True)
    if ref:
        lookup = Q(slug=ref)
        try:
            lookup |= Q(pk=Clinic._meta.pk.to_python(ref))
        except ValidationError:
            pass
        clinic = clinics.filter(lookup).first()
    else:
        memberships = ClinicMembership.objects.filter(
            user=request.user, is_active=True, clinic__is_active=True
        ).select_related("clinic")[:2]
        clinic = memberships[0].clinic if len(memberships) == 1 else None

    if clinic is None:
        raise ClinicNotResolved("Clinic could not be determined for this request")
    return clinic


def require_clinic_permission(code: str):
    """Decorator to require a clinic permission for function-based views.

    Resolves the tenant, then checks the user's role in it. On success
    ``request.clinic`` and ``request.membership`` are set.

    Raises:
        PermissionDenied: If unauthenticated, unknown clinic, or lacking ``code``.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                raise PermissionDenied("Authentication required")

            try:
                clinic = resolve_clinic(request)
            except ClinicNotResolved as e:
                raise PermissionDenied(str(e))

            if not has_permission(request.user, clinic, code):
                raise PermissionDenied(f"Permission denied: {code}")

            request.clinic = clinic
            bind_clinic(clinic)
            request.membership = get_membership(request.user, clinic)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator
