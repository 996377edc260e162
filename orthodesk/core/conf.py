"""Configuration helpers for orthodesk."""

from django.conf import settings


DEFAULTS = {
    "STERILE_EXPIRATION_DAYS": 30,
    "MAX_EXPIRATION_DAYS": 365,
    "AUTOCLAVE_TIMEOUT": 5.0,
    "EXPIRING_SOON_DAYS": 7,
    "REPORT_PERIOD_DAYS": 30,
    "DEFAULT_PAGE_SIZE": 20,
    "MAX_PAGE_SIZE": 100,
    "PRACTICE_NAME": "Orthodesk Practice",
}


def get_setting(name: str, default=None):
    """Get a setting with ORTHODESK_ prefix, falling back to DEFAULTS."""
    if default is None:
        default = DEFAULTS.get(name)
    return getattr(settings, f"ORTHODESK_{name}", default)
