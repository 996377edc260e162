"""Django settings for orthodesk tests."""

from orthodesk.settings import *  # noqa: F401,F403

SECRET_KEY = "test-secret-key-for-orthodesk"

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

TIME_ZONE = "UTC"

ORTHODESK_STERILE_EXPIRATION_DAYS = 30
ORTHODESK_AUTOCLAVE_TIMEOUT = 1.0
ORTHODESK_PRACTICE_NAME = "Test Orthodontics"
