"""
With these settings, tests run faster.
"""
from .base import *  # noqa: F403

SECRET_KEY = "promptstudy-test-secret-key"
TEST_RUNNER = "django.test.runner.DiscoverRunner"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

HUEY = {
    "huey_class": "huey.MemoryHuey",
    "name": "promptstudy-test",
    "immediate": True,
}

OPENAI_API_KEY = ""

# Let pytest's caplog see application log records.
LOGGING["loggers"]["promptstudy"].update({"handlers": [], "propagate": True})  # noqa: F405
