import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Local overrides live in backend/.env
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-not-for-production")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "dispatch_api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "dispatch_backend.urls"
WSGI_APPLICATION = "dispatch_backend.wsgi.application"

# The dispatch core owns no tables; bookings go through the BookingStore collaborator.
DATABASES = {}

USE_TZ = True
TIME_ZONE = "UTC"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
}

# Dotted path to a callable returning a dispatch.dispatcher.DispatchEngine.
# Called once per process, on the first dispatch request.
DISPATCH_ENGINE_FACTORY = os.getenv("DISPATCH_ENGINE_FACTORY", "dispatch.memory.build_demo_engine")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "dispatch": {"handlers": ["console"], "level": os.getenv("DISPATCH_LOG_LEVEL", "INFO")},
        "drivers": {"handlers": ["console"], "level": os.getenv("DISPATCH_LOG_LEVEL", "INFO")},
        "pricing": {"handlers": ["console"], "level": os.getenv("DISPATCH_LOG_LEVEL", "INFO")},
    },
}
