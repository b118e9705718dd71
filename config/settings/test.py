"""Test settings for QuickCourt.

File-backed SQLite (shared by threads), eager Celery and the emulated
payment processor so the whole booking flow runs without external services.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'test_quickcourt.sqlite3',
        'TEST': {'NAME': BASE_DIR / 'test_quickcourt.sqlite3'},
        # Concurrent writers queue on the database lock instead of failing
        'OPTIONS': {'timeout': 20, 'transaction_mode': 'IMMEDIATE'},
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

PAYMENTS = {
    **PAYMENTS,
    'PROCESSOR': 'apps.payments.processors.EmulatedProcessor',
    'STRIPE_SECRET_KEY': '',
    'BACKOFF_SECONDS': 0,
    'WEBHOOK_SECRET': 'test-webhook-secret',
}

DOMAIN_EVENT_SUBSCRIBERS = {}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'WARNING'},
}
