"""
Django settings for gps_store.

Values come from the environment so the same file serves development,
tests and the receiver deployment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-gps-store-dev-key')

DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [host for host in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if host]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'apps.gps_devices',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DJANGO_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'

# Global defaults for the Suntech decoder switches. A device overrides any of
# them through Device.attributes ("suntech.protocolType", "suntech.hbm", ...).
# Keys left out fall back to the decoder's own static defaults.
SUNTECH_DECODER = {}
if os.environ.get('SUNTECH_PROTOCOL_TYPE'):
    SUNTECH_DECODER['PROTOCOL_TYPE'] = int(os.environ['SUNTECH_PROTOCOL_TYPE'])
for _name in ('HBM', 'INCLUDE_ADC', 'INCLUDE_RPM', 'INCLUDE_TEMP'):
    if os.environ.get(f'SUNTECH_{_name}') is not None:
        SUNTECH_DECODER[_name] = env_bool(f'SUNTECH_{_name}')

LOG_LEVEL = os.environ.get('DJANGO_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'apps.gps_devices': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}
