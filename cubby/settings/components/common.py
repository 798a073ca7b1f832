"""Django settings for cubby project."""

from typing import Final

from cubby.settings.components import BASE_DIR, config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

ALLOWED_HOSTS = config(
    'DJANGO_ALLOWED_HOSTS',
    cast=lambda hosts: [host.strip() for host in hosts.split(',') if host],
    default='localhost',
)

INSTALLED_APPS: Final = (
    'django.contrib.auth',
    'django.contrib.contenttypes',

    # Our apps
    'cubby.apps.files',
)

MIDDLEWARE: Final = (
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
)

# Database
# https://docs.djangoproject.com/en/5.1/ref/settings/#databases

_DATABASE_ENGINE = config(
    'DJANGO_DATABASE_ENGINE',
    default='django.db.backends.sqlite3',
)

if _DATABASE_ENGINE == 'django.db.backends.postgresql':
    DATABASES = {
        'default': {
            'ENGINE': _DATABASE_ENGINE,
            'NAME': config('POSTGRES_DB', default='cubby'),
            'USER': config('POSTGRES_USER', default='cubby'),
            'PASSWORD': config('POSTGRES_PASSWORD', default=''),
            'HOST': config('DJANGO_DATABASE_HOST', default='localhost'),
            'PORT': config('DJANGO_DATABASE_PORT', cast=int, default=5432),
            'CONN_MAX_AGE': config('CONN_MAX_AGE', cast=int, default=60),
        },
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': _DATABASE_ENGINE,
            'NAME': config(
                'DJANGO_DATABASE_NAME',
                default=str(BASE_DIR.joinpath('cubby.sqlite3')),
            ),
        },
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Internationalization
# https://docs.djangoproject.com/en/5.1/topics/i18n/

LANGUAGE_CODE = 'en-us'

USE_I18N = False

TIME_ZONE = 'UTC'
USE_TZ = True
