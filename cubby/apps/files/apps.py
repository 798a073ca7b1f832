"""Django app configuration for files app."""

from django.apps import AppConfig


class FilesConfig(AppConfig):
    """Configuration for files app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'cubby.apps.files'
    verbose_name = 'Files'
