"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- AWS S3 or Cloudflare R2 for production

All of them are S3-compatible and use the same object store adapter.
"""

from typing import Any, Final

from cubby.settings.components import config

# Storage configuration dictionary
# Uses S3-compatible storage for user files, local storage for static files
STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'cubby.apps.files.infrastructure.storage.ObjectStore',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='cubby-files',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default='minioadmin'),
            'secret_key': config(
                'AWS_SECRET_ACCESS_KEY',
                default='minioadmin',
            ),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            # Path-style addressing is required for MinIO
            'addressing_style': config(
                'AWS_S3_ADDRESSING_STYLE',
                default='path',
            ),
            'file_overwrite': False,  # Prevent accidental overwrites
            'default_acl': None,  # Inherit bucket ACL
        },
    },
    'staticfiles': {
        # Keep static files separate from user files
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}
