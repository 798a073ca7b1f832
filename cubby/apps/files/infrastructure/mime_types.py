"""Allow-list of MIME types accepted for upload."""

from typing import Final

from django.conf import settings

# Human-readable names for the default image allow-list
_IMAGE_LABELS: Final = 'JPEG, PNG, GIF, WebP, SVG, BMP, TIFF, HEIC, HEIF'


def get_allowed_mime_types() -> frozenset[str]:
    """Get the configured allow-list.

    Returns:
        Lowercase MIME types from ``FILES_ALLOWED_MIME_TYPES``.
    """
    return frozenset(
        mime_type.strip().lower()
        for mime_type in settings.FILES_ALLOWED_MIME_TYPES
    )


def is_allowed_mime_type(mime_type: str) -> bool:
    """Check if MIME type may be uploaded.

    Args:
        mime_type: MIME type, parameters like ``; charset=`` are ignored.

    Returns:
        True if the type is on the allow-list.
    """
    essence = mime_type.split(';', 1)[0].strip().lower()
    return essence in get_allowed_mime_types()


def get_file_category(mime_type: str) -> str | None:
    """Get file category for an allowed MIME type.

    Args:
        mime_type: MIME type to classify.

    Returns:
        Top-level category (e.g. 'image'), None if not allowed.
    """
    if not is_allowed_mime_type(mime_type):
        return None
    return mime_type.split('/', 1)[0].strip().lower()


def get_allowed_types_message() -> str:
    """Human-readable description of the allow-list."""
    allowed = get_allowed_mime_types()
    if all(mime_type.startswith('image/') for mime_type in allowed):
        return f'Only image files are allowed ({_IMAGE_LABELS})'
    return 'Allowed types: {types}'.format(types=', '.join(sorted(allowed)))
