"""Metadata helpers for files and folders."""

import mimetypes
import re
import secrets
import time
from pathlib import PurePosixPath, PureWindowsPath
from typing import Final

from django.core.exceptions import ValidationError

_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'
_KEY_PREFIX: Final = 'users'
# Every user namespace lives under this prefix
USER_KEYS_ROOT: Final = f'{_KEY_PREFIX}/'
_PATH_SEPARATOR: Final = '/'
_NAME_MAX_LENGTH: Final = 255

# Anything outside alphanumerics, '.' and '-' becomes '_'
_UNSAFE_KEY_CHARS: Final = re.compile(r'[^a-zA-Z0-9.-]')
_DISAMBIGUATOR_BYTES: Final = 4


def resolve_mime_type(declared: str | None, filename: str) -> str:
    """Resolve MIME type of an uploaded part.

    Prefers the type declared by the client, then a lookup by filename
    extension, then ``application/octet-stream``.

    Args:
        declared: Content type sent with the part, may be empty.
        filename: Original filename.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
    """
    if declared and declared.strip():
        return declared.strip()
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def extract_filename(client_name: str) -> str:
    """Strip any directory components a client sent with the filename.

    Args:
        client_name: Name as sent by the client (e.g., 'C:\\tmp\\a.png').

    Returns:
        Bare filename (e.g., 'a.png').

    Raises:
        ValidationError: If nothing usable is left.
    """
    filename = PureWindowsPath(PurePosixPath(client_name or '').name).name
    filename = filename.strip()
    if not filename or filename in {'.', '..'}:
        raise ValidationError('Filename cannot be empty')
    if len(filename) > _NAME_MAX_LENGTH:
        raise ValidationError(
            f'Filename is longer than {_NAME_MAX_LENGTH} characters',
        )
    return filename


def sanitize_filename(filename: str) -> str:
    """Make a filename safe for use inside an object key.

    Args:
        filename: Original filename (e.g., 'my photo (1).jpg').

    Returns:
        Sanitized name (e.g., 'my_photo__1_.jpg').
    """
    return _UNSAFE_KEY_CHARS.sub('_', filename)


def generate_object_key(user_id: int, filename: str) -> str:
    """Generate a unique object key under the user's namespace.

    The disambiguator combines a millisecond timestamp with random
    bytes, so two uploads of the same name never share a key.

    Args:
        user_id: Owner's user ID.
        filename: Original filename.

    Returns:
        Key like ``users/7/1718000000000-9f3a1c2e-photo.jpg``.
    """
    timestamp = time.time_ns() // 1_000_000
    token = secrets.token_hex(_DISAMBIGUATOR_BYTES)
    sanitized = sanitize_filename(filename)
    return f'{get_user_key_prefix(user_id)}{timestamp}-{token}-{sanitized}'


def get_user_key_prefix(user_id: int) -> str:
    """Prefix every object of a user starts with."""
    return f'{USER_KEYS_ROOT}{user_id}/'


def extract_key_owner(object_key: str) -> int | None:
    """Extract owner ID from an object key.

    Args:
        object_key: Key like ``users/7/...``.

    Returns:
        User ID, None if the key is not in a user namespace.
    """
    parts = object_key.split(_PATH_SEPARATOR)
    if len(parts) < 3 or parts[0] != _KEY_PREFIX:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


def validate_object_key(user_id: int, object_key: str) -> None:
    """Validate object key follows user isolation rules.

    Ensures the key lives in the owner's namespace. This is a
    critical security check.

    Args:
        user_id: Owner's user ID.
        object_key: Proposed object key.

    Raises:
        ValidationError: If key is empty or outside the user's namespace.
    """
    if not object_key:
        raise ValidationError('Object key cannot be empty')

    key_owner = extract_key_owner(object_key)
    if key_owner is None:
        raise ValidationError('Object key must start with users/{user_id}/')

    if key_owner != user_id:
        raise ValidationError(
            f'Object key user ID ({key_owner}) does not match '
            f'owner ({user_id})',
        )


def validate_folder_name(name: str) -> str:
    """Validate a folder name is a single path segment.

    Args:
        name: Proposed folder name.

    Returns:
        Name with surrounding whitespace removed.

    Raises:
        ValidationError: If the name is empty, too long or not a segment.
    """
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError('Folder name cannot be empty')
    if len(cleaned) > _NAME_MAX_LENGTH:
        raise ValidationError(
            f'Folder name is longer than {_NAME_MAX_LENGTH} characters',
        )
    if _PATH_SEPARATOR in cleaned or '\\' in cleaned:
        raise ValidationError('Folder name cannot contain path separators')
    if cleaned in {'.', '..'} or '\x00' in cleaned:
        raise ValidationError(f'Invalid folder name: {cleaned!r}')
    return cleaned


def build_folder_path(parent_path: str | None, name: str) -> str:
    """Build materialized path of a folder.

    Args:
        parent_path: Parent's path (e.g., '/docs'), None at the root.
        name: Folder name (e.g., '2024').

    Returns:
        Full path (e.g., '/docs/2024', or '/2024' at the root).
    """
    if parent_path is None:
        return _PATH_SEPARATOR + name
    return parent_path.rstrip(_PATH_SEPARATOR) + _PATH_SEPARATOR + name


def replace_last_segment(path: str, name: str) -> str:
    """Replace final segment of a materialized path.

    Example: ('/docs/2024', '2025') -> '/docs/2025'
    """
    parent_path = path.rsplit(_PATH_SEPARATOR, 1)[0]
    return parent_path + _PATH_SEPARATOR + name
