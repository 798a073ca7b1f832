"""Tests for metadata utilities."""

import re

import pytest
from django.core.exceptions import ValidationError

from cubby.apps.files.infrastructure.metadata import (
    build_folder_path,
    extract_filename,
    extract_key_owner,
    generate_object_key,
    get_user_key_prefix,
    replace_last_segment,
    resolve_mime_type,
    sanitize_filename,
    validate_folder_name,
    validate_object_key,
)


def test_resolve_mime_type_prefers_declared():
    """Test declared content type wins over the extension."""
    assert resolve_mime_type('image/webp', 'photo.png') == 'image/webp'


def test_resolve_mime_type_from_extension():
    """Test MIME type lookup from filename."""
    assert resolve_mime_type(None, 'test.pdf') == 'application/pdf'
    assert resolve_mime_type('', 'test.jpg') == 'image/jpeg'
    assert resolve_mime_type('  ', 'test.png') == 'image/png'


def test_resolve_mime_type_unknown():
    """Test MIME type fallback for unknown extension."""
    result = resolve_mime_type(None, 'test.unknown')
    assert result == 'application/octet-stream'


def test_extract_filename():
    """Test directory parts sent by clients are dropped."""
    assert extract_filename('test.txt') == 'test.txt'
    assert extract_filename('folder/subfolder/file.doc') == 'file.doc'
    assert extract_filename('C:\\Users\\me\\photo.png') == 'photo.png'


@pytest.mark.parametrize('client_name', ['', '   ', '..', '/'])
def test_extract_filename_rejects_empty(client_name):
    """Test unusable filenames are rejected."""
    with pytest.raises(ValidationError):
        extract_filename(client_name)


def test_sanitize_filename():
    """Test characters outside the allow-set are replaced."""
    assert sanitize_filename('my photo (1).jpg') == 'my_photo__1_.jpg'
    assert sanitize_filename('ok-name.v2.png') == 'ok-name.v2.png'
    assert sanitize_filename('../../etc/passwd') == '.._.._etc_passwd'


def test_generate_object_key_format():
    """Test key is scoped under the user's namespace."""
    key = generate_object_key(7, 'my photo.png')

    assert re.fullmatch(r'users/7/\d+-[0-9a-f]{8}-my_photo\.png', key)


def test_generate_object_key_unique():
    """Test same user and name never produce the same key."""
    keys = {generate_object_key(7, 'a.png') for _ in range(50)}

    assert len(keys) == 50


def test_get_user_key_prefix():
    """Test every key of a user starts with the user's prefix."""
    prefix = get_user_key_prefix(7)

    assert prefix == 'users/7/'
    assert generate_object_key(7, 'a.png').startswith(prefix)
    assert not generate_object_key(71, 'a.png').startswith(prefix)


def test_extract_key_owner():
    """Test owner ID extraction from object keys."""
    assert extract_key_owner('users/12/1-a.png') == 12
    assert extract_key_owner('users/abc/1-a.png') is None
    assert extract_key_owner('other/12/1-a.png') is None
    assert extract_key_owner('users/12') is None


def test_validate_object_key_valid():
    """Test object key validation with valid key."""
    # Should not raise
    validate_object_key(5, 'users/5/1-test.png')


def test_validate_object_key_wrong_user():
    """Test object key validation with wrong user ID."""
    with pytest.raises(ValidationError, match='does not match owner'):
        validate_object_key(5, 'users/105/1-test.png')


def test_validate_object_key_outside_namespace():
    """Test object key validation without user namespace."""
    with pytest.raises(ValidationError, match='must start with users'):
        validate_object_key(5, 'documents/test.pdf')


def test_validate_object_key_empty():
    """Test object key validation with empty key."""
    with pytest.raises(ValidationError, match='cannot be empty'):
        validate_object_key(5, '')


def test_validate_folder_name_strips_whitespace():
    """Test folder names are trimmed."""
    assert validate_folder_name('  docs ') == 'docs'


@pytest.mark.parametrize('name', ['', '  ', 'a/b', 'a\\b', '.', '..', 'x' * 256])
def test_validate_folder_name_rejects_invalid(name):
    """Test folder names must be a single usable segment."""
    with pytest.raises(ValidationError):
        validate_folder_name(name)


def test_build_folder_path():
    """Test materialized path construction."""
    assert build_folder_path(None, 'docs') == '/docs'
    assert build_folder_path('/docs', '2024') == '/docs/2024'


def test_replace_last_segment():
    """Test renaming the final path segment."""
    assert replace_last_segment('/docs/2024', '2025') == '/docs/2025'
    assert replace_last_segment('/docs', 'papers') == '/papers'
