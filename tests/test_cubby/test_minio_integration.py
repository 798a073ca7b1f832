"""Integration tests for MinIO S3 storage.

These tests verify that MinIO is properly configured and accessible
when running in Docker Compose. They drive the object store adapter
against the real S3 API instead of the mocked one.
"""
import os
import uuid
from typing import Final

import pytest

from cubby.apps.files.exceptions import ObjectNotFoundError
from cubby.apps.files.infrastructure.storage import ObjectStore

_TEST_BUCKET: Final = 'cubby-integration'
_TEST_FILE_CONTENT: Final = b'Hello from MinIO integration test!'


@pytest.fixture
def minio_store() -> ObjectStore:
    """Create object store pointing at MinIO.

    Returns:
        ObjectStore with the test bucket provisioned.
    """
    store = ObjectStore(
        bucket_name=_TEST_BUCKET,
        endpoint_url=os.getenv('MINIO_ENDPOINT', 'http://minio:9000'),
        access_key=os.getenv('MINIO_ROOT_USER', 'minioadmin'),
        secret_key=os.getenv('MINIO_ROOT_PASSWORD', 'minioadmin'),
        region_name='us-east-1',
        addressing_style='path',
    )
    store.ensure_bucket()
    return store


@pytest.fixture
def object_key() -> str:
    """Unique key per test so runs do not collide.

    Returns:
        Object key under a test user namespace.
    """
    return f'users/0/{uuid.uuid4().hex}-integration.txt'


@pytest.mark.integration
def test_ensure_bucket_is_idempotent(minio_store: ObjectStore) -> None:
    """Test provisioning twice reports the existing bucket."""
    assert minio_store.ensure_bucket() is False


@pytest.mark.integration
def test_put_and_head_object(minio_store: ObjectStore, object_key: str) -> None:
    """Test uploading an object with attributes to MinIO."""
    minio_store.put_object(
        object_key,
        _TEST_FILE_CONTENT,
        content_type='text/plain',
        attributes={'user-id': '0'},
    )

    info = minio_store.head_object(object_key)
    assert info.size == len(_TEST_FILE_CONTENT)
    assert info.content_type == 'text/plain'
    assert info.attributes['user-id'] == '0'


@pytest.mark.integration
def test_iter_objects(minio_store: ObjectStore, object_key: str) -> None:
    """Test listing finds the uploaded object."""
    minio_store.put_object(object_key, _TEST_FILE_CONTENT, content_type='text/plain')

    keys = [key for key, _ in minio_store.iter_objects('users/0/')]

    assert object_key in keys


@pytest.mark.integration
def test_get_object(minio_store: ObjectStore, object_key: str) -> None:
    """Test downloading an object from MinIO."""
    minio_store.put_object(object_key, _TEST_FILE_CONTENT, content_type='text/plain')

    stored = minio_store.get_object(object_key)

    assert stored.read() == _TEST_FILE_CONTENT


@pytest.mark.integration
def test_delete_object(minio_store: ObjectStore, object_key: str) -> None:
    """Test deleting an object from MinIO."""
    minio_store.put_object(object_key, _TEST_FILE_CONTENT, content_type='text/plain')

    minio_store.delete_object(object_key)

    with pytest.raises(ObjectNotFoundError):
        minio_store.head_object(object_key)
