"""Shared fixtures for files app tests."""

import pytest
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from moto import mock_aws

from cubby.apps.files.infrastructure.storage import ObjectStore
from cubby.apps.files.models import File, Folder, UserQuota

User = get_user_model()

_TEST_BUCKET = 'cubby-files'


@pytest.fixture
def user(db):
    """Create test user.

    Returns:
        User instance for testing.
    """
    return User.objects.create_user(
        username='testuser',
        password='testpass123',
        email='test@example.com',
    )


@pytest.fixture
def other_user(db):
    """Create second test user for isolation tests.

    Returns:
        Second user instance.
    """
    return User.objects.create_user(
        username='otheruser',
        password='testpass123',
        email='other@example.com',
    )


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real AWS account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def object_store(aws_credentials):
    """Object store backed by mocked S3 with the files bucket created.

    Yields:
        ObjectStore instance.
    """
    with mock_aws():
        store = ObjectStore(
            bucket_name=_TEST_BUCKET,
            access_key='testing',
            secret_key='testing',
            region_name='us-east-1',
        )
        store.ensure_bucket()
        yield store


@pytest.fixture
def quota(user):
    """Small quota so limits are easy to reach.

    Returns:
        UserQuota of 1000 bytes, nothing used.
    """
    return UserQuota.objects.create(user=user, quota_bytes=1000, used_bytes=0)


@pytest.fixture
def make_part():
    """Factory for upload parts.

    Returns:
        Callable building a SimpleUploadedFile.
    """
    def factory(
        name: str = 'photo.png',
        size: int = 10,
        content_type: str | None = 'image/png',
    ) -> SimpleUploadedFile:
        return SimpleUploadedFile(name, b'x' * size, content_type=content_type)

    return factory


@pytest.fixture
def make_file(user):
    """Factory for File rows without touching storage.

    Returns:
        Callable creating a File.
    """
    counter = iter(range(1, 10_000))

    def factory(owner=None, folder: Folder | None = None, **fields) -> File:
        owner = owner or user
        number = next(counter)
        defaults = {
            'filename': f'file{number}.png',
            'original_name': f'file{number}.png',
            'mime_type': 'image/png',
            'size_bytes': 100,
            's3_key': f'users/{owner.id}/{number}-file{number}.png',
            's3_bucket': _TEST_BUCKET,
        }
        defaults.update(fields)
        return File.objects.create(user=owner, folder=folder, **defaults)

    return factory
