"""Database models for files app."""

from pathlib import Path
from typing import ClassVar, Final, final

from typing_extensions import override

from django.conf import settings
from django.db import models

# Constants for field max lengths
_NAME_MAX_LENGTH: Final = 255
_PATH_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_S3_KEY_MAX_LENGTH: Final = 1024
_S3_BUCKET_MAX_LENGTH: Final = 63

# Default quota: 10 GB in bytes
_DEFAULT_QUOTA_BYTES: Final = 10 * 1024 * 1024 * 1024


class ActiveManager(models.Manager):
    """Manager that hides soft-deleted rows."""

    @override
    def get_queryset(self) -> models.QuerySet:
        """Exclude rows flagged as deleted."""
        return super().get_queryset().filter(is_deleted=False)


@final
class Folder(models.Model):
    """Folder in a user's materialized-path tree.

    ``path`` is a cached denormalization of the parent chain:
    ``parent.path + '/' + name`` for nested folders and ``'/' + name``
    at the root. Renames rewrite it for the whole subtree.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='folders',
        db_index=True,
    )

    name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        help_text='Single path segment',
    )

    path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Full materialized path, e.g. /docs/2024',
    )

    # Weak reference: parent may be soft-deleted, rows are never removed
    parent = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        related_name='children',
        null=True,
        blank=True,
    )

    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'Folder'  # type: ignore[mutable-override]
        verbose_name_plural = 'Folders'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['name']

        indexes: ClassVar[list[models.Index]] = [
            # Optimize subtree prefix queries
            models.Index(
                fields=['user', 'path'],
                name='folders_user_path_idx',
            ),
            models.Index(
                fields=['user', 'parent', 'name'],
                name='folders_user_parent_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            # Soft-deleted folders do not block reuse of their path
            models.UniqueConstraint(
                fields=['user', 'path'],
                condition=models.Q(is_deleted=False),
                name='folders_user_path_live_unique',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}:{self.path}'

    def get_parent_path(self) -> str:
        """Path of the parent folder, empty string at the root.

        Example: '/docs/2024' -> '/docs'
        """
        return self.path.rsplit('/', 1)[0]


@final
class File(models.Model):
    """File stored in S3-compatible storage.

    The object lives under ``s3_key`` in ``s3_bucket``; the key is opaque
    and never changes. Folder placement is a weak reference, ``None`` means
    the user's root.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='files',
        db_index=True,
    )

    folder = models.ForeignKey(
        Folder,
        on_delete=models.SET_NULL,
        related_name='files',
        null=True,
        blank=True,
    )

    filename = models.CharField(max_length=_NAME_MAX_LENGTH)
    original_name = models.CharField(max_length=_NAME_MAX_LENGTH)

    mime_type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        help_text='Declared type, else guessed from the extension',
    )

    size_bytes = models.BigIntegerField(
        help_text='File size in bytes',
    )

    s3_key = models.CharField(
        max_length=_S3_KEY_MAX_LENGTH,
        unique=True,
        help_text='Object key: users/{user_id}/{stamp}-{name}',
    )

    s3_bucket = models.CharField(max_length=_S3_BUCKET_MAX_LENGTH)

    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    uploaded_at = models.DateTimeField(auto_now_add=True)
    modified_at = models.DateTimeField(auto_now=True)

    objects = ActiveManager()
    all_objects = models.Manager()

    class Meta:
        """Model metadata."""

        verbose_name = 'File'  # type: ignore[mutable-override]
        verbose_name_plural = 'Files'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['-uploaded_at']

        indexes: ClassVar[list[models.Index]] = [
            # Optimize folder listing queries
            models.Index(
                fields=['user', 'folder'],
                name='files_user_folder_idx',
            ),
            # Optimize recent files queries
            models.Index(
                fields=['user', '-uploaded_at'],
                name='files_user_recent_idx',
            ),
        ]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(size_bytes__gte=0),
                name='files_size_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}:{self.filename}'

    def get_extension(self) -> str:
        """Extract file extension.

        Example: 'file.pdf' -> 'pdf'

        Returns:
            Extension without dot (lowercase).
        """
        extension = Path(self.filename).suffix
        return extension.lstrip('.').lower()

    def as_summary(self) -> dict[str, object]:
        """Short description returned by uploads and folder listings."""
        return {
            'id': self.pk,
            'filename': self.filename,
            'size': self.size_bytes,
            'mime_type': self.mime_type,
        }


@final
class UserQuota(models.Model):
    """Storage quota for a user.

    Tracks user's storage limit and current usage. Only live files count:
    deleting a file removes its object and gives the space back.

    When over quota, users can still read and delete files, but uploads
    are blocked until usage falls below the limit.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='quota',
        primary_key=True,
    )

    quota_bytes = models.BigIntegerField(
        default=_DEFAULT_QUOTA_BYTES,
        help_text='Storage quota limit in bytes',
    )

    used_bytes = models.BigIntegerField(
        default=0,
        help_text='Currently used storage in bytes',
    )

    class Meta:
        """Model metadata."""

        verbose_name = 'User Quota'  # type: ignore[mutable-override]
        verbose_name_plural = 'User Quotas'  # type: ignore[mutable-override]

        constraints: ClassVar[list[models.BaseConstraint]] = [
            models.CheckConstraint(
                condition=models.Q(quota_bytes__gte=0),
                name='quota_bytes_non_negative',
            ),
            models.CheckConstraint(
                condition=models.Q(used_bytes__gte=0),
                name='used_bytes_non_negative',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.user.username}: {self.used_bytes}/{self.quota_bytes}'

    def has_space_for(self, size_bytes: int) -> bool:
        """Check if there's enough space for the given size.

        Args:
            size_bytes: Size to check in bytes.

        Returns:
            True if there's enough space, False otherwise.
        """
        return self.used_bytes + size_bytes <= self.quota_bytes

    def available_bytes(self) -> int:
        """Get available storage space.

        Returns:
            Available bytes (never negative).
        """
        available = self.quota_bytes - self.used_bytes
        return max(0, available)
