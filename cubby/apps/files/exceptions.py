"""Exceptions for files app."""

from typing import ClassVar


class FilesError(Exception):
    """Base class for file and folder lifecycle errors."""

    retryable: ClassVar[bool] = False


class NotFoundError(FilesError):
    """Raised when an entity is missing or owned by another user."""


class ObjectNotFoundError(NotFoundError):
    """Raised when a key does not exist in the object store."""

    def __init__(self, key: str) -> None:
        """Initialize ObjectNotFoundError.

        Args:
            key: Object key that was not found.
        """
        self.key = key
        super().__init__(f'Object not found in storage: {key}')


class ConflictError(FilesError):
    """Raised when a folder path is already taken."""


class FolderNotEmptyError(FilesError):
    """Raised when deleting a folder that still has children."""

    def __init__(self, folder_id: int, folder_count: int, file_count: int) -> None:
        """Initialize FolderNotEmptyError.

        Args:
            folder_id: ID of the folder.
            folder_count: Number of live child folders.
            file_count: Number of live files.
        """
        self.folder_id = folder_id
        self.folder_count = folder_count
        self.file_count = file_count
        super().__init__(
            f'Folder {folder_id} must be empty before deletion '
            f'({folder_count} folders, {file_count} files)',
        )


class QuotaExceededError(FilesError):
    """Raised when upload would exceed user's storage quota."""

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {self.available_bytes} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )

    @property
    def available_bytes(self) -> int:
        """Bytes left before the ceiling (never negative)."""
        return max(0, self.quota_bytes - self.used_bytes)


class UnsupportedMimeTypeError(FilesError):
    """Raised when an upload's MIME type is not on the allow-list."""

    def __init__(self, mime_type: str, allowed_message: str) -> None:
        """Initialize UnsupportedMimeTypeError.

        Args:
            mime_type: Rejected MIME type.
            allowed_message: Human-readable description of allowed types.
        """
        self.mime_type = mime_type
        self.allowed_message = allowed_message
        super().__init__(
            f'File type not allowed: {mime_type}. {allowed_message}',
        )


class StorageUnavailableError(FilesError):
    """Raised when the object store fails or cannot be reached."""

    retryable = True
