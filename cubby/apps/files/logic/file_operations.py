"""Business logic for file operations.

Metadata rows and stored objects are never covered by one transaction.
Ordering keeps them consistent instead: objects are written before their
row is inserted and removed before their row is marked deleted, so a
failure leaves at worst an unreferenced object, never a row pointing at
a missing one.
"""

import dataclasses
import logging
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from io import BytesIO
from typing import Any, Protocol
from urllib.parse import quote

from django.db import transaction
from django.utils import timezone
from django.utils.http import content_disposition_header

from cubby.apps.files.exceptions import (
    NotFoundError,
    ObjectNotFoundError,
    StorageUnavailableError,
    UnsupportedMimeTypeError,
)
from cubby.apps.files.infrastructure.metadata import (
    extract_filename,
    generate_object_key,
    resolve_mime_type,
    validate_object_key,
)
from cubby.apps.files.infrastructure.mime_types import (
    get_allowed_types_message,
    is_allowed_mime_type,
)
from cubby.apps.files.infrastructure.storage import ObjectStore, StoredObject
from cubby.apps.files.logic.folder_operations import get_folder
from cubby.apps.files.logic.pagination import (
    Page,
    PageRequest,
    paginate_queryset,
    read_snapshot,
)
from cubby.apps.files.logic.quota_operations import (
    check_quota,
    decrement_usage,
    get_or_create_quota,
    increment_usage,
)
from cubby.apps.files.models import File, Folder, UserQuota

# User type for Django's dynamic user model
_User = Any

logger = logging.getLogger(__name__)

# Sentinel for list_files: no folder filter at all
_ALL_FOLDERS = object()


class UploadPart(Protocol):
    """One file of a multipart upload.

    Django's ``UploadedFile`` satisfies this protocol.
    """

    name: str | None
    content_type: str | None

    def chunks(self, chunk_size: int | None = None) -> Iterator[bytes]:
        """Iterate over the part's bytes."""


@dataclasses.dataclass(slots=True)
class FileDownload:
    """Stream of a stored file plus the headers to send with it."""

    file: File
    stored: StoredObject

    @property
    def content_type(self) -> str:
        """MIME type recorded at upload."""
        return self.file.mime_type

    @property
    def content_length(self) -> int:
        """Exact byte length."""
        return self.file.size_bytes

    @property
    def filename(self) -> str:
        """Suggested filename for the client."""
        return self.file.filename

    @property
    def content_disposition(self) -> str:
        """Attachment header carrying the original filename."""
        return content_disposition_header(
            as_attachment=True,
            filename=self.filename,
        )

    def iter_chunks(self) -> Iterator[bytes]:
        """Stream the object body."""
        return self.stored.iter_chunks()


def get_file(user: _User, file_id: int) -> File:
    """Get a live file owned by user.

    Args:
        user: File owner.
        file_id: ID of the file.

    Returns:
        File instance.

    Raises:
        NotFoundError: If file is missing, deleted or foreign-owned.
    """
    try:
        return File.objects.get(pk=file_id, user=user)
    except File.DoesNotExist as error:
        raise NotFoundError(f'File not found: {file_id}') from error


def _read_part(part: UploadPart) -> bytes:
    """Buffer an upload part fully to learn its exact size."""
    buffer = BytesIO()
    for chunk in part.chunks():
        buffer.write(chunk)
    return buffer.getvalue()


def upload_files(
    storage: ObjectStore,
    user: _User,
    parts: Iterable[UploadPart],
    folder_id: int | None = None,
) -> list[File]:
    """Upload files to storage and create database records.

    Parts are processed in order. A failing part stops the request with
    its error; files of earlier parts stay uploaded and accounted.

    Per part: check the quota snapshot, check the MIME type, write the
    object, then insert the row and commit the quota increment in one
    transaction. If that transaction fails the object is deleted again.

    Args:
        storage: Object store to write to.
        user: Owner of the files.
        parts: Upload parts (e.g. ``request.FILES.getlist('files')``).
        folder_id: Optional target folder, None for the root.

    Returns:
        Created File instances.

    Raises:
        NotFoundError: If the folder is missing, deleted or foreign-owned.
        ValidationError: If a part has no usable filename.
        QuotaExceededError: If a part does not fit in the quota.
        UnsupportedMimeTypeError: If a part's type is not allowed.
        StorageUnavailableError: If the object store write fails.
    """
    if folder_id is not None:
        get_folder(user, folder_id)

    # Snapshot used for the early check; increment_usage re-checks
    quota = get_or_create_quota(user)

    uploaded: list[File] = []
    for part in parts:
        uploaded.append(
            _upload_part(storage, user, quota, part, folder_id),
        )

    logger.info(
        'Uploaded %d files for user %s',
        len(uploaded),
        user.username,
    )
    return uploaded


def _upload_part(
    storage: ObjectStore,
    user: _User,
    quota: UserQuota,
    part: UploadPart,
    folder_id: int | None,
) -> File:
    filename = extract_filename(part.name or '')
    content = _read_part(part)
    file_size = len(content)

    check_quota(quota, file_size)

    mime_type = resolve_mime_type(part.content_type, filename)
    if not is_allowed_mime_type(mime_type):
        logger.warning(
            'Rejected upload of %s for user %s: type %s not allowed',
            filename,
            user.username,
            mime_type,
        )
        raise UnsupportedMimeTypeError(mime_type, get_allowed_types_message())

    object_key = generate_object_key(user.id, filename)
    validate_object_key(user.id, object_key)

    # Step 1: Upload to storage first
    storage.put_object(
        object_key,
        content,
        content_type=mime_type,
        attributes={
            'user-id': str(user.id),
            'original-name': quote(filename),
            'uploaded-at': datetime.now(tz=UTC).isoformat(),
        },
    )

    # Step 2: Create database record and commit usage (in transaction)
    try:
        with transaction.atomic():
            folder = _lock_target_folder(user, folder_id)
            file_instance = File.objects.create(
                user=user,
                folder=folder,
                filename=filename,
                original_name=filename,
                mime_type=mime_type,
                size_bytes=file_size,
                s3_key=object_key,
                s3_bucket=storage.bucket_name,
            )
            increment_usage(user, file_size)
    except Exception:
        # Rollback: Delete object from storage since DB transaction failed
        logger.exception(
            'Database transaction failed, rolling back storage upload: %s',
            object_key,
        )
        storage.rollback_upload(object_key)
        raise

    logger.info(
        'File record created in database: %s (ID: %d, %d bytes)',
        object_key,
        file_instance.pk,
        file_size,
    )
    return file_instance


def _lock_target_folder(user: _User, folder_id: int | None) -> Folder | None:
    """Re-check the target folder under a row lock.

    Holds off a concurrent folder delete until the file row is in.
    """
    if folder_id is None:
        return None
    return get_folder(user, folder_id, for_update=True)


def download_file(storage: ObjectStore, user: _User, file_id: int) -> FileDownload:
    """Open a stored file for streaming.

    Args:
        storage: Object store to read from.
        user: File owner.
        file_id: ID of the file.

    Returns:
        FileDownload with the body stream and response headers.

    Raises:
        NotFoundError: If file is missing, deleted or foreign-owned.
        StorageUnavailableError: If the object cannot be read.
    """
    file_instance = get_file(user, file_id)

    try:
        stored = storage.get_object(file_instance.s3_key)
    except ObjectNotFoundError as error:
        logger.exception(
            'Object missing for live file: %s (ID: %d)',
            file_instance.s3_key,
            file_instance.pk,
        )
        raise StorageUnavailableError(
            f'Stored object for file {file_id} is unavailable',
        ) from error

    return FileDownload(file=file_instance, stored=stored)


def delete_file(storage: ObjectStore, user: _User, file_id: int) -> File:
    """Delete file from storage, then soft delete its record.

    If the storage delete fails the row stays untouched and the call can
    be retried. Once the row is marked deleted, a failing quota decrement
    is logged and left for ``recalculate_usage`` to correct.

    Of two concurrent deletes of the same file only the one that flags
    the row gives the space back, the other raises NotFoundError.

    Args:
        storage: Object store holding the file.
        user: File owner.
        file_id: ID of the file.

    Returns:
        Soft deleted File instance.

    Raises:
        NotFoundError: If file is missing, deleted or foreign-owned.
        StorageUnavailableError: If the object cannot be deleted.
    """
    file_instance = get_file(user, file_id)
    object_key = file_instance.s3_key
    logger.info('Deleting file: ID=%d, key=%s', file_instance.pk, object_key)

    # Step 1: Remove the object, abort with the row intact on failure
    storage.delete_object(object_key)

    # Step 2: Mark the row deleted, only one concurrent delete may win
    deleted_at = timezone.now()
    with transaction.atomic():
        flagged = File.objects.filter(pk=file_instance.pk, user=user).update(
            is_deleted=True,
            deleted_at=deleted_at,
            modified_at=deleted_at,
        )

    if flagged == 0:
        logger.warning(
            'File %d was deleted concurrently, usage left unchanged',
            file_instance.pk,
        )
        raise NotFoundError(f'File not found: {file_id}')

    file_instance.is_deleted = True
    file_instance.deleted_at = deleted_at
    file_instance.modified_at = deleted_at

    # Step 3: Give the space back (best effort)
    try:
        decrement_usage(user, file_instance.size_bytes)
    except Exception:
        logger.exception(
            'Failed to decrement usage for user %s by %d bytes, usage drifted',
            user.username,
            file_instance.size_bytes,
        )

    logger.info('File deleted: ID=%d', file_instance.pk)
    return file_instance


def list_files(
    user: _User,
    folder_id: int | None | object = _ALL_FOLDERS,
    page_request: PageRequest | None = None,
) -> Page[File]:
    """List user's live files, newest first.

    Args:
        user: Owner of files.
        folder_id: Folder to list, None for root-level files only.
            Omit to list files from every folder.
        page_request: Requested page, defaults to the first page.

    Returns:
        Page of File instances.
    """
    page_request = page_request or PageRequest.from_query()
    queryset = File.objects.filter(user=user)
    if folder_id is not _ALL_FOLDERS:
        queryset = queryset.filter(folder_id=folder_id)
    queryset = queryset.order_by('-uploaded_at', '-pk')

    with read_snapshot():
        return paginate_queryset(queryset, page_request)
