"""Object store adapter for S3-compatible storage."""

import dataclasses
import datetime as dt
import logging
from collections.abc import Iterator, Mapping
from typing import IO, Any, Final, final

from botocore.exceptions import BotoCoreError, ClientError
from django.core.files.storage import storages
from storages.backends.s3 import S3Storage

from cubby.apps.files.exceptions import (
    ObjectNotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

# Error codes S3-compatible backends use for a missing key or bucket
_MISSING_KEY_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))
_MISSING_BUCKET_CODES: Final = frozenset(('404', 'NoSuchBucket', 'NotFound'))
_BUCKET_EXISTS_CODES: Final = frozenset((
    'BucketAlreadyOwnedByYou',
    'BucketAlreadyExists',
))
_DEFAULT_REGION: Final = 'us-east-1'
_STREAM_CHUNK_SIZE: Final = 64 * 1024


@dataclasses.dataclass(frozen=True, slots=True)
class ObjectInfo:
    """Metadata of a stored object."""

    size: int
    content_type: str
    last_modified: dt.datetime
    attributes: Mapping[str, str]


@dataclasses.dataclass(slots=True)
class StoredObject:
    """Open object body plus its headers."""

    body: Any
    size: int
    content_type: str

    def iter_chunks(self, chunk_size: int = _STREAM_CHUNK_SIZE) -> Iterator[bytes]:
        """Stream the body in chunks and close it when exhausted."""
        try:
            yield from self.body.iter_chunks(chunk_size)
        finally:
            self.body.close()

    def read(self) -> bytes:
        """Read the whole body."""
        try:
            return self.body.read()
        finally:
            self.body.close()


def _error_code(error: ClientError) -> str:
    return str(error.response.get('Error', {}).get('Code', ''))


@final
class ObjectStore(S3Storage):
    """S3 object store adapter for user files.

    Extends django-storages S3Storage with:
    - Raw key put/get/head/delete with content type and attributes
    - Idempotent bucket provisioning
    - Translation of botocore errors into files app errors

    Operations are single-shot, retrying is left to the caller.
    """

    @property
    def client(self) -> Any:
        """Low-level boto3 S3 client sharing the storage connection."""
        return self.connection.meta.client

    def ensure_bucket(self) -> bool:
        """Create the bucket unless it already exists.

        Returns:
            True if the bucket was created, False if it already existed.

        Raises:
            StorageUnavailableError: If the bucket cannot be checked or made.
        """
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except ClientError as error:
            if _error_code(error) not in _MISSING_BUCKET_CODES:
                logger.exception('Error checking bucket: %s', self.bucket_name)
                raise StorageUnavailableError(
                    f'Cannot check bucket {self.bucket_name}',
                ) from error
        except BotoCoreError as error:
            logger.exception('Error checking bucket: %s', self.bucket_name)
            raise StorageUnavailableError(
                f'Cannot check bucket {self.bucket_name}',
            ) from error
        else:
            logger.info('Bucket already exists: %s', self.bucket_name)
            return False

        return self._create_bucket()

    def _create_bucket(self) -> bool:
        create_options: dict[str, Any] = {'Bucket': self.bucket_name}
        region = self.region_name or _DEFAULT_REGION
        if region != _DEFAULT_REGION:
            create_options['CreateBucketConfiguration'] = {
                'LocationConstraint': region,
            }

        try:
            logger.info('Creating bucket: %s', self.bucket_name)
            self.client.create_bucket(**create_options)
        except ClientError as error:
            if _error_code(error) in _BUCKET_EXISTS_CODES:
                logger.info('Bucket created concurrently: %s', self.bucket_name)
                return False
            logger.exception('Failed to create bucket: %s', self.bucket_name)
            raise StorageUnavailableError(
                f'Cannot create bucket {self.bucket_name}',
            ) from error
        except BotoCoreError as error:
            logger.exception('Failed to create bucket: %s', self.bucket_name)
            raise StorageUnavailableError(
                f'Cannot create bucket {self.bucket_name}',
            ) from error

        logger.info('Bucket created: %s', self.bucket_name)
        return True

    def put_object(
        self,
        key: str,
        content: bytes | IO[bytes],
        content_type: str,
        attributes: Mapping[str, str] | None = None,
    ) -> None:
        """Write an object under the given key.

        Args:
            key: Object key.
            content: Bytes or a binary file-like object.
            content_type: MIME type stored with the object.
            attributes: User metadata stored with the object.

        Raises:
            StorageUnavailableError: If the write fails.
        """
        try:
            logger.info('Uploading object to storage: %s', key)
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type,
                Metadata=dict(attributes or {}),
            )
        except (ClientError, BotoCoreError) as error:
            logger.exception('Failed to upload object to storage: %s', key)
            raise StorageUnavailableError(
                f'Cannot write object {key}',
            ) from error
        logger.info('Successfully uploaded object: %s', key)

    def get_object(self, key: str) -> StoredObject:
        """Open an object for reading.

        Args:
            key: Object key.

        Returns:
            StoredObject with a streaming body.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageUnavailableError: If the read fails.
        """
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as error:
            if _error_code(error) in _MISSING_KEY_CODES:
                raise ObjectNotFoundError(key) from error
            logger.exception('Failed to read object from storage: %s', key)
            raise StorageUnavailableError(f'Cannot read object {key}') from error
        except BotoCoreError as error:
            logger.exception('Failed to read object from storage: %s', key)
            raise StorageUnavailableError(f'Cannot read object {key}') from error

        return StoredObject(
            body=response['Body'],
            size=response['ContentLength'],
            content_type=response.get('ContentType', ''),
        )

    def head_object(self, key: str) -> ObjectInfo:
        """Get object metadata without reading the body.

        Args:
            key: Object key.

        Returns:
            ObjectInfo with size, content type and attributes.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageUnavailableError: If the request fails.
        """
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as error:
            if _error_code(error) in _MISSING_KEY_CODES:
                raise ObjectNotFoundError(key) from error
            logger.exception('Failed to stat object in storage: %s', key)
            raise StorageUnavailableError(f'Cannot stat object {key}') from error
        except BotoCoreError as error:
            logger.exception('Failed to stat object in storage: %s', key)
            raise StorageUnavailableError(f'Cannot stat object {key}') from error

        return ObjectInfo(
            size=response['ContentLength'],
            content_type=response.get('ContentType', ''),
            last_modified=response['LastModified'],
            attributes=response.get('Metadata', {}),
        )

    def delete_object(self, key: str) -> None:
        """Delete object from S3 with error handling and logging.

        Deleting a missing key succeeds.

        Args:
            key: Object key to delete.

        Raises:
            StorageUnavailableError: If S3 delete fails.
        """
        try:
            logger.info('Deleting object from storage: %s', key)
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as error:
            logger.exception('Failed to delete object from storage: %s', key)
            raise StorageUnavailableError(
                f'Cannot delete object {key}',
            ) from error
        logger.info('Successfully deleted object: %s', key)

    def rollback_upload(self, key: str) -> None:
        """Delete uploaded object for DB transaction rollback.

        This method is called when a database transaction fails after
        an object has been successfully uploaded to S3. It attempts to
        delete the object to maintain consistency.

        This is a best-effort operation - if deletion fails, the error
        is logged but not raised, as the DB rollback has already occurred.

        Args:
            key: Object key to delete.
        """
        try:
            logger.warning('Rolling back upload, deleting object: %s', key)
            self.delete_object(key)
        except StorageUnavailableError:
            # The orphan sweep reclaims objects no row references
            logger.exception('Failed to rollback upload, orphaned object: %s', key)

    def iter_objects(self, prefix: str) -> Iterator[tuple[str, dt.datetime]]:
        """Iterate over keys under a prefix.

        Args:
            prefix: Key prefix (e.g., 'users/').

        Yields:
            Tuples of object key and last modified time.

        Raises:
            StorageUnavailableError: If listing fails.
        """
        paginator = self.client.get_paginator('list_objects_v2')
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for entry in page.get('Contents', []):
                    yield entry['Key'], entry['LastModified']
        except (ClientError, BotoCoreError) as error:
            logger.exception('Failed to list objects under: %s', prefix)
            raise StorageUnavailableError(
                f'Cannot list objects under {prefix}',
            ) from error


def get_object_store() -> ObjectStore:
    """Get the object store configured as ``STORAGES['default']``.

    Returns:
        ObjectStore built by Django from the storage settings.
    """
    return storages['default']  # type: ignore[return-value]
