"""Business logic for folder hierarchy operations.

Folders form a materialized-path tree per user. ``parent`` is the
source of truth, ``path`` is rebuilt for the whole subtree inside one
transaction whenever a folder is renamed.
"""

import dataclasses
import logging
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import CharField, Count, Q, QuerySet, Value
from django.db.models.functions import Concat, Substr
from django.utils import timezone

from cubby.apps.files.exceptions import (
    ConflictError,
    FolderNotEmptyError,
    NotFoundError,
)
from cubby.apps.files.infrastructure.metadata import (
    build_folder_path,
    replace_last_segment,
    validate_folder_name,
)
from cubby.apps.files.logic.pagination import (
    Page,
    PageRequest,
    paginate_queryset,
    read_snapshot,
)
from cubby.apps.files.models import File, Folder

# User type for Django's dynamic user model
_User = Any

_LIVE_FILES = Q(files__is_deleted=False)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class FolderContents:
    """A folder with one page of its subfolders and one page of files."""

    folder: Folder
    subfolders: Page[Folder]
    files: Page[File]


def get_folder(user: _User, folder_id: int, *, for_update: bool = False) -> Folder:
    """Get a live folder owned by user.

    Args:
        user: Folder owner.
        folder_id: ID of the folder.
        for_update: Lock the row, requires an open transaction.

    Returns:
        Folder instance.

    Raises:
        NotFoundError: If folder is missing, deleted or foreign-owned.
    """
    queryset = Folder.objects.filter(user=user)
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=folder_id)
    except Folder.DoesNotExist as error:
        raise NotFoundError(f'Folder not found: {folder_id}') from error


def _annotate_file_count(queryset: QuerySet[Folder]) -> QuerySet[Folder]:
    return queryset.annotate(
        file_count=Count('files', filter=_LIVE_FILES, distinct=True),
    )


def _path_taken(user: _User, path: str, exclude_id: int | None = None) -> bool:
    queryset = Folder.objects.filter(user=user, path=path)
    if exclude_id is not None:
        queryset = queryset.exclude(pk=exclude_id)
    return queryset.exists()


def create_folder(user: _User, name: str, parent_id: int | None = None) -> Folder:
    """Create a folder at the root or under a parent.

    Args:
        user: Folder owner.
        name: Single path segment.
        parent_id: Optional parent folder ID.

    Returns:
        Created Folder instance.

    Raises:
        ValidationError: If name is not a valid segment.
        NotFoundError: If parent is missing, deleted or foreign-owned.
        ConflictError: If a live folder already has the path.
    """
    name = validate_folder_name(name)

    try:
        with transaction.atomic():
            # Parent stays locked until the child row is in, so a
            # concurrent rename or delete of it waits for this insert
            parent = None
            if parent_id is not None:
                parent = get_folder(user, parent_id, for_update=True)

            path = build_folder_path(parent.path if parent else None, name)

            if _path_taken(user, path):
                logger.warning(
                    'Folder path already exists for user %s: %s',
                    user.username,
                    path,
                )
                raise ConflictError(
                    f'Folder with this path already exists: {path}',
                )

            folder = Folder.objects.create(
                user=user,
                name=name,
                path=path,
                parent=parent,
            )
    except IntegrityError as error:
        # Lost a race against a concurrent create of the same path
        logger.warning(
            'Folder path already exists for user %s: %s',
            user.username,
            path,
        )
        raise ConflictError(
            f'Folder with this path already exists: {path}',
        ) from error

    logger.info('Folder created: %s (ID: %d)', path, folder.pk)
    return folder


def list_folders(
    user: _User,
    parent_id: int | None = None,
    page_request: PageRequest | None = None,
) -> Page[Folder]:
    """List live folders under a parent, or at the root.

    Each folder carries a ``file_count`` of its direct live files.

    Args:
        user: Folder owner.
        parent_id: Parent folder ID, None for the root.
        page_request: Requested page, defaults to the first page.

    Returns:
        Page of folders ordered by name.
    """
    page_request = page_request or PageRequest.from_query()
    queryset = _annotate_file_count(
        Folder.objects.filter(user=user, parent_id=parent_id),
    ).order_by('name', 'pk')

    with read_snapshot():
        return paginate_queryset(queryset, page_request)


def get_folder_contents(
    user: _User,
    folder_id: int,
    page_request: PageRequest | None = None,
) -> FolderContents:
    """Get a folder with its direct subfolders and files.

    Args:
        user: Folder owner.
        folder_id: ID of the folder.
        page_request: Page applied to both listings.

    Returns:
        FolderContents read from one snapshot of the data.

    Raises:
        NotFoundError: If folder is missing, deleted or foreign-owned.
    """
    page_request = page_request or PageRequest.from_query()

    with read_snapshot():
        folder = get_folder(user, folder_id)
        subfolders = _annotate_file_count(
            Folder.objects.filter(user=user, parent=folder),
        ).order_by('name', 'pk')
        files = File.objects.filter(user=user, folder=folder).order_by(
            'filename',
            'pk',
        )
        return FolderContents(
            folder=folder,
            subfolders=paginate_queryset(subfolders, page_request),
            files=paginate_queryset(files, page_request),
        )


def rename_folder(user: _User, folder_id: int, new_name: str) -> Folder:
    """Rename a folder and rewrite paths of its whole subtree.

    The folder row is locked and all descendant paths are rewritten with
    a single UPDATE in the same transaction, so readers see either the
    old tree or the new one.

    Args:
        user: Folder owner.
        folder_id: ID of the folder.
        new_name: New single path segment.

    Returns:
        Updated Folder instance.

    Raises:
        ValidationError: If name is not a valid segment.
        NotFoundError: If folder is missing, deleted or foreign-owned.
        ConflictError: If another live folder already has the new path.
    """
    new_name = validate_folder_name(new_name)

    try:
        with transaction.atomic():
            folder = get_folder(user, folder_id, for_update=True)
            old_path = folder.path
            new_path = replace_last_segment(old_path, new_name)

            if _path_taken(user, new_path, exclude_id=folder.pk):
                logger.warning(
                    'Rename conflict for user %s: %s -> %s',
                    user.username,
                    old_path,
                    new_path,
                )
                raise ConflictError(
                    f'Folder with this name already exists: {new_path}',
                )

            folder.name = new_name
            folder.path = new_path
            folder.save(update_fields=['name', 'path', 'modified_at'])

            rewritten = _rewrite_descendant_paths(user, old_path, new_path)
    except IntegrityError as error:
        raise ConflictError(
            f'Folder with this name already exists: {new_name}',
        ) from error

    logger.info(
        'Folder renamed: %s -> %s (ID: %d, %d descendants)',
        old_path,
        new_path,
        folder.pk,
        rewritten,
    )
    return folder


def _rewrite_descendant_paths(user: _User, old_path: str, new_path: str) -> int:
    """Swap the old path prefix for the new one on every live descendant.

    Returns:
        Number of rewritten folders.
    """
    if old_path == new_path:
        return 0

    old_prefix = old_path + '/'
    candidates = Folder.objects.filter(
        user=user,
        path__startswith=old_prefix,
    ).values_list('pk', 'path')
    # LIKE is case-insensitive on some backends
    descendant_ids = [
        pk for pk, path in candidates if path.startswith(old_prefix)
    ]
    if not descendant_ids:
        return 0

    # Substr is 1-based: keep everything from the '/' after the old path
    return Folder.objects.filter(pk__in=descendant_ids).update(
        path=Concat(
            Value(new_path),
            Substr('path', len(old_path) + 1),
            output_field=CharField(),
        ),
        modified_at=timezone.now(),
    )


def delete_folder(user: _User, folder_id: int) -> Folder:
    """Soft delete an empty folder.

    Args:
        user: Folder owner.
        folder_id: ID of the folder.

    Returns:
        Deleted Folder instance.

    Raises:
        NotFoundError: If folder is missing, deleted or foreign-owned.
        FolderNotEmptyError: If it has live child folders or files.
    """
    with transaction.atomic():
        folder = get_folder(user, folder_id, for_update=True)
        folder_count = Folder.objects.filter(user=user, parent=folder).count()
        file_count = File.objects.filter(user=user, folder=folder).count()

        if folder_count or file_count:
            logger.warning(
                'Refusing to delete non-empty folder %s (ID: %d)',
                folder.path,
                folder.pk,
            )
            raise FolderNotEmptyError(folder.pk, folder_count, file_count)

        folder.is_deleted = True
        folder.deleted_at = timezone.now()
        folder.save(update_fields=['is_deleted', 'deleted_at', 'modified_at'])

    logger.info('Folder deleted: %s (ID: %d)', folder.path, folder.pk)
    return folder
