"""Management command to delete stored objects no file references."""

import logging
from datetime import timedelta
from typing import Any, Final, final

from typing_extensions import override

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from cubby.apps.files.exceptions import StorageUnavailableError
from cubby.apps.files.infrastructure.metadata import (
    USER_KEYS_ROOT,
    extract_key_owner,
)
from cubby.apps.files.infrastructure.storage import get_object_store
from cubby.apps.files.models import File

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Reclaim objects left behind by failed uploads or rollbacks.

    An object is an orphan when no live File row points at its key.
    Objects younger than ``FILES_ORPHAN_GRACE_HOURS`` are skipped, so
    uploads still waiting for their row are left alone.
    """

    help = 'Delete stored objects that no live file references'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max objects to delete (default: {_DEFAULT_BATCH_SIZE})',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the sweep.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        storage = get_object_store()
        cutoff = timezone.now() - timedelta(
            hours=settings.FILES_ORPHAN_GRACE_HOURS,
        )

        self.stdout.write(
            f'Looking for unreferenced objects older than {cutoff}',
        )

        count = 0
        failed = 0
        for key, last_modified in storage.iter_objects(USER_KEYS_ROOT):
            if count + failed >= batch_size:
                break
            if last_modified > cutoff or not self._is_orphan(key):
                continue

            if dry_run:
                self.stdout.write(f'Would delete: {key}')
                count += 1
                continue

            try:
                storage.delete_object(key)
            except StorageUnavailableError as exc:
                self.stderr.write(f'Failed to delete {key}: {exc}')
                failed += 1
                continue

            logger.info('Purged orphaned object: %s', key)
            count += 1

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would purge {count} orphaned objects'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Purged {count} orphaned objects, {failed} failed',
                ),
            )

    def _is_orphan(self, key: str) -> bool:
        if extract_key_owner(key) is None:
            return False
        return not File.objects.filter(s3_key=key).exists()
