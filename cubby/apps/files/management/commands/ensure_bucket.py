"""Management command to provision the object store bucket."""

import logging
from typing import Any, final

from typing_extensions import override

from django.core.management.base import BaseCommand, CommandError

from cubby.apps.files.exceptions import StorageUnavailableError
from cubby.apps.files.infrastructure.storage import get_object_store

logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Create the files bucket if it does not exist yet."""

    help = 'Create the object store bucket for user files (idempotent)'

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Args:
            args: Positional arguments (unused).
            options: Command options (unused).
        """
        storage = get_object_store()

        try:
            created = storage.ensure_bucket()
        except StorageUnavailableError as exc:
            raise CommandError(
                f'Cannot provision bucket {storage.bucket_name}: {exc}',
            ) from exc

        if created:
            message = f'Created bucket {storage.bucket_name}'
        else:
            message = f'Bucket {storage.bucket_name} already exists'
        self.stdout.write(self.style.SUCCESS(message))
