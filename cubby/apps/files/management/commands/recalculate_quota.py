"""Management command to audit storage usage against live files."""

import logging
from typing import Any, final

from typing_extensions import override

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from cubby.apps.files.logic.quota_operations import (
    calculate_usage,
    get_or_create_quota,
    recalculate_usage,
)

User = get_user_model()
logger = logging.getLogger(__name__)


@final
class Command(BaseCommand):
    """Recompute used space from the sizes of live files."""

    help = 'Recalculate used storage for users, correcting quota drift'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--user',
            dest='username',
            default=None,
            help='Only audit this username (default: all users)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report drift without fixing it',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the audit.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        users = User.objects.order_by('pk')
        if options['username']:
            users = users.filter(username=options['username'])
            if not users.exists():
                raise CommandError(f'User not found: {options["username"]}')

        drifted = 0
        for user in users.iterator():
            recorded = get_or_create_quota(user).used_bytes
            actual = calculate_usage(user)
            if recorded == actual:
                continue

            drifted += 1
            self.stdout.write(
                f'{user.username}: recorded {recorded}, actual {actual}',
            )
            if not dry_run:
                recalculate_usage(user)

        if dry_run:
            summary = f'Found {drifted} users with drifted usage'
        else:
            summary = f'Fixed usage for {drifted} users'
        self.stdout.write(self.style.SUCCESS(summary))
