"""Business logic for storage quota operations."""

import dataclasses
import logging
from typing import Any

from django.conf import settings
from django.db import transaction
from django.db.models import F, Sum  # noqa: WPS347

from cubby.apps.files.exceptions import QuotaExceededError
from cubby.apps.files.models import File, UserQuota

# User type for Django's dynamic user model
_User = Any

# Field name constant to avoid string literal over-use
_USED_BYTES_FIELD = 'used_bytes'  # noqa: WPS226

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class UsageSummary:
    """Snapshot of a user's storage consumption."""

    quota_bytes: int
    used_bytes: int

    @property
    def available_bytes(self) -> int:
        """Bytes left before the ceiling (never negative)."""
        return max(0, self.quota_bytes - self.used_bytes)

    @property
    def percent_used(self) -> float:
        """Share of the quota in use, 0-100+."""
        if self.quota_bytes == 0:
            return 0.0
        return self.used_bytes / self.quota_bytes * 100


def get_or_create_quota(user: _User) -> UserQuota:
    """Get or create quota for user (on-demand creation).

    Args:
        user: User to get quota for.

    Returns:
        UserQuota instance for the user.
    """
    quota, created = UserQuota.objects.get_or_create(
        user=user,
        defaults={'quota_bytes': settings.FILES_DEFAULT_QUOTA_BYTES},
    )
    if created:
        logger.info(
            'Created quota for user %s: %d bytes',
            user.username,
            quota.quota_bytes,
        )
    return quota


def get_usage_summary(user: _User) -> UsageSummary:
    """Get quota, usage and availability for a user."""
    quota = get_or_create_quota(user)
    return UsageSummary(
        quota_bytes=quota.quota_bytes,
        used_bytes=quota.used_bytes,
    )


def check_quota(quota: UserQuota, size_bytes: int) -> None:
    """Check a quota snapshot has room for an upload.

    The snapshot may be stale by the time the upload commits;
    ``increment_usage`` re-checks against the stored value.

    Args:
        quota: Quota loaded at the start of the request.
        size_bytes: Size of the upload in bytes.

    Raises:
        QuotaExceededError: If upload would exceed quota.
    """
    if not quota.has_space_for(size_bytes):
        logger.warning(
            'Quota exceeded for user %s: need %d, have %d available',
            quota.user.username,
            size_bytes,
            quota.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=quota.quota_bytes,
            used_bytes=quota.used_bytes,
            required_bytes=size_bytes,
        )


def increment_usage(user: _User, size_bytes: int) -> None:
    """Atomically increment user's storage usage within the quota.

    A single conditional UPDATE applies the increment only when
    ``used_bytes + size_bytes <= quota_bytes``, so concurrent uploads
    cannot jointly overshoot the ceiling.

    Args:
        user: User to increment usage for.
        size_bytes: Bytes to add to usage.

    Raises:
        QuotaExceededError: If the increment would exceed quota.
    """
    get_or_create_quota(user)

    with transaction.atomic():
        updated = UserQuota.objects.filter(
            user=user,
            used_bytes__lte=F('quota_bytes') - size_bytes,
        ).update(
            used_bytes=F(_USED_BYTES_FIELD) + size_bytes,
        )

    if updated == 0:
        quota = UserQuota.objects.get(user=user)
        logger.warning(
            'Quota commit rejected for user %s: need %d, have %d available',
            user.username,
            size_bytes,
            quota.available_bytes(),
        )
        raise QuotaExceededError(
            quota_bytes=quota.quota_bytes,
            used_bytes=quota.used_bytes,
            required_bytes=size_bytes,
        )

    logger.debug(
        'Incremented usage for user %s by %d bytes',
        user.username,
        size_bytes,
    )


def decrement_usage(user: _User, size_bytes: int) -> None:
    """Atomically decrement user's storage usage.

    Prevents negative values by clamping to 0.

    Args:
        user: User to decrement usage for.
        size_bytes: Bytes to subtract from usage.
    """
    with transaction.atomic():
        # Get current quota to check if decrement would go negative
        try:
            quota = UserQuota.objects.select_for_update().get(user=user)
        except UserQuota.DoesNotExist:
            # No quota exists, nothing to decrement
            logger.debug(
                'No quota exists for user %s, skipping decrement',
                user.username,
            )
            return

        # Calculate new usage, clamping to 0
        new_usage = max(0, quota.used_bytes - size_bytes)
        quota.used_bytes = new_usage
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.debug(
        'Decremented usage for user %s by %d bytes (new: %d)',
        user.username,
        size_bytes,
        new_usage,
    )


def calculate_usage(user: _User) -> int:
    """Sum sizes of the user's live files."""
    return File.objects.filter(user=user).aggregate(
        total=Sum('size_bytes'),
    )['total'] or 0


def recalculate_usage(user: _User) -> int:
    """Recalculate user's storage usage from actual files.

    Corrects drift left by failed decrements or bulk operations.
    Deleted files are not counted, their objects are already gone.

    Args:
        user: User to recalculate usage for.

    Returns:
        New calculated usage in bytes.
    """
    with transaction.atomic():
        get_or_create_quota(user)
        quota = UserQuota.objects.select_for_update().get(user=user)
        total = calculate_usage(user)
        old_usage = quota.used_bytes
        quota.used_bytes = total
        quota.save(update_fields=[_USED_BYTES_FIELD])

    logger.info(
        'Recalculated usage for user %s: %d -> %d bytes',
        user.username,
        old_usage,
        total,
    )

    return total
