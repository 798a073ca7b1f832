"""Settings of the files app: quotas, allowed types, listings."""

from decouple import Csv

from cubby.settings.components import config

# Quota given to users on their first upload: 10 GB
FILES_DEFAULT_QUOTA_BYTES = config(
    'FILES_DEFAULT_QUOTA_BYTES',
    cast=int,
    default=10 * 1024 * 1024 * 1024,
)

FILES_ALLOWED_MIME_TYPES = config(
    'FILES_ALLOWED_MIME_TYPES',
    cast=Csv(),
    default=(
        'image/jpeg,image/jpg,image/png,image/gif,image/webp,'
        'image/svg+xml,image/bmp,image/tiff,image/heic,image/heif'
    ),
)

# Listing page size and its upper bound
FILES_PAGE_SIZE = config('FILES_PAGE_SIZE', cast=int, default=20)
FILES_MAX_PAGE_SIZE = config('FILES_MAX_PAGE_SIZE', cast=int, default=100)

# Unreferenced objects younger than this are left alone by purge_orphans
FILES_ORPHAN_GRACE_HOURS = config(
    'FILES_ORPHAN_GRACE_HOURS',
    cast=int,
    default=24,
)
