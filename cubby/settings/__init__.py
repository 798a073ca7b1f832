"""Main settings file.

Settings are split into components with ``django-split-settings``.
Values come from the environment or ``config/.env``.
"""

from split_settings.tools import include, optional

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/files.py',
    # Local overrides, never committed
    optional('environments/local.py'),
)
