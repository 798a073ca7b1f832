"""Tests for purge_orphans management command."""

from io import StringIO

import pytest
from django.core.management import call_command

from cubby.apps.files.exceptions import ObjectNotFoundError

_COMMAND_MODULE = 'cubby.apps.files.management.commands.purge_orphans'


@pytest.fixture
def command_store(object_store, monkeypatch, settings):
    """Object store used by the command, with no grace period.

    Returns:
        ObjectStore fixture.
    """
    settings.FILES_ORPHAN_GRACE_HOURS = 0
    monkeypatch.setattr(
        f'{_COMMAND_MODULE}.get_object_store',
        lambda: object_store,
    )
    return object_store


def _put(store, key: str) -> None:
    store.put_object(key, b'data', content_type='image/png')


def _exists(store, key: str) -> bool:
    try:
        store.head_object(key)
    except ObjectNotFoundError:
        return False
    return True


@pytest.mark.django_db
class TestPurgeOrphansCommand:
    """Tests for purge_orphans management command."""

    def test_purges_unreferenced_objects(self, command_store, user, make_file):
        """Test objects without a live row are deleted."""
        kept = make_file(s3_key=f'users/{user.id}/1-kept.png')
        gone = make_file(s3_key=f'users/{user.id}/2-gone.png', is_deleted=True)
        orphan_key = f'users/{user.id}/3-orphan.png'
        for key in (kept.s3_key, gone.s3_key, orphan_key):
            _put(command_store, key)
        out = StringIO()

        call_command('purge_orphans', stdout=out)

        assert _exists(command_store, kept.s3_key)
        assert not _exists(command_store, gone.s3_key)
        assert not _exists(command_store, orphan_key)
        assert 'Purged 2 orphaned objects, 0 failed' in out.getvalue()

    def test_dry_run_keeps_objects(self, command_store, user):
        """Test dry run only reports."""
        orphan_key = f'users/{user.id}/1-orphan.png'
        _put(command_store, orphan_key)
        out = StringIO()

        call_command('purge_orphans', '--dry-run', stdout=out)

        assert _exists(command_store, orphan_key)
        assert f'Would delete: {orphan_key}' in out.getvalue()
        assert 'Would purge 1 orphaned objects' in out.getvalue()

    def test_skips_recent_objects(self, command_store, user, settings):
        """Test objects inside the grace period are left alone."""
        settings.FILES_ORPHAN_GRACE_HOURS = 24
        orphan_key = f'users/{user.id}/1-fresh.png'
        _put(command_store, orphan_key)
        out = StringIO()

        call_command('purge_orphans', stdout=out)

        assert _exists(command_store, orphan_key)
        assert 'Purged 0 orphaned objects' in out.getvalue()

    def test_skips_keys_without_owner(self, command_store):
        """Test keys outside the per-user layout are never touched."""
        foreign_key = 'users/not-a-user/1-file.png'
        _put(command_store, foreign_key)

        call_command('purge_orphans', stdout=StringIO())

        assert _exists(command_store, foreign_key)

    def test_batch_size_limits_deletes(self, command_store, user):
        """Test at most batch size objects are handled per run."""
        keys = [f'users/{user.id}/{number}-orphan.png' for number in range(3)]
        for key in keys:
            _put(command_store, key)
        out = StringIO()

        call_command('purge_orphans', '--batch-size', '2', stdout=out)

        assert sum(_exists(command_store, key) for key in keys) == 1
        assert 'Purged 2 orphaned objects' in out.getvalue()
