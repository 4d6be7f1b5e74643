"""
Cache invalidation tests. Analytics snapshots are dropped only once the
write that changed them is committed.
"""
from unittest.mock import patch

from core.cache import analytics_cache_key, invalidate_client_cache_on_commit
from services.client_data import create_client_task


def test_task_write_invalidates_after_commit(db_session, coach_profile, client_profile, assign):
    assign(coach_profile, client_profile)

    with patch("core.cache.delete_cache") as delete_cache:
        create_client_task(db_session, coach_profile, client_profile.id, title="Sleep log", pillar_key="self_care")
        delete_cache.assert_not_called()

        db_session.commit()

    delete_cache.assert_called_once_with(analytics_cache_key(client_profile.id))


def test_rollback_discards_pending_invalidation(db_session, client_profile):
    with patch("core.cache.delete_cache") as delete_cache:
        invalidate_client_cache_on_commit(db_session, client_profile.id)
        db_session.rollback()
        db_session.commit()

    delete_cache.assert_not_called()


def test_savepoint_rollback_keeps_pending_invalidation(db_session, client_profile):
    with patch("core.cache.delete_cache") as delete_cache:
        invalidate_client_cache_on_commit(db_session, client_profile.id)
        savepoint = db_session.begin_nested()
        savepoint.rollback()
        db_session.commit()

    delete_cache.assert_called_once_with(analytics_cache_key(client_profile.id))


def test_one_delete_per_client(db_session, client_profile):
    with patch("core.cache.delete_cache") as delete_cache:
        invalidate_client_cache_on_commit(db_session, client_profile.id)
        invalidate_client_cache_on_commit(db_session, client_profile.id)
        db_session.commit()

    assert delete_cache.call_count == 1
