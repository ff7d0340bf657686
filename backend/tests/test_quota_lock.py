from datetime import timedelta

import pytest

from app.models.quota_lock import ApiQuotaLock
from app.services.quota_lock import QuotaLockService, lock_seconds_for
from app.utils.dates import utcnow


def test_no_lock_is_inactive(db):
    state = QuotaLockService(db).get_state()

    assert state.active is False
    assert state.retry_after_seconds == 0


def test_lock_is_active_until_it_expires(db):
    service = QuotaLockService(db)
    now = utcnow()

    service.set_lock(429, 300, reason="rate limited", now=now)

    assert service.get_state(now=now + timedelta(seconds=10)).retry_after_seconds == 290
    assert service.get_state(now=now + timedelta(seconds=299)).active is True
    expired = service.get_state(now=now + timedelta(seconds=301))
    assert expired.active is False
    assert expired.retry_after_seconds == 0


def test_shorter_lock_never_shortens_existing(db):
    service = QuotaLockService(db)
    now = utcnow()

    service.set_lock(402, 3600, now=now)
    state = service.set_lock(429, 60, now=now)

    assert state.retry_after_seconds == 3600
    assert state.last_status == 429


def test_longer_lock_extends(db):
    service = QuotaLockService(db)
    now = utcnow()

    service.set_lock(429, 60, now=now)
    state = service.set_lock(402, 3600, now=now)

    assert state.retry_after_seconds == 3600
    assert db.query(ApiQuotaLock).count() == 1


def test_lock_lasts_at_least_one_second(db):
    service = QuotaLockService(db)
    now = utcnow()

    state = service.set_lock(429, 0, now=now)

    assert state.active is True
    assert state.retry_after_seconds == 1


def test_locks_are_per_key(db):
    QuotaLockService(db, key="other").set_lock(429, 300)

    assert QuotaLockService(db).get_state().active is False


@pytest.mark.parametrize("status, hint, expected", [
    (402, None, 3600),
    (429, None, 300),
    (402, 90, 90),
    (429, 0, 300),
])
def test_lock_seconds_policy(status, hint, expected):
    assert lock_seconds_for(status, hint) == expected
