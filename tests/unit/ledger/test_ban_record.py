from datetime import UTC, datetime, timedelta

import pytest

from share_guard.ledger.models import BanRecord


def test_to_dict_from_dict_keeps_fields():
    banned = datetime(2025, 9, 4, 10, 0, tzinfo=UTC)
    record = BanRecord(
        identity="user@x",
        banned_at=banned,
        expires_at=banned + timedelta(minutes=5),
        reason="r",
        addresses=("198.51.100.1",),
    )
    assert BanRecord.from_dict("user@x", record.to_dict()) == record


def test_naive_and_zulu_timestamps_are_utc():
    record = BanRecord.from_dict(
        "user@x",
        {"banned_at": "2025-09-04T10:00:00", "expires_at": "2025-09-04T10:05:00Z"},
    )
    assert record.banned_at.tzinfo is not None
    assert record.expires_at == datetime(2025, 9, 4, 10, 5, tzinfo=UTC)


def test_epoch_and_zero_expiry():
    record = BanRecord.from_dict("user@x", {"banned_at": 1_700_000_000, "expires_at": 0})
    assert record.banned_at == datetime.fromtimestamp(1_700_000_000, UTC)
    assert record.unlimited
    assert not record.is_expired(datetime(2100, 1, 1, tzinfo=UTC))


def test_missing_banned_at_is_rejected():
    with pytest.raises(ValueError):
        BanRecord.from_dict("user@x", {"expires_at": None})
