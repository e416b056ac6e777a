"""ShortLink expiry and cache TTL rules."""

import datetime
import uuid

import pytest

from shortener.models import ShortLink, utcnow

NOW = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


def make_link(expires_at: datetime.datetime | None = None) -> ShortLink:
    return ShortLink(
        id=uuid.uuid4(),
        owner_id=None,
        long_url="https://example.com",
        short_code="abc123",
        clicks=0,
        is_anonymous=True,
        expires_at=expires_at,
    )


def test_permanent_link_never_expires() -> None:
    link = make_link()
    assert not link.is_expired(NOW)
    assert link.cache_ttl_seconds(NOW, default=86400) == 86400


@pytest.mark.parametrize(
    "offset, expired",
    [
        (datetime.timedelta(seconds=-1), True),
        (datetime.timedelta(0), True),
        (datetime.timedelta(seconds=1), False),
    ],
)
def test_is_expired_boundary(offset: datetime.timedelta, expired: bool) -> None:
    assert make_link(expires_at=NOW + offset).is_expired(NOW) is expired


def test_naive_timestamps_are_treated_as_utc() -> None:
    # SQLite hands timestamps back without tzinfo.
    link = make_link(expires_at=(NOW + datetime.timedelta(hours=1)).replace(tzinfo=None))
    assert not link.is_expired(NOW)
    assert link.cache_ttl_seconds(NOW, default=86400) == 3600


def test_ttl_tracks_remaining_lifetime() -> None:
    link = make_link(expires_at=NOW + datetime.timedelta(hours=168))
    assert link.cache_ttl_seconds(NOW, default=86400) == 168 * 3600


def test_ttl_never_below_one_second() -> None:
    link = make_link(expires_at=NOW + datetime.timedelta(milliseconds=200))
    assert link.cache_ttl_seconds(NOW, default=86400) == 1


def test_utcnow_is_aware() -> None:
    assert utcnow().tzinfo is not None
