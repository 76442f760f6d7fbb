from datetime import datetime, timedelta, timezone

import pytest

from pgp_guardian.policy.expiration import (
    DEFAULT_EXPIRATION,
    MAX_OFFSET,
    ExpirationKind,
    ExpirationPolicy,
    format_duration,
    parse_duration,
    parse_timestamp,
    resolve,
)
from pgp_guardian.utils.errors import InvalidExpiration

CREATED = 1_700_000_000


def test_absent_intent_uses_default_constant():
    resolved = resolve(CREATED, None)
    assert resolved.offset == 1095 * 86400 + 62781
    assert resolved.offset == int(DEFAULT_EXPIRATION.total_seconds())
    assert resolved.describe() == "creation time + P1095DT62781S"


def test_relative_duration_is_kept_as_offset():
    resolved = resolve(CREATED, ExpirationPolicy.relative(86400))
    assert resolved.offset == 86400
    assert resolved.expires_at == CREATED + 86400


def test_absolute_timestamp_becomes_offset_from_creation():
    when = datetime(2039, 1, 1, 0, 0, 1, tzinfo=timezone.utc)
    resolved = resolve(CREATED, ExpirationPolicy.absolute(when))
    assert resolved.expires_at == int(when.timestamp())
    assert resolved.offset == int(when.timestamp()) - CREATED


def test_never_has_no_offset():
    resolved = resolve(CREATED, ExpirationPolicy.never())
    assert resolved.offset is None
    assert resolved.expires_at is None
    assert resolved.describe() == "never"


def test_creation_time_is_truncated_to_seconds():
    resolved = resolve(CREATED + 0.75, ExpirationPolicy.relative(10))
    assert resolved.created == CREATED


@pytest.mark.parametrize("policy", [
    ExpirationPolicy.absolute(datetime(2021, 1, 1, tzinfo=timezone.utc)),
    ExpirationPolicy.absolute(CREATED),
    ExpirationPolicy.relative(0),
    ExpirationPolicy.relative(-5),
])
def test_expiry_not_after_creation_is_rejected(policy):
    with pytest.raises(InvalidExpiration):
        resolve(CREATED, policy)


def test_offset_must_fit_32_bits():
    with pytest.raises(InvalidExpiration):
        resolve(CREATED, ExpirationPolicy.relative(MAX_OFFSET + 1))
    assert resolve(CREATED, ExpirationPolicy.relative(MAX_OFFSET)).offset == MAX_OFFSET


@pytest.mark.parametrize("text, seconds", [
    ("1d", 86400),
    ("2w", 14 * 86400),
    ("1m", 30 * 86400),
    ("1y", 365 * 86400),
    ("90s", 90),
    ("3600", 3600),
    (" 5D ", 5 * 86400),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "d", "1x", "-1d", "1.5d", "one day"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(InvalidExpiration):
        parse_duration(text)


@pytest.mark.parametrize("text", [
    "20390101T000001Z",
    "2039-01-01T00:00:01Z",
    "2039-01-01T00:00:01+00:00",
    "2039-01-01 00:00:01",
])
def test_parse_timestamp_formats(text):
    assert parse_timestamp(text) == datetime(2039, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


def test_parse_timestamp_date_only():
    assert parse_timestamp("20390101") == datetime(2039, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2039-01-01") == datetime(2039, 1, 1, tzinfo=timezone.utc)


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(InvalidExpiration):
        parse_timestamp("next tuesday")


@pytest.mark.parametrize("seconds, text", [
    (86400, "P1D"),
    (1095 * 86400 + 62781, "P1095DT62781S"),
    (30, "PT30S"),
    (0, "PT0S"),
    (86400 + 1, "P1DT1S"),
])
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text


def test_policy_parse_from_cli_strings():
    assert ExpirationPolicy.parse() is None
    assert ExpirationPolicy.parse(expires="never").kind is ExpirationKind.NONE
    assert ExpirationPolicy.parse(expires_in="never").kind is ExpirationKind.NONE
    assert ExpirationPolicy.parse(expires_in="1d") == ExpirationPolicy.relative(timedelta(days=1))
    absolute = ExpirationPolicy.parse(expires="20390101T000001Z")
    assert absolute.kind is ExpirationKind.ABSOLUTE
    assert absolute.value == int(datetime(2039, 1, 1, 0, 0, 1, tzinfo=timezone.utc).timestamp())


def test_policy_parse_rejects_both_forms():
    with pytest.raises(InvalidExpiration):
        ExpirationPolicy.parse(expires="20390101T000001Z", expires_in="1d")
