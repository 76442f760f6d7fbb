"""Resolve user expiration intent into an offset from key creation time.

Expirations are carried as offsets (seconds after creation), matching the
OpenPGP Key Expiration Time subpacket, so re-inspecting a certificate later
yields the same value no matter what the current time is.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from ..utils.errors import InvalidExpiration

# Applied whenever the caller expresses no expiration intent at all.
DEFAULT_EXPIRATION = timedelta(days=1095, seconds=62781)

MAX_OFFSET = 0xFFFFFFFF

_DURATION = re.compile(r"^\s*(\d+)\s*([ymwds]?)\s*$", re.IGNORECASE)
_UNIT_SECONDS = {
    "y": 365 * 86400,
    "m": 30 * 86400,
    "w": 7 * 86400,
    "d": 86400,
    "s": 1,
    "": 1,
}
_TIMESTAMP_FORMATS = (
    "%Y%m%dT%H%M%SZ",
    "%Y%m%dT%H%MZ",
    "%Y%m%dT%H%M%S",
    "%Y%m%d",
)

Timestamp = Union[int, float, datetime]


class ExpirationKind(str, Enum):
    NONE = "none"
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


@dataclass(frozen=True)
class ExpirationPolicy:
    kind: ExpirationKind
    value: Optional[int] = None

    @classmethod
    def never(cls) -> "ExpirationPolicy":
        return cls(ExpirationKind.NONE)

    @classmethod
    def absolute(cls, when: Timestamp) -> "ExpirationPolicy":
        return cls(ExpirationKind.ABSOLUTE, to_epoch(when))

    @classmethod
    def relative(cls, duration: Union[int, timedelta]) -> "ExpirationPolicy":
        if isinstance(duration, timedelta):
            duration = int(duration.total_seconds())
        return cls(ExpirationKind.RELATIVE, int(duration))

    @classmethod
    def default(cls) -> "ExpirationPolicy":
        return cls.relative(DEFAULT_EXPIRATION)

    @classmethod
    def parse(cls, expires: Optional[str] = None, expires_in: Optional[str] = None) -> Optional["ExpirationPolicy"]:
        """Build a policy from CLI-style strings; None means no intent was given"""
        if expires and expires_in:
            raise InvalidExpiration("--expires and --expires-in are mutually exclusive")
        if expires:
            if expires.strip().lower() == "never":
                return cls.never()
            return cls.absolute(parse_timestamp(expires))
        if expires_in:
            if expires_in.strip().lower() == "never":
                return cls.never()
            return cls.relative(parse_duration(expires_in))
        return None


@dataclass(frozen=True)
class ResolvedExpiration:
    created: int
    offset: Optional[int]

    @property
    def expires_at(self) -> Optional[int]:
        return None if self.offset is None else self.created + self.offset

    def describe(self) -> str:
        if self.offset is None:
            return "never"
        return f"creation time + {format_duration(self.offset)}"


def to_epoch(value: Timestamp) -> int:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    return int(value)


def parse_timestamp(text: str) -> datetime:
    text = text.strip()
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidExpiration(f"Not an ISO 8601 timestamp: {text!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_duration(text: str) -> int:
    match = _DURATION.match(text)
    if not match:
        raise InvalidExpiration(f"Not a duration (N[ymwds]): {text!r}")
    count, unit = match.groups()
    return int(count) * _UNIT_SECONDS[unit.lower()]


def format_duration(seconds: int) -> str:
    """ISO 8601 duration with days and seconds only: P1D, P1095DT62781S, PT30S"""
    days, rest = divmod(int(seconds), 86400)
    text = "P"
    if days:
        text += f"{days}D"
    if rest or not days:
        text += f"T{rest}S"
    return text


def resolve(creation_time: Timestamp, policy_input: Optional[ExpirationPolicy]) -> ResolvedExpiration:
    """Validate an expiration intent against a creation time.

    Raises InvalidExpiration unless the resolved expiry is strictly after
    creation and fits the 32-bit OpenPGP field. Absent intent resolves to
    DEFAULT_EXPIRATION.
    """
    created = to_epoch(creation_time)
    policy = policy_input if policy_input is not None else ExpirationPolicy.default()

    if policy.kind is ExpirationKind.NONE:
        return ResolvedExpiration(created, None)
    if policy.value is None:
        raise InvalidExpiration(f"{policy.kind.value} expiration without a value")
    if policy.kind is ExpirationKind.ABSOLUTE:
        offset = policy.value - created
    else:
        offset = policy.value

    if offset <= 0:
        raise InvalidExpiration(
            f"Expiration {format_utc(created + offset)} is not after creation time {format_utc(created)}"
        )
    if offset > MAX_OFFSET:
        raise InvalidExpiration("Expiration is too far in the future")
    return ResolvedExpiration(created, offset)


def format_utc(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
