"""Rate limits imposed by the event ingestion pipeline.

A rate limit is a deadline per payload category. A category is limited while
its own deadline, or the deadline of the special ``Category.ALL``, lies in the
future.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

DEFAULT_RETRY_AFTER = timedelta(minutes=1)
NO_DEADLINE = datetime.min.replace(tzinfo=timezone.utc)
TOO_MANY_REQUESTS = 429

# Largest number of whole seconds a signed 64-bit nanosecond count can hold.
_MAX_SECONDS = (2**63 - 1) // 10**9

_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE | re.ASCII,
)
_INT_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_RFC1123_RE = re.compile(
    r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun), ([0-9]{2}) "
    r"(Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) ([0-9]{4}) "
    r"([0-9]{2}):([0-9]{2}):([0-9]{2}) [A-Za-z]{3,}",
    re.ASCII,
)
_MONTHS = {
    name: number
    for number, name in enumerate(
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
        start=1,
    )
}


class Category(str):
    """A payload type that can be rate limited; the empty string means all."""

    ALL: "Category"
    ERROR: "Category"
    TRANSACTION: "Category"

    def label(self) -> str:
        """Return the category formatted for debugging."""
        if not self:
            return "CategoryAll"
        words = (word[:1].upper() + word[1:].lower() for word in self.split())
        return "Category" + "".join(words)

    def __repr__(self) -> str:
        return f"Category({str.__repr__(self)})"


Category.ALL = Category("")
Category.ERROR = Category("error")
Category.TRANSACTION = Category("transaction")

KNOWN_CATEGORIES = frozenset({Category.ALL, Category.ERROR, Category.TRANSACTION})


class InvalidRetryAfter(ValueError):
    """Raised for a retry-after value that cannot be parsed.

    ``deadline`` holds a usable fallback deadline where one applies.
    """

    def __init__(self, message: str, deadline: Optional[datetime] = None) -> None:
        super().__init__(message)
        self.deadline = deadline


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


class RateLimits(dict):
    """Maps categories to the deadlines until which they are rate limited."""

    def deadline(self, category: str) -> datetime:
        """Return the later of the category's deadline and the deadline for all."""
        own = self.get(category, NO_DEADLINE)
        for_all = self.get(Category.ALL, NO_DEADLINE)
        return own if own > for_all else for_all

    def is_rate_limited(self, category: str, now: Optional[datetime] = None) -> bool:
        """Tell whether the category is limited at ``now`` (default: the current time)."""
        return self.deadline(category) > _now(now)

    def merge(self, other: Mapping[str, datetime]) -> None:
        """Merge ``other`` in, keeping the deadline furthest in the future."""
        for category, deadline in other.items():
            if deadline > self.get(category, NO_DEADLINE):
                self[category] = deadline


def _header(headers: Optional[Mapping[str, Any]], name: str) -> str:
    if not headers:
        return ""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            if isinstance(value, str):
                return value
            return next(iter(value), "")
    return ""


def from_response(
    status_code: int,
    headers: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> RateLimits:
    """Build rate limits from an HTTP response's status code and headers."""
    current = _now(now)
    limits = _header(headers, "X-Sentry-Rate-Limits")
    if limits:
        return parse_x_sentry_rate_limits(limits, current)
    if status_code == TOO_MANY_REQUESTS:
        try:
            deadline = parse_retry_after(_header(headers, "Retry-After"), current)
        except InvalidRetryAfter as exc:
            deadline = exc.deadline
        return RateLimits({Category.ALL: deadline})
    return RateLimits()


def parse_x_sentry_rate_limits(value: str, now: Optional[datetime] = None) -> RateLimits:
    """Parse an ``X-Sentry-Rate-Limits`` header value.

    For example ``60:transaction, 2700:default;error;security`` limits
    transactions for 60 seconds and errors for 2700 seconds. Limits for
    unknown categories are ignored.
    """
    current = _now(now)
    limits = RateLimits()
    for limit in value.split(","):
        limit = limit.strip()
        if not limit:
            continue
        components = limit.split(":")
        try:
            retry_after = parse_xsrl_retry_after(components[0].strip(), current)
        except InvalidRetryAfter:
            continue
        categories = components[1] if len(components) > 1 else ""
        for name in categories.split(";"):
            category = Category(name.strip().lower())
            if category not in KNOWN_CATEGORIES:
                continue
            if retry_after > limits.get(category, NO_DEADLINE):
                limits[category] = retry_after
    return limits


def parse_xsrl_retry_after(value: str, now: Optional[datetime] = None) -> datetime:
    """Parse the seconds part of one ``X-Sentry-Rate-Limits`` entry into a deadline.

    The number may be signed and fractional. Negative values, special floats
    and values too large to represent count as zero; fractions round up.
    """
    if not _FLOAT_RE.fullmatch(value):
        raise InvalidRetryAfter("invalid retry-after value")
    number = float(value)
    if math.isinf(number) and "inf" not in value.lower():
        raise InvalidRetryAfter("invalid retry-after value")
    if math.isnan(number) or math.isinf(number):
        seconds = 0
    else:
        seconds = math.ceil(max(number, 0.0))
        if seconds > _MAX_SECONDS:
            seconds = 0
    return _now(now) + timedelta(seconds=seconds)


def _parse_rfc1123(value: str) -> Optional[datetime]:
    match = _RFC1123_RE.fullmatch(value)
    if match is None:
        return None
    day, month, year, hour, minute, second = match.groups()
    try:
        return datetime(
            int(year), _MONTHS[month], int(day),
            int(hour), int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_retry_after(value: str, now: Optional[datetime] = None) -> datetime:
    """Parse a standard ``Retry-After`` header value into a deadline.

    The value is either a non-negative number of seconds or an RFC 1123 date.
    On invalid input ``InvalidRetryAfter`` is raised; its ``deadline`` is one
    minute after ``now``.
    """
    current = _now(now)
    if _INT_RE.fullmatch(value):
        seconds = int(value)
        if seconds >= 0:
            try:
                return current + timedelta(seconds=seconds)
            except OverflowError:
                pass
    else:
        date = _parse_rfc1123(value)
        if date is not None:
            return date
    raise InvalidRetryAfter("invalid input", deadline=current + DEFAULT_RETRY_AFTER)