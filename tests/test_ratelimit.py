from datetime import datetime, timedelta, timezone

import pytest

from sentrykit.ratelimit import (
    DEFAULT_RETRY_AFTER,
    NO_DEADLINE,
    Category,
    InvalidRetryAfter,
    RateLimits,
    from_response,
    parse_retry_after,
    parse_x_sentry_rate_limits,
    parse_xsrl_retry_after,
)

NOW = datetime(2008, 5, 12, 16, 26, 19, tzinfo=timezone.utc)


def after(seconds):
    return NOW + timedelta(seconds=seconds)


@pytest.mark.parametrize(
    "category, want",
    [
        (Category.ALL, "CategoryAll"),
        (Category.ERROR, "CategoryError"),
        (Category.TRANSACTION, "CategoryTransaction"),
        (Category("unknown"), "CategoryUnknown"),
        (Category("two words"), "CategoryTwoWords"),
    ],
)
def test_category_label(category, want):
    assert category.label() == want


@pytest.mark.parametrize(
    "status, headers, want",
    [
        (200, {}, RateLimits()),
        (200, {"Retry-After": ["100"]}, RateLimits()),
        (
            200,
            {"Retry-After": ["100"], "X-Sentry-Rate-Limits": ["50:transaction"]},
            RateLimits({Category.TRANSACTION: after(50)}),
        ),
        (
            200,
            {"X-Sentry-Rate-Limits": ["50:transaction"]},
            RateLimits({Category.TRANSACTION: after(50)}),
        ),
        (429, {}, RateLimits({Category.ALL: NOW + DEFAULT_RETRY_AFTER})),
        (429, {"Retry-After": ["100"]}, RateLimits({Category.ALL: after(100)})),
        (
            429,
            {"X-Sentry-Rate-Limits": ["50:error"]},
            RateLimits({Category.ERROR: after(50)}),
        ),
        (
            429,
            {"Retry-After": ["100"], "X-Sentry-Rate-Limits": ["50:error"]},
            RateLimits({Category.ERROR: after(50)}),
        ),
    ],
)
def test_from_response(status, headers, want):
    assert from_response(status, headers, NOW) == want


def test_from_response_header_lookup_ignores_case():
    got = from_response(200, {"x-sentry-rate-limits": "50:error"}, NOW)
    assert got == RateLimits({Category.ERROR: after(50)})


PLUS5 = after(5)
PLUS10 = after(10)


@pytest.mark.parametrize(
    "limits, want",
    [
        (
            RateLimits(),
            {Category.ALL: NO_DEADLINE, Category.ERROR: NO_DEADLINE,
             Category.TRANSACTION: NO_DEADLINE, Category("unknown"): NO_DEADLINE},
        ),
        (
            RateLimits({Category.ERROR: PLUS5}),
            {Category.ALL: NO_DEADLINE, Category.ERROR: PLUS5,
             Category.TRANSACTION: NO_DEADLINE, Category("unknown"): NO_DEADLINE},
        ),
        (
            RateLimits({Category.ALL: PLUS5}),
            {Category.ALL: PLUS5, Category.ERROR: PLUS5,
             Category.TRANSACTION: PLUS5, Category("unknown"): PLUS5},
        ),
        (
            RateLimits({Category.ERROR: PLUS5, Category.TRANSACTION: PLUS10}),
            {Category.ALL: NO_DEADLINE, Category.ERROR: PLUS5,
             Category.TRANSACTION: PLUS10, Category("unknown"): NO_DEADLINE},
        ),
        (
            RateLimits({Category.ALL: PLUS5, Category.TRANSACTION: PLUS10}),
            {Category.ALL: PLUS5, Category.ERROR: PLUS5,
             Category.TRANSACTION: PLUS10, Category("unknown"): PLUS5},
        ),
        (
            RateLimits({Category.ALL: PLUS10, Category.TRANSACTION: PLUS5}),
            {Category.ALL: PLUS10, Category.ERROR: PLUS10,
             Category.TRANSACTION: PLUS10, Category("unknown"): PLUS10},
        ),
    ],
)
def test_deadline_and_is_rate_limited(limits, want):
    future = NOW + timedelta(hours=1)
    for category, deadline in want.items():
        assert limits.deadline(category) == deadline
        assert limits.is_rate_limited(category, NOW) == (deadline != NO_DEADLINE)
        assert limits.is_rate_limited(category, future) is False


@pytest.mark.parametrize(
    "old, new, want",
    [
        ({}, {}, {}),
        ({}, {Category.ERROR: NOW}, {Category.ERROR: NOW}),
        ({Category.ERROR: NOW}, {}, {Category.ERROR: NOW}),
        (
            {Category.TRANSACTION: NOW},
            {Category.ERROR: NOW},
            {Category.TRANSACTION: NOW, Category.ERROR: NOW},
        ),
        (
            {Category.ERROR: NOW + timedelta(minutes=1)},
            {Category.ERROR: NOW},
            {Category.ERROR: NOW + timedelta(minutes=1)},
        ),
        (
            {Category.ERROR: NOW},
            {Category.ERROR: NOW + timedelta(minutes=1)},
            {Category.ERROR: NOW + timedelta(minutes=1)},
        ),
    ],
)
def test_merge(old, new, want):
    limits = RateLimits(old)
    limits.merge(RateLimits(new))
    assert limits == RateLimits(want)


@pytest.mark.parametrize(
    "text, want",
    [
        ("", {}),
        (",", {}),
        (",,,,", {}),
        (",  ,   ,     ,", {}),
        (":", {}),
        (":::", {}),
        ("::,,:,", {}),
        (":,:;;;:", {}),
        ("1", {Category.ALL: after(1)}),
        ("2::ignored_scope:ignored_reason", {Category.ALL: after(2)}),
        ("3::ignored_scope:ignored_reason", {Category.ALL: after(3)}),
        ("4:error", {Category.ERROR: after(4)}),
        ("5:error;transaction", {Category.ERROR: after(5), Category.TRANSACTION: after(5)}),
        ("6:error, 7:transaction", {Category.ERROR: after(6), Category.TRANSACTION: after(7)}),
        ("8:error;default;unknown", {Category.ERROR: after(8)}),
        ("30:error:scope1, 20:error:scope2, 40:error", {Category.ERROR: after(40)}),
        (
            "30:error:scope1, 20:error:scope2, 40::",
            {Category.ALL: after(40), Category.ERROR: after(30)},
        ),
    ],
)
def test_parse_x_sentry_rate_limits(text, want):
    assert parse_x_sentry_rate_limits(text, NOW) == RateLimits(want)


@pytest.mark.parametrize(
    "text, want",
    [
        ("0", NOW),
        ("1", after(1)),
        ("60", NOW + timedelta(minutes=1)),
        ("3.1", after(4)),
        ("3.5", after(4)),
        ("3.9", after(4)),
        ("100000000000000000", NOW),
        ("-Inf", NOW),
        ("-0", NOW),
        ("-1", NOW),
        ("Inf", NOW),
        ("NaN", NOW),
    ],
)
def test_parse_xsrl_retry_after_valid(text, want):
    assert parse_xsrl_retry_after(text, NOW) == want


@pytest.mark.parametrize("text", ["", "invalid", " 2 ", "6 0"])
def test_parse_xsrl_retry_after_invalid(text):
    with pytest.raises(InvalidRetryAfter):
        parse_xsrl_retry_after(text, NOW)


@pytest.mark.parametrize("text", ["", "x", "-1", "5.0"])
def test_parse_retry_after_invalid(text):
    with pytest.raises(InvalidRetryAfter) as info:
        parse_retry_after(text, NOW)
    assert info.value.deadline == NOW + DEFAULT_RETRY_AFTER


@pytest.mark.parametrize(
    "text, want",
    [
        ("1337", after(1337)),
        ("Fri, 08 Mar 2019 11:17:09 GMT", datetime(2019, 3, 8, 11, 17, 9, tzinfo=timezone.utc)),
    ],
)
def test_parse_retry_after_valid(text, want):
    assert parse_retry_after(text, NOW) == want