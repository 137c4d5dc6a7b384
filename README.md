# sentrykit

Building blocks for an error-reporting client. The package has no dependencies
beyond the standard library.

## Modules

### `sentrykit.protocol`

The event payload types: `Event`, `Breadcrumb`, `User`, `Request`,
`ExceptionValue`, `Thread`, `SdkInfo`, `SdkPackage`, `TransactionInfo`,
`EventHint` and the `Level` enum (`DEBUG`, `INFO`, `WARNING`, `ERROR`,
`FATAL`).

- `to_dict()` and `to_json()` produce the wire representation. Empty fields
  are left out. A timestamp that is `None` is left out. The transaction-only
  fields (`type`, `spans`, `transaction_info`, `start_timestamp`) appear only
  when `Event.type` is `"transaction"`.
- `Request.from_http(method, host, path, query_string, headers, remote_addr,
  tls, send_default_pii)` describes an incoming request without reading its
  body.
  - Header values may be strings or lists of strings.
  - Unless `send_default_pii` is true, the cookies, the remote address and the
    headers named by `sensitive_headers()` are dropped. Those headers are
    `Authorization`, `Cookie`, `X-Forwarded-For` and `X-Real-Ip`.
- `new_event()` returns an event with empty collections.

### `sentrykit.ratelimit`

Rate limits are kept in a `RateLimits` dict that maps a `Category` to a
deadline (`datetime`). The categories are `Category.ALL`, `Category.ERROR` and
`Category.TRANSACTION`. A category is limited while its own deadline, or the
deadline of `Category.ALL`, lies in the future.

- `from_response(status_code, headers, now)` reads `X-Sentry-Rate-Limits`.
  If that header is absent and the status is 429, it reads `Retry-After`
  instead, falling back to one minute.
- `parse_x_sentry_rate_limits(value, now)` parses the rate-limits header.
  `parse_xsrl_retry_after(value, now)` parses the seconds part of one of its
  entries.
- `parse_retry_after(value, now)` parses a `Retry-After` value, which is
  either seconds or an RFC 1123 date. On bad input it raises
  `InvalidRetryAfter`, whose `deadline` attribute holds the one-minute
  fallback.
- `RateLimits.deadline()`, `is_rate_limited()` and `merge()` query and
  combine limits. `merge()` keeps the later deadline.

### `sentrykit.baggage`

W3C baggage parsing, validation and encoding. Duplicate keys are resolved
last-one-wins.

- `parse_baggage(text)` parses a header value into an immutable `Baggage`.
- `new_member(key, value, *properties)` creates a validated `Member` and
  URL-decodes its value.
- `new_key_property(key)` and `new_key_value_property(key, value)` create
  properties.
- `new_baggage(*members)` builds baggage from members.
- `Baggage.member()`, `members()`, `set_member()`, `delete_member()` and
  `len()` work on the members. `str()` encodes the baggage.
- The limits are 180 members, 4096 bytes per member and 8192 bytes per string.
  Violations raise `BaggageError`.

### `sentrykit.integrations`

Event processors. Each has a `processor(event, hint)` method.

- `ModulesIntegration` sets `event.modules` from the distributions installed
  in the interpreter's site directories, read once. The build information
  loader can be supplied to the constructor. `extract_modules(BuildInfo)`
  turns a `BuildInfo` / `BuildModule` tree into a path-to-version map, noting
  replacements as `"v1 => other/path v2"`.
- `EnvironmentIntegration` fills in missing values in the `device` context
  (`arch`, `num_cpu`), the `os` context (`name`) and the `runtime` context
  (`name`, `version`, `num_threads`). Existing values are kept.
- `IgnoreErrorsIntegration(patterns)` returns `None` for an event whose message
  or any exception type or value matches one of the patterns.
  - Patterns that do not compile are skipped; see
    `transform_strings_into_regexps`.
  - `get_ignore_errors_suspects(event)` lists the strings that are checked.

## Examples

Rate limits from a response:

```python
from datetime import datetime, timezone
from sentrykit.ratelimit import Category, from_response

now = datetime.now(timezone.utc)
limits = from_response(429, {"Retry-After": "100"}, now)
limits.is_rate_limited(Category.ERROR, now)   # True
```

Building and serialising an event:

```python
from sentrykit.protocol import Level, new_event

event = new_event()
event.message = "request timeout"
event.level = Level.ERROR
print(event.to_json())
```

Parsing baggage:

```python
from sentrykit.baggage import parse_baggage

bag = parse_baggage("sentry-trace_id=abc,sentry-environment=prod")
bag.member("sentry-environment").value   # "prod"
```

Dropping events that match ignored error patterns:

```python
from sentrykit.integrations import IgnoreErrorsIntegration

integration = IgnoreErrorsIntegration(["(?i)timeout"])
integration.processor(event, None)   # None: the message matches
```

## What it does not do

There is no client, hub, scope or transport. Nothing here captures
exceptions, sends events over the network or applies rate limits to outgoing
requests. The package supplies the types, parsers and processors that such a
client would use.

## Running the tests

```
pip install -e ".[test]"
pytest
```