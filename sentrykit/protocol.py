"""Event payload types and their JSON wire representation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

TRANSACTION_TYPE = "transaction"
SCHEME_HTTP = "http"
SCHEME_HTTPS = "https"

_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
)


class Level(str, Enum):
    """Severity of an event."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


def sensitive_headers() -> set[str]:
    """Return the header names withheld unless personal data may be sent."""
    return {"Authorization", "Cookie", "X-Forwarded-For", "X-Real-Ip"}


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if not offset:
        return text + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    hours, rest = divmod(abs(total), 3600)
    return f"{text}{sign}{hours:02d}:{rest // 60:02d}"


def _level_value(level: Any) -> Any:
    return level.value if isinstance(level, Enum) else level


def _payload(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    return to_dict() if callable(to_dict) else value


def _compact(pairs: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in pairs.items() if value}


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"cannot serialize {type(value).__name__}")


def _dumps(payload: Any) -> str:
    return json.dumps(payload, default=_json_default, ensure_ascii=False, separators=(",", ":"))


@dataclass
class SdkPackage:
    """A package installed alongside the SDK."""

    name: str = ""
    version: str = ""


@dataclass
class SdkInfo:
    """Metadata about the SDK in use."""

    name: str = ""
    version: str = ""
    integrations: list[str] = field(default_factory=list)
    packages: list[SdkPackage] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "name": self.name,
            "version": self.version,
            "integrations": list(self.integrations),
            "packages": [
                _compact({"name": package.name, "version": package.version})
                for package in self.packages
            ],
        })


@dataclass
class Breadcrumb:
    """An application event that happened before an event was captured."""

    type: str = ""
    category: str = ""
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    level: Any = ""
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        payload = _compact({
            "type": self.type,
            "category": self.category,
            "message": self.message,
            "data": dict(self.data),
            "level": _level_value(self.level),
        })
        if self.timestamp is not None:
            payload["timestamp"] = _format_time(self.timestamp)
        return payload

    def to_json(self) -> str:
        return _dumps(self.to_dict())


@dataclass
class User:
    """The user associated with an event."""

    id: str = ""
    email: str = ""
    ip_address: str = ""
    username: str = ""
    name: str = ""
    segment: str = ""
    data: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any((
            self.id, self.email, self.ip_address, self.username,
            self.name, self.segment, self.data,
        ))

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "id": self.id,
            "email": self.email,
            "ip_address": self.ip_address,
            "username": self.username,
            "name": self.name,
            "segment": self.segment,
            "data": dict(self.data),
        })


def _canonical_header_key(key: str) -> str:
    if not key or any(char not in _TOKEN_CHARS for char in key):
        return key
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def _split_host_port(address: str) -> Optional[tuple[str, str]]:
    if address.startswith("["):
        end = address.find("]")
        if end < 0 or address[end + 1:end + 2] != ":":
            return None
        host, port = address[1:end], address[end + 2:]
    else:
        host, sep, port = address.rpartition(":")
        if not sep or ":" in host:
            return None
    if any(bracket in host + port for bracket in "[]") or ":" in port:
        return None
    return host, port


@dataclass
class Request:
    """An HTTP request related to an event."""

    url: str = ""
    method: str = ""
    data: str = ""
    query_string: str = ""
    cookies: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_http(
        cls,
        method: str,
        host: str,
        path: str,
        query_string: str = "",
        headers: Optional[Mapping[str, Any]] = None,
        remote_addr: str = "",
        tls: bool = False,
        send_default_pii: bool = False,
    ) -> "Request":
        """Describe an incoming HTTP request; the body is never read.

        Header values may be strings or lists of strings. Cookies, the remote
        address and sensitive headers are kept only with ``send_default_pii``.
        """
        grouped: dict[str, list[str]] = {}
        for key, value in (headers or {}).items():
            values = [value] if isinstance(value, str) else list(value)
            grouped.setdefault(_canonical_header_key(key), []).extend(values)

        def first(name: str) -> str:
            values = grouped.get(name)
            return values[0] if values else ""

        scheme = SCHEME_HTTPS if tls or first("X-Forwarded-Proto") == "https" else SCHEME_HTTP
        cookies = ""
        env: dict[str, str] = {}
        if send_default_pii:
            cookies = first("Cookie")
            collected = {key: ",".join(values) for key, values in grouped.items()}
            split = _split_host_port(remote_addr)
            if split is not None:
                env = {"REMOTE_ADDR": split[0], "REMOTE_PORT": split[1]}
        else:
            hidden = sensitive_headers()
            collected = {
                key: ",".join(values) for key, values in grouped.items() if key not in hidden
            }
        collected["Host"] = host

        return cls(
            url=f"{scheme}://{host}{path}",
            method=method,
            query_string=query_string,
            cookies=cookies,
            headers=collected,
            env=env,
        )

    def to_dict(self) -> dict[str, Any]:
        return _compact({
            "url": self.url,
            "method": self.method,
            "data": self.data,
            "query_string": self.query_string,
            "cookies": self.cookies,
            "headers": dict(self.headers),
            "env": dict(self.env),
        })


@dataclass
class ExceptionValue:
    """An error that occurred; ``type`` is the issue title, ``value`` its subtitle."""

    type: str = ""
    value: str = ""
    module: str = ""
    thread_id: str = ""
    stacktrace: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload = _compact({
            "type": self.type,
            "value": self.value,
            "module": self.module,
            "thread_id": self.thread_id,
        })
        if self.stacktrace is not None:
            payload["stacktrace"] = _payload(self.stacktrace)
        return payload


@dataclass
class TransactionInfo:
    """How the name of a transaction was determined."""

    source: str = ""


@dataclass
class Thread:
    """A thread running at the time of an event."""

    id: str = ""
    name: str = ""
    stacktrace: Any = None
    crashed: bool = False
    current: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = _compact({"id": self.id, "name": self.name})
        if self.stacktrace is not None:
            payload["stacktrace"] = _payload(self.stacktrace)
        payload.update(_compact({"crashed": self.crashed, "current": self.current}))
        return payload


@dataclass
class EventHint:
    """Extra information that travels with an event but is not sent."""

    data: Any = None
    event_id: str = ""
    original_exception: Optional[BaseException] = None
    recovered_exception: Any = None
    context: Any = None
    request: Any = None
    response: Any = None


@dataclass
class Event:
    """The data structure sent to the server."""

    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    contexts: dict[str, dict[str, Any]] = field(default_factory=dict)
    dist: str = ""
    environment: str = ""
    event_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    fingerprint: list[str] = field(default_factory=list)
    level: Any = ""
    message: str = ""
    platform: str = ""
    release: str = ""
    sdk: SdkInfo = field(default_factory=SdkInfo)
    server_name: str = ""
    threads: list[Thread] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    transaction: str = ""
    user: User = field(default_factory=User)
    logger: str = ""
    modules: dict[str, str] = field(default_factory=dict)
    request: Optional[Request] = None
    exception: list[ExceptionValue] = field(default_factory=list)
    # Only meaningful for transactions.
    type: str = ""
    start_time: Optional[datetime] = None
    spans: list[Any] = field(default_factory=list)
    transaction_info: Optional[TransactionInfo] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the wire payload; transaction fields appear only for transactions."""
        payload: dict[str, Any] = _compact({
            "breadcrumbs": [_payload(crumb) for crumb in self.breadcrumbs],
            "contexts": dict(self.contexts),
            "dist": self.dist,
            "environment": self.environment,
            "event_id": self.event_id,
            "extra": dict(self.extra),
            "fingerprint": list(self.fingerprint),
            "level": _level_value(self.level),
            "message": self.message,
            "platform": self.platform,
            "release": self.release,
        })
        payload["sdk"] = self.sdk.to_dict()
        payload.update(_compact({
            "server_name": self.server_name,
            "threads": [_payload(thread) for thread in self.threads],
            "tags": dict(self.tags),
            "transaction": self.transaction,
        }))
        payload["user"] = self.user.to_dict()
        payload.update(_compact({
            "logger": self.logger,
            "modules": dict(self.modules),
        }))
        if self.request is not None:
            payload["request"] = self.request.to_dict()
        if self.exception:
            payload["exception"] = [_payload(value) for value in self.exception]

        if self.type == TRANSACTION_TYPE:
            payload["type"] = self.type
            if self.spans:
                payload["spans"] = [_payload(span) for span in self.spans]
            if self.transaction_info is not None:
                payload["transaction_info"] = _compact({"source": self.transaction_info.source})
            if self.start_time is not None:
                payload["start_timestamp"] = _format_time(self.start_time)
        if self.timestamp is not None:
            payload["timestamp"] = _format_time(self.timestamp)
        return payload

    def to_json(self) -> str:
        return _dumps(self.to_dict())


def new_event() -> Event:
    """Create an event with fresh, empty collections."""
    return Event()