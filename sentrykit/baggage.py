"""W3C baggage: list-members with optional properties, parsing and encoding.

Duplicate list-members are resolved last-one-wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterator, Mapping, Optional
from urllib.parse import quote_plus, unquote_to_bytes

MAX_MEMBERS = 180
MAX_BYTES_PER_MEMBER = 4096
MAX_BYTES_PER_BAGGAGE_STRING = 8192

LIST_DELIMITER = ","
KEY_VALUE_DELIMITER = "="
PROPERTY_DELIMITER = ";"

_SPACE = r"[ \t\n\f\r]*"
_KEY_DEF = r"([\x21\x23-\x27\x2A\x2B\x2D\x2E\x30-\x39\x41-\x5a\x5e-\x7a\x7c\x7e]+)"
_VALUE_DEF = r"([\x21\x23-\x2b\x2d-\x3a\x3c-\x5B\x5D-\x7e]*)"
_KEY_VALUE_DEF = (
    _SPACE + _KEY_DEF + _SPACE + KEY_VALUE_DELIMITER + _SPACE + _VALUE_DEF + _SPACE
)

_KEY_RE = re.compile(_KEY_DEF)
_VALUE_RE = re.compile(_VALUE_DEF)
_PROPERTY_RE = re.compile(r"(?:" + _SPACE + _KEY_DEF + _SPACE + r"|" + _KEY_VALUE_DEF + r")")
_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class BaggageError(ValueError):
    """Raised for input that violates the W3C baggage specification."""


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", "surrogateescape"))


def _valid_key(key: str) -> bool:
    return _KEY_RE.fullmatch(key) is not None


def _valid_value(value: str) -> bool:
    return _VALUE_RE.fullmatch(value) is not None


def _query_unescape(text: str) -> str:
    bad = _BAD_ESCAPE_RE.search(text)
    if bad is not None:
        start = bad.start()
        raise BaggageError(f'invalid URL escape "{text[start:start + 3]}"')
    return unquote_to_bytes(text.replace("+", " ")).decode("utf-8", "surrogateescape")


def _query_escape(text: str) -> str:
    return quote_plus(text, safe="", errors="surrogateescape")


@dataclass(frozen=True)
class Property:
    """A metadata entry of a list-member; ``has_data`` is false for invalid ones."""

    key: str = ""
    value: str = ""
    has_value: bool = False
    has_data: bool = False

    def validate(self) -> None:
        """Raise ``BaggageError`` unless the property conforms to the specification."""
        if not self.has_data:
            raise BaggageError(f"invalid property: invalid baggage list-member property: {self!r}")
        if not _valid_key(self.key):
            raise BaggageError(f"invalid property: invalid key: {self.key!r}")
        if self.has_value and not _valid_value(self.value):
            raise BaggageError(f"invalid property: invalid value: {self.value!r}")
        if not self.has_value and self.value:
            raise BaggageError("invalid property: inconsistent value")

    def __str__(self) -> str:
        if self.has_value:
            return f"{self.key}{KEY_VALUE_DELIMITER}{self.value}"
        return self.key


def new_key_property(key: str) -> Property:
    """Create a property that has a key only."""
    if not _valid_key(key):
        raise BaggageError(f"invalid key: {key!r}")
    return Property(key=key, has_data=True)


def new_key_value_property(key: str, value: str) -> Property:
    """Create a property with a key and a value."""
    if not _valid_key(key):
        raise BaggageError(f"invalid key: {key!r}")
    if not _valid_value(value):
        raise BaggageError(f"invalid value: {value!r}")
    return Property(key=key, value=value, has_value=True, has_data=True)


def _parse_property(text: str) -> Property:
    if not text:
        return Property()
    match = _PROPERTY_RE.fullmatch(text)
    if match is None:
        raise BaggageError(f"invalid baggage list-member property: {text!r}")
    key_only, key, value = match.groups()
    if key_only:
        return Property(key=key_only, has_data=True)
    return Property(key=key, value=value, has_value=True, has_data=True)


def _stored(properties: tuple[Property, ...]) -> tuple[Property, ...]:
    # Stored properties keep only key, value and has_value.
    return tuple(replace(prop, has_data=False) for prop in properties)


@dataclass(frozen=True)
class Member:
    """A list-member of a baggage string; ``has_data`` is false for invalid ones."""

    key: str = ""
    value: str = ""
    properties: tuple[Property, ...] = ()
    has_data: bool = False

    def validate(self) -> None:
        """Raise ``BaggageError`` unless the member conforms to the specification."""
        if not self.has_data:
            raise BaggageError(f"invalid baggage list-member: {self!r}")
        if not _valid_key(self.key):
            raise BaggageError(f"invalid key: {self.key!r}")
        if not _valid_value(self.value):
            raise BaggageError(f"invalid value: {self.value!r}")
        for prop in self.properties:
            prop.validate()

    def __str__(self) -> str:
        text = f"{self.key}{KEY_VALUE_DELIMITER}{_query_escape(self.value)}"
        if self.properties:
            text += PROPERTY_DELIMITER + PROPERTY_DELIMITER.join(str(p) for p in self.properties)
        return text


def new_member(key: str, value: str, *args: Property) -> Member:
    """Create a member; the value is validated while encoded, then URL-decoded."""
    member = Member(key=key, value=value, properties=tuple(args), has_data=True)
    member.validate()
    try:
        decoded = _query_unescape(value)
    except BaggageError:
        raise BaggageError(f"invalid value: {value!r}") from None
    return replace(member, value=decoded)


def _parse_member(text: str) -> Member:
    size = _byte_len(text)
    if size > MAX_BYTES_PER_MEMBER:
        raise BaggageError(f"list-member too large: {size}")

    head, sep, tail = text.partition(PROPERTY_DELIMITER)
    properties: tuple[Property, ...] = ()
    if sep:
        properties = tuple(_parse_property(part) for part in tail.split(PROPERTY_DELIMITER))

    raw_key, sep, raw_value = head.partition(KEY_VALUE_DELIMITER)
    if not sep:
        raise BaggageError(f"invalid baggage list-member: {text!r}")
    key = raw_key.strip()
    stripped = raw_value.strip()
    try:
        value = _query_unescape(stripped)
    except BaggageError as exc:
        raise BaggageError(f"{exc}: {stripped!r}") from None
    if not _valid_key(key):
        raise BaggageError(f"invalid key: {key!r}")
    if not _valid_value(value):
        raise BaggageError(f"invalid value: {value!r}")
    return Member(key=key, value=value, properties=properties, has_data=True)


@dataclass(frozen=True)
class _Item:
    value: str
    properties: tuple[Property, ...]


class Baggage:
    """An immutable set of list-members keyed by member key."""

    def __init__(self, items: Optional[Mapping[str, _Item]] = None) -> None:
        self._items: dict[str, _Item] = dict(items or {})

    @staticmethod
    def _item(member: Member) -> _Item:
        return _Item(member.value, _stored(member.properties))

    def member(self, key: str) -> Member:
        """Return the member for ``key``, or an invalid empty member if absent."""
        item = self._items.get(key)
        if item is None:
            return Member()
        return Member(key=key, value=item.value, properties=item.properties, has_data=True)

    def members(self) -> list[Member]:
        """Return all members; their order carries no meaning."""
        return [self.member(key) for key in self._items]

    def set_member(self, member: Member) -> "Baggage":
        """Return a copy with ``member`` added or replacing one with the same key."""
        if not member.has_data:
            raise BaggageError("invalid baggage list-member")
        items = {key: item for key, item in self._items.items() if key != member.key}
        items[member.key] = self._item(member)
        return Baggage(items)

    def delete_member(self, key: str) -> "Baggage":
        """Return a copy without the member for ``key``."""
        return Baggage({k: item for k, item in self._items.items() if k != key})

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[Member]:
        return iter(self.members())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Baggage):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"Baggage({str(self)!r})"

    def __str__(self) -> str:
        return LIST_DELIMITER.join(
            str(Member(key=key, value=item.value, properties=item.properties))
            for key, item in self._items.items()
        )


def new_baggage(*args: Member) -> Baggage:
    """Build baggage from already validated members."""
    if not args:
        return Baggage()
    items: dict[str, _Item] = {}
    for member in args:
        if not member.has_data:
            raise BaggageError("invalid baggage list-member")
        items[member.key] = Baggage._item(member)
    if len(items) > MAX_MEMBERS:
        raise BaggageError("too many list-members in baggage-string")
    bag = Baggage(items)
    size = _byte_len(str(bag))
    if size > MAX_BYTES_PER_BAGGAGE_STRING:
        raise BaggageError(f"baggage-string too large: {size}")
    return bag


def parse_baggage(text: str) -> Baggage:
    """Parse a baggage header value."""
    if not text:
        return Baggage()
    size = _byte_len(text)
    if size > MAX_BYTES_PER_BAGGAGE_STRING:
        raise BaggageError(f"baggage-string too large: {size}")
    items: dict[str, _Item] = {}
    for part in text.split(LIST_DELIMITER):
        member = _parse_member(part)
        items[member.key] = Baggage._item(member)
    if len(items) > MAX_MEMBERS:
        raise BaggageError("too many list-members in baggage-string")
    return Baggage(items)