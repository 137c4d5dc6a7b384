"""Event payload types, rate-limit parsing, W3C baggage and event processors."""

__version__ = "0.1.0"
__all__ = ["baggage", "integrations", "protocol", "ratelimit"]