"""Structured logging utilities."""

from .audit import ExtractionEvent, JsonlAuditLogger, sanitize_metadata, utc_timestamp

__all__ = ["ExtractionEvent", "JsonlAuditLogger", "sanitize_metadata", "utc_timestamp"]
