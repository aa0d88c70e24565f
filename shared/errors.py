"""
Shared error handling for the Prometheus Unified Exporter.
"""

from typing import Dict, Any, Optional


class ExporterException(Exception):
    """Base exception for the exporter."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(ExporterException):
    """Configuration could not be read or is invalid. Fatal at startup."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class TargetFetchError(ExporterException):
    """A single upstream target could not be scraped."""

    def __init__(self, url: str, message: str = "Target fetch failed", details: Optional[Dict[str, Any]] = None):
        self.url = url
        super().__init__("TARGET_FETCH_ERROR", f"{url}: {message}", details)


class EncodingError(ExporterException):
    """A metric family could not be rendered in the exposition format."""

    def __init__(self, family: str, message: str = "Encoding failed", details: Optional[Dict[str, Any]] = None):
        self.family = family
        super().__init__("ENCODING_ERROR", f"{family}: {message}", details)
