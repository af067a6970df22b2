"""Source SPI and implementations."""

from .base import Source, SourceWithReadFilter
from .simple import ExecSource, FileSource, HttpSource, StringSource

__all__ = ["ExecSource", "FileSource", "HttpSource", "Source", "SourceWithReadFilter", "StringSource"]
