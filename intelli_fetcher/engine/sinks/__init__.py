"""Sink SPI and implementations."""

from .base import DiscardSink, Sink
from .exec import Exec
from .stdout import Stdout

__all__ = ["DiscardSink", "Exec", "Sink", "Stdout"]
