"""Intelli-Fetcher: scheduled fetch, transform and forward of new entries."""

__version__ = "0.1.0"

__all__ = ["__version__"]
