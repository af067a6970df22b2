"""Error taxonomy shared by tasks, jobs and the action pipeline."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .entry import Entry


class FetcherError(Exception):
    """Root of every error a task can report to its job."""

    @property
    def is_network_related(self) -> bool:
        return False


class SourceError(FetcherError):
    """Fetch-level failure of a source."""

    def __init__(self, message: str, *, network: bool = False) -> None:
        super().__init__(message)
        self.network = network

    @property
    def is_network_related(self) -> bool:
        return self.network


class SinkError(FetcherError):
    """Delivery failure of a sink."""

    def __init__(self, message: str, *, network: bool = False) -> None:
        super().__init__(message)
        self.network = network

    @property
    def is_network_related(self) -> bool:
        return self.network


class ExternalSaveError(FetcherError):
    """Persisting read-filter or entry-to-message state failed."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        detail = f"{message} (at {path})" if path is not None else message
        super().__init__(detail)
        self.path = path


class FilterError(FetcherError):
    """A filter failed. Filters are batch-atomic, so this aborts the run."""


# ----------------------------------------------------------------------
# Transform failures
# ----------------------------------------------------------------------
class TransformErrorKind(str, Enum):
    FIELD_LINK_INVALID_URL = "field_link_invalid_url"
    RAW_CONTENTS_NOT_SET = "raw_contents_not_set"
    HTTP = "http"
    FEED = "feed"
    HTML = "html"
    JSON = "json"
    EXTRACT = "extract"
    OTHER = "other"


class TransformFailure(Exception):
    """Raised by a single transform; wrapped into ``TransformError`` by the pipeline."""

    kind = TransformErrorKind.OTHER

    @property
    def is_network_related(self) -> bool:
        return False


class RawContentsNotSetError(TransformFailure):
    kind = TransformErrorKind.RAW_CONTENTS_NOT_SET

    def __init__(self) -> None:
        super().__init__("There's nothing to transform from: raw_contents is not set")


class InvalidUrlError(TransformFailure):
    kind = TransformErrorKind.FIELD_LINK_INVALID_URL

    def __init__(self, url: str, reason: str = "not an absolute URL") -> None:
        super().__init__(f"Invalid URL {url!r}: {reason}")
        self.url = url


class ExtractError(TransformFailure):
    kind = TransformErrorKind.EXTRACT


class HttpTransformError(TransformFailure):
    kind = TransformErrorKind.HTTP

    def __init__(self, message: str, *, network: bool = False) -> None:
        super().__init__(message)
        self.network = network

    @property
    def is_network_related(self) -> bool:
        return self.network


class FeedError(TransformFailure):
    kind = TransformErrorKind.FEED


class HtmlError(TransformFailure):
    kind = TransformErrorKind.HTML


class JsonError(TransformFailure):
    kind = TransformErrorKind.JSON


class TransformError(FetcherError):
    """A transform failed for one entry; keeps the entry as it was before the transform."""

    def __init__(self, failure: TransformFailure, original_entry: "Entry") -> None:
        super().__init__(f"{failure.kind.value} transform failed: {failure}")
        self.kind = failure.kind
        self.failure = failure
        self.original_entry = original_entry

    @property
    def is_network_related(self) -> bool:
        return self.failure.is_network_related


__all__ = [
    "ExternalSaveError",
    "ExtractError",
    "FeedError",
    "FetcherError",
    "FilterError",
    "HtmlError",
    "HttpTransformError",
    "InvalidUrlError",
    "JsonError",
    "RawContentsNotSetError",
    "SinkError",
    "SourceError",
    "TransformError",
    "TransformErrorKind",
    "TransformFailure",
]
