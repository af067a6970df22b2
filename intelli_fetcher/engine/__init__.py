"""Engine components: entries → read filter → actions → sink, one task at a time."""

from .entry import Entry, Media, MediaKind, Message, MessageId
from .entry_to_msg_map import EntryToMsgMap
from .errors import (
    ExternalSaveError,
    FetcherError,
    FilterError,
    SinkError,
    SourceError,
    TransformError,
    TransformErrorKind,
)
from .external_save import ExternalSave
from .task import Task
from .thread_pool import ThreadPoolManager

__all__ = [
    "Entry",
    "EntryToMsgMap",
    "ExternalSave",
    "ExternalSaveError",
    "FetcherError",
    "FilterError",
    "Media",
    "MediaKind",
    "Message",
    "MessageId",
    "SinkError",
    "SourceError",
    "Task",
    "ThreadPoolManager",
    "TransformError",
    "TransformErrorKind",
]
