"""Action pipeline: filters and transforms."""

from .base import (
    Action,
    ActionContext,
    Filter,
    Pipeline,
    PipelineResult,
    PipelineStatus,
    TransformEntry,
)
from .field import (
    Caps,
    DecodeHtml,
    Extract,
    Field,
    FieldTransform,
    Replace,
    Set,
    Shorten,
    TransformField,
    Trim,
)
from .filters import Contains, ReadFilterAction, Take, TakeFrom
from .parsers import Feed, Html, HtmlQuery, Json, JsonQuery
from .result import ResultKind, TransformResult, TransformedEntry
from .transforms import DebugPrint, Http, Use, UseRawContents

__all__ = [
    "Action",
    "ActionContext",
    "Caps",
    "Contains",
    "DebugPrint",
    "DecodeHtml",
    "Extract",
    "Feed",
    "Field",
    "FieldTransform",
    "Filter",
    "Html",
    "HtmlQuery",
    "Http",
    "Json",
    "JsonQuery",
    "Pipeline",
    "PipelineResult",
    "PipelineStatus",
    "ReadFilterAction",
    "Replace",
    "ResultKind",
    "Set",
    "Shorten",
    "Take",
    "TakeFrom",
    "TransformEntry",
    "TransformField",
    "TransformResult",
    "TransformedEntry",
    "Trim",
    "Use",
    "UseRawContents",
]
