"""Pydantic models describing jobs, their tasks and the global settings."""

from __future__ import annotations

import re
from datetime import time, timedelta
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from ..engine.actions import Field as EntryField
from ..engine.actions import TakeFrom
from ..engine.read_filter import ReadFilterKind

_DURATION_RE = re.compile(r"(\d+)\s*(d|h|m|s)")
_DURATION_UNITS = {"d": "days", "h": "hours", "m": "minutes", "s": "seconds"}


def parse_duration(value: Any) -> timedelta:
    """Parse ``30m``, ``1h30m``, ``45s``, ``2d`` or plain seconds."""

    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")
    text = value.strip().lower()
    if text.isdigit():
        return timedelta(seconds=int(text))
    parts = _DURATION_RE.findall(text)
    if not parts or _DURATION_RE.sub("", text).strip():
        raise ValueError(f"Invalid duration {value!r}, expected something like '30m' or '1h30m'")
    delta = timedelta()
    for amount, unit in parts:
        delta += timedelta(**{_DURATION_UNITS[unit]: int(amount)})
    return delta


def parse_time_of_day(value: Any) -> time:
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid time of day: {value!r}")
    try:
        hour, minute = (int(part) for part in value.strip().split(":"))
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM") from exc


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# ----------------------------------------------------------------------
# Trigger and error handling
# ----------------------------------------------------------------------
class TriggerConfig(_Strict):
    """Exactly one of ``every``, ``at`` or ``never``."""

    every: timedelta | None = None
    at: time | None = None
    never: bool = False

    @field_validator("every", mode="before")
    @classmethod
    def _coerce_every(cls, value: Any) -> timedelta | None:
        if value is None:
            return None
        return parse_duration(value)

    @field_validator("at", mode="before")
    @classmethod
    def _coerce_at(cls, value: Any) -> time | None:
        if value is None:
            return None
        return parse_time_of_day(value)

    @field_serializer("every")
    def _dump_every(self, value: timedelta | None) -> str | None:
        if value is None:
            return None
        return f"{int(value.total_seconds())}s"

    @field_serializer("at")
    def _dump_at(self, value: time | None) -> str | None:
        if value is None:
            return None
        return value.strftime("%H:%M")

    @model_validator(mode="after")
    def _validate_choice(self) -> "TriggerConfig":
        chosen = sum((self.every is not None, self.at is not None, self.never))
        if chosen != 1:
            raise ValueError("Trigger needs exactly one of 'every', 'at' or 'never'")
        if self.every is not None and self.every <= timedelta(0):
            raise ValueError("Trigger interval must be positive")
        return self


class ErrorHandlingType(str, Enum):
    FORWARD = "forward"
    LOG_AND_IGNORE = "log_and_ignore"
    EXPONENTIAL_BACKOFF = "exponential_backoff"


class ErrorHandlingConfig(_Strict):
    type: ErrorHandlingType = ErrorHandlingType.EXPONENTIAL_BACKOFF
    max_retries: int = Field(default=13, ge=1)
    unit_seconds: float | None = Field(default=None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"type": value}
        return value


# ----------------------------------------------------------------------
# Sources and sinks
# ----------------------------------------------------------------------
class HttpSourceConfig(_Strict):
    type: Literal["http"]
    url: str
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Source URL must be http(s): {value}")
        return value


class FileSourceConfig(_Strict):
    type: Literal["file"]
    path: Path


class StringSourceConfig(_Strict):
    type: Literal["string"]
    value: str


class ExecSourceConfig(_Strict):
    type: Literal["exec"]
    cmd: str
    timeout: float | None = Field(default=None, gt=0)


SourceConfig = Annotated[
    Union[HttpSourceConfig, FileSourceConfig, StringSourceConfig, ExecSourceConfig],
    Field(discriminator="type"),
]


class StdoutSinkConfig(_Strict):
    type: Literal["stdout"]


class ExecSinkConfig(_Strict):
    type: Literal["exec"]
    cmd: str
    timeout: float | None = Field(default=None, gt=0)


class DiscardSinkConfig(_Strict):
    type: Literal["discard"]


SinkConfig = Annotated[
    Union[StdoutSinkConfig, ExecSinkConfig, DiscardSinkConfig],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------
class TakeConfig(_Strict):
    type: Literal["take"]
    from_: TakeFrom = Field(default=TakeFrom.BEGINNING, alias="from")
    num: int = Field(ge=0)


class ContainsConfig(_Strict):
    type: Literal["contains"]
    field: EntryField = EntryField.BODY
    re: str


class ReadFilterActionConfig(_Strict):
    """Where in the pipeline the task's read filter runs."""

    type: Literal["read_filter"]


class FeedConfig(_Strict):
    type: Literal["feed"]


class HtmlQueryConfig(_Strict):
    selector: str = Field(alias="query")
    attr: str | None = None
    re: str | None = None
    replace_with: str = ""
    optional: bool = False

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"query": value}
        return value


class HtmlConfig(_Strict):
    type: Literal["html"]
    item: str | None = None
    title: HtmlQueryConfig | None = None
    text: list[HtmlQueryConfig] = Field(default_factory=list)
    id: HtmlQueryConfig | None = None
    link: HtmlQueryConfig | None = None
    img: HtmlQueryConfig | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _single_text(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            return [value]
        return value


class JsonQueryConfig(_Strict):
    key: list[str]
    prepend: str = ""
    append: str = ""

    @model_validator(mode="before")
    @classmethod
    def _from_path(cls, value: Any) -> Any:
        if isinstance(value, (str, list)):
            value = {"key": value}
        if isinstance(value, dict) and isinstance(value.get("key"), str):
            value = {**value, "key": _split_key_path(value["key"])}
        return value


def _split_key_path(path: str) -> list[str]:
    return [part for part in path.split(".") if part]


class JsonConfig(_Strict):
    type: Literal["json"]
    item: list[str] = Field(default_factory=list)
    title: JsonQueryConfig | None = None
    text: list[JsonQueryConfig] = Field(default_factory=list)
    id: JsonQueryConfig | None = None
    link: JsonQueryConfig | None = None
    img: JsonQueryConfig | None = None

    @field_validator("item", mode="before")
    @classmethod
    def _coerce_item(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return _split_key_path(value)
        return value

    @field_validator("text", mode="before")
    @classmethod
    def _single_text(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            return [value]
        return value


class HttpActionConfig(_Strict):
    type: Literal["http"]
    from_field: EntryField = Field(default=EntryField.LINK, alias="from")


class UseRawContentsConfig(_Strict):
    type: Literal["use_raw_contents"]


class UseConfig(_Strict):
    type: Literal["use"]
    field: EntryField
    as_field: EntryField = Field(alias="as")


class DebugPrintConfig(_Strict):
    type: Literal["debug_print"]


class _FieldActionConfig(_Strict):
    field: EntryField = EntryField.BODY


class CapsConfig(_FieldActionConfig):
    type: Literal["caps"]


class TrimConfig(_FieldActionConfig):
    type: Literal["trim"]


class ShortenConfig(_FieldActionConfig):
    type: Literal["shorten"]
    len: int | None = Field(default=None, ge=0)


class SetConfig(_FieldActionConfig):
    type: Literal["set"]
    values: list[str] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def _single_value(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class ReplaceConfig(_FieldActionConfig):
    type: Literal["replace"]
    re: str
    with_: str = Field(default="", alias="with")


class RemoveHtmlConfig(_FieldActionConfig):
    type: Literal["remove_html"]


class ExtractConfig(_FieldActionConfig):
    type: Literal["extract"]
    re: str
    passthrough_if_not_found: bool = False


class DecodeHtmlConfig(_FieldActionConfig):
    type: Literal["decode_html"]


ActionConfig = Annotated[
    Union[
        TakeConfig,
        ContainsConfig,
        ReadFilterActionConfig,
        FeedConfig,
        HtmlConfig,
        JsonConfig,
        HttpActionConfig,
        UseRawContentsConfig,
        UseConfig,
        DebugPrintConfig,
        CapsConfig,
        TrimConfig,
        ShortenConfig,
        SetConfig,
        ReplaceConfig,
        RemoveHtmlConfig,
        ExtractConfig,
        DecodeHtmlConfig,
    ],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------
# Tasks and jobs
# ----------------------------------------------------------------------
class TaskConfig(_Strict):
    """One source → actions → sink chain of a job."""

    name: str
    tag: str | None = None
    source: SourceConfig | None = None
    read_filter: ReadFilterKind | None = None
    actions: list[ActionConfig] = Field(default_factory=list)
    sink: SinkConfig | None = None
    entry_to_msg_map: bool = False

    @model_validator(mode="after")
    def _validate_read_filter(self) -> "TaskConfig":
        placed = sum(1 for action in self.actions if isinstance(action, ReadFilterActionConfig))
        if placed > 1:
            raise ValueError(f"Task {self.name!r} places its read filter more than once")
        if placed and self.read_filter is None:
            raise ValueError(f"Task {self.name!r} has a read_filter action but no read_filter kind")
        return self


class JobConfig(_Strict):
    name: str
    enabled: bool = True
    trigger: TriggerConfig = Field(default_factory=lambda: TriggerConfig(never=True))
    error_handling: ErrorHandlingConfig | None = None
    tasks: list[TaskConfig]

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not value or "/" in value:
            raise ValueError("Job name must be non-empty and must not contain '/'")
        return value

    @model_validator(mode="after")
    def _validate_tasks(self) -> "JobConfig":
        if not self.tasks:
            raise ValueError(f"Job {self.name!r} needs at least one task")
        names = [task.name for task in self.tasks]
        if len(set(names)) != len(names):
            raise ValueError(f"Job {self.name!r} has duplicate task names")
        return self

    def task_key(self, task: TaskConfig) -> str:
        return f"{self.name}/{task.name}"


class GlobalConfig(BaseModel):
    """Global controls shared across jobs."""

    data_dir: Path = Field(default=Path("data"))
    state_db: Path = Field(default=Path("data/state/state.db"))
    http_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = "intelli-fetcher/0.1"
    thread_pool_workers: int = Field(default=8, ge=1)
    default_error_handling: ErrorHandlingType = ErrorHandlingType.EXPONENTIAL_BACKOFF
    backoff_unit_seconds: float = Field(default=60.0, gt=0)

    @field_validator("data_dir", "state_db", mode="before")
    @classmethod
    def _coerce_dirs(cls, value: Any) -> Path:
        return Path(value)

    def resolved_state_db(self, base_dir: Path) -> Path:
        """Return the state database path relative to the project root."""

        if not self.state_db.is_absolute():
            return (base_dir / self.state_db).resolve()
        return self.state_db


__all__ = [
    "ActionConfig",
    "ErrorHandlingConfig",
    "ErrorHandlingType",
    "GlobalConfig",
    "HtmlQueryConfig",
    "JobConfig",
    "JsonQueryConfig",
    "SinkConfig",
    "SourceConfig",
    "TaskConfig",
    "TriggerConfig",
    "parse_duration",
    "parse_time_of_day",
]
