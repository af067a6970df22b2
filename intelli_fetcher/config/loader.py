"""Reading and writing the YAML/JSON files that describe jobs and global settings.

Layout under the project root::

    data/global_config.yaml
    data/jobs/<job-slug>.yaml   (or .yml / .json)
    data/state/                 read state database
    logs/
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import yaml

from .models import GlobalConfig, JobConfig

HOME_ENV_VAR = "INTELLI_FETCHER_HOME"
GLOBAL_CONFIG_FILENAME = "global_config.yaml"


@dataclass(frozen=True)
class _FileFormat:
    loads: Callable[[str], Any]
    dumps: Callable[[dict], str]


_FORMATS: dict[str, _FileFormat] = {
    ".yaml": _FileFormat(
        loads=yaml.safe_load,
        dumps=lambda payload: yaml.safe_dump(payload, allow_unicode=True, sort_keys=False),
    ),
    ".json": _FileFormat(
        loads=json.loads,
        dumps=lambda payload: json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
    ),
}
_FORMATS[".yml"] = _FORMATS[".yaml"]

# lookup order when a job exists under more than one extension
CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")


def _slugify(name: str) -> str:
    return re.sub(r"[^0-9a-z]", "-", name.lower()).strip("-")


def read_mapping(path: Path) -> dict:
    """Parse ``path`` by its extension; the document must be a mapping."""

    data = _FORMATS[path.suffix].loads(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must hold a mapping, got {type(data).__name__}")
    return data


def write_mapping(path: Path, payload: dict) -> None:
    """Write through a scratch file, then rename it over ``path``."""

    scratch = path.with_name(f".{path.name}.tmp")
    scratch.write_text(_FORMATS[path.suffix].dumps(payload), encoding="utf-8")
    os.replace(scratch, path)


def _default_root() -> Path:
    env_root = os.environ.get(HOME_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser()
    return Path(__file__).resolve().parents[2]


@dataclass
class ConfigLocator:
    """Where config, state and logs live for one project root.

    An explicit ``project_root`` wins over ``$INTELLI_FETCHER_HOME``; without
    either the checkout directory is used. Directories are created on init.
    """

    project_root: Path = field(default_factory=_default_root)

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root).expanduser().resolve()
        for directory in (self.data_dir, self.jobs_dir, self.state_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def jobs_dir(self) -> Path:
        return self.data_dir / "jobs"

    @property
    def state_dir(self) -> Path:
        return self.data_dir / "state"

    @property
    def logs_dir(self) -> Path:
        return self.project_root / "logs"

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Validated access to the job files and the global config of a project."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global: GlobalConfig | None = None

    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        """Global settings, written out with defaults on first use."""

        if self._global is None:
            path = self.locator.global_config_path()
            if path.exists():
                self._global = GlobalConfig.model_validate(read_mapping(path))
            else:
                self.save_global_config(GlobalConfig())
        return self._global

    def save_global_config(self, config: GlobalConfig) -> None:
        write_mapping(self.locator.global_config_path(), config.model_dump(mode="json"))
        self._global = config

    def state_db_path(self) -> Path:
        return self.load_global_config().resolved_state_db(self.locator.project_root)

    # ------------------------------------------------------------------
    def job_path(self, job_name: str) -> Path:
        """Existing file for ``job_name``, or where a new one would be written."""

        stem = self.locator.jobs_dir / (_slugify(job_name) or "job")
        existing = (stem.with_suffix(suffix) for suffix in CONFIG_EXTENSIONS)
        return next((path for path in existing if path.exists()), stem.with_suffix(".yaml"))

    def list_job_files(self) -> Iterable[Path]:
        return sorted(
            path for path in self.locator.jobs_dir.iterdir() if path.is_file() and path.suffix in _FORMATS
        )

    def list_jobs(self) -> list[JobConfig]:
        """Every job config, refusing two files that declare the same job name."""

        jobs: dict[str, tuple[Path, JobConfig]] = {}
        for path in self.list_job_files():
            config = self.load_job(path)
            if config.name in jobs:
                raise ValueError(f"Job {config.name!r} is defined in both {jobs[config.name][0].name} and {path.name}")
            jobs[config.name] = (path, config)
        return [config for _, config in jobs.values()]

    def load_job(self, identifier: str | Path) -> JobConfig:
        path = identifier if isinstance(identifier, Path) else self.job_path(identifier)
        if not path.is_file():
            raise FileNotFoundError(f"Job configuration not found: {identifier}")
        return JobConfig.model_validate(read_mapping(path))

    def save_job(self, config: JobConfig) -> Path:
        """Write ``config`` to its slug file; a different job already there is an error."""

        path = self.job_path(config.name)
        if path.exists():
            current = read_mapping(path).get("name")
            if current is not None and current != config.name:
                raise ValueError(f"{path.name} already holds job {current!r}; rename {config.name!r}")
        write_mapping(path, config.model_dump(mode="json", by_alias=True, exclude_none=True))
        return path

    def delete_job(self, job_name: str) -> None:
        self.job_path(job_name).unlink(missing_ok=True)


__all__ = [
    "CONFIG_EXTENSIONS",
    "HOME_ENV_VAR",
    "ConfigLocator",
    "ConfigRepository",
    "read_mapping",
    "write_mapping",
]
