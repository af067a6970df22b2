from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
import yaml

from intelli_fetcher.config import ConfigLocator, ConfigRepository, GlobalConfig, JobConfig
from intelli_fetcher.config.loader import _slugify


def sample_job(name: str = "Tech News") -> JobConfig:
    return JobConfig.model_validate(
        {
            "name": name,
            "trigger": {"every": "30m"},
            "error_handling": "forward",
            "tasks": [
                {
                    "name": "hn",
                    "tag": "#hn",
                    "source": {"type": "http", "url": "https://example.com/rss"},
                    "read_filter": "not_present",
                    "actions": [
                        {"type": "feed"},
                        {"type": "take", "from": "beginning", "num": 5},
                        {"type": "html", "item": "li", "title": {"query": "a", "attr": "title"}},
                    ],
                    "sink": {"type": "stdout"},
                }
            ],
        }
    )


def test_config_locator_uses_env_and_creates_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTELLI_FETCHER_HOME", str(tmp_path))
    locator = ConfigLocator()
    assert locator.project_root == tmp_path.resolve()
    for path in (locator.data_dir, locator.jobs_dir, locator.state_dir, locator.logs_dir):
        assert path.exists()
    assert locator.jobs_dir.relative_to(tmp_path.resolve()) == Path("data/jobs")
    assert locator.global_config_path().name == "global_config.yaml"


def test_explicit_root_wins_over_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTELLI_FETCHER_HOME", str(tmp_path / "env"))
    locator = ConfigLocator(project_root=tmp_path / "explicit")
    assert locator.project_root == (tmp_path / "explicit").resolve()


def test_config_repository_global_roundtrip(tmp_path: Path) -> None:
    repo = ConfigRepository(ConfigLocator(project_root=tmp_path))
    config = GlobalConfig(http_timeout=5, thread_pool_workers=2, backoff_unit_seconds=1.5)
    repo.save_global_config(config)

    fresh = ConfigRepository(ConfigLocator(project_root=tmp_path))
    assert fresh.load_global_config() == config
    assert fresh.state_db_path() == (tmp_path / "data/state/state.db").resolve()


def test_missing_global_config_is_created(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.global_config_path()
    assert not path.exists()
    assert temp_config_repository.load_global_config() == GlobalConfig()
    assert path.exists()


def test_job_roundtrip(temp_config_repository: ConfigRepository) -> None:
    job = sample_job()
    path = temp_config_repository.save_job(job)
    assert path.name == "tech-news.yaml"

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert raw["trigger"] == {"every": "1800s", "never": False}
    assert raw["tasks"][0]["actions"][1]["from"] == "beginning"
    assert raw["tasks"][0]["actions"][2]["title"]["query"] == "a"

    loaded = temp_config_repository.load_job("Tech News")
    assert loaded == job
    assert loaded.trigger.every == timedelta(minutes=30)
    assert [cfg.name for cfg in temp_config_repository.list_jobs()] == ["Tech News"]

    temp_config_repository.delete_job("Tech News")
    assert not path.exists()


def test_json_job_files_are_listed(temp_config_repository: ConfigRepository) -> None:
    jobs_dir = temp_config_repository.locator.jobs_dir
    (jobs_dir / "plain.json").write_text('{"name": "plain", "tasks": [{"name": "only"}]}', encoding="utf-8")
    (jobs_dir / "notes.txt").write_text("ignored", encoding="utf-8")
    assert [path.name for path in temp_config_repository.list_job_files()] == ["plain.json"]
    assert temp_config_repository.load_job("plain").tasks[0].name == "only"


def test_config_repository_missing_job(temp_config_repository: ConfigRepository) -> None:
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_job("missing")


def test_non_mapping_file_is_rejected(temp_config_repository: ConfigRepository) -> None:
    (temp_config_repository.locator.jobs_dir / "broken.yaml").write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        temp_config_repository.load_job("broken")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Example Job", "example-job"),
        ("Already-Slug", "already-slug"),
        ("C++ Archive", "c---archive"),
    ],
)
def test_slugify_behaviour(raw: str, expected: str) -> None:
    assert _slugify(raw) == expected


def test_save_job_refuses_slug_collision(temp_config_repository: ConfigRepository) -> None:
    temp_config_repository.save_job(sample_job("Tech News"))
    with pytest.raises(ValueError, match="already holds job"):
        temp_config_repository.save_job(sample_job("tech news!"))
    # saving the same job again overwrites in place
    temp_config_repository.save_job(sample_job("Tech News"))
    assert [path.name for path in temp_config_repository.list_job_files()] == ["tech-news.yaml"]


def test_duplicate_job_names_across_files_are_rejected(temp_config_repository: ConfigRepository) -> None:
    jobs_dir = temp_config_repository.locator.jobs_dir
    (jobs_dir / "first.json").write_text('{"name": "same", "tasks": [{"name": "a"}]}', encoding="utf-8")
    (jobs_dir / "second.yaml").write_text("name: same\ntasks:\n  - name: b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="defined in both"):
        temp_config_repository.list_jobs()
