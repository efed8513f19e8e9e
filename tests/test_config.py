"""Tests for environment-driven settings."""

from answereval.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_JUDGE_MODEL,
    Settings,
)


def test_defaults_from_empty_env():
    s = Settings.from_env({})
    assert s.judge_model == DEFAULT_JUDGE_MODEL == "openai:gpt-4o-mini"
    assert s.embedding_model == DEFAULT_EMBEDDING_MODEL == "openai:text-embedding-3-small"
    assert s.concurrency == DEFAULT_CONCURRENCY == 3
    assert s.files_dir == "public"


def test_env_values():
    s = Settings.from_env({
        "LLM_JUDGE_MODEL": "anthropic:claude",
        "EMBEDDING_MODEL": "google:text-embedding-004",
        "REDIS_URL": "redis://queue:6379/1",
        "ANSWEREVAL_DB": "/tmp/x.db",
        "ANSWEREVAL_CONCURRENCY": "5",
        "ANSWEREVAL_FILES_DIR": "/srv/files",
    })
    assert s.judge_model == "anthropic:claude"
    assert s.embedding_model == "google:text-embedding-004"
    assert s.redis_url == "redis://queue:6379/1"
    assert s.db_path == "/tmp/x.db"
    assert s.concurrency == 5
    assert s.files_dir == "/srv/files"


def test_overrides_skip_none():
    s = Settings.from_env({}).with_overrides(db_path="a.db", concurrency=None)
    assert s.db_path == "a.db"
    assert s.concurrency == 3


def test_from_env_reads_process_env(monkeypatch):
    monkeypatch.setenv("LLM_JUDGE_MODEL", "google:gemini")
    assert Settings.from_env().judge_model == "google:gemini"
