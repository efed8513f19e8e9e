"""Tests for the CLI module."""

from __future__ import annotations

import json
import textwrap
from unittest.mock import AsyncMock, patch

import fakeredis
import pytest
from click.testing import CliRunner

from answereval.cli import cli
from answereval.models import JudgeResult, ResultStatus, RunStatus
from answereval.store import ResultStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db(tmp_path):
    return str(tmp_path / "cli.db")


@pytest.fixture
def suite_file(tmp_path):
    """Create a simple valid suite YAML file."""
    p = tmp_path / "suite.yaml"
    p.write_text(textwrap.dedent("""\
        id: geo
        name: Geography
        contexts:
          - text: Paris is the capital of France.
        cases:
          - id: capital
            question: What is the capital of France?
            expected: Paris
          - id: river
            question: Which river flows through Paris?
            expected: The Seine
    """))
    return str(p)


@pytest.fixture
def offline(monkeypatch):
    """No network: canned generation, embeddings and judge."""
    monkeypatch.delenv("ANSWEREVAL_DB", raising=False)

    async def answer(model, prompt, *, temperature, top_p=None, top_k=None):
        return "The Seine" if "river" in prompt else "Paris"

    with patch("answereval.generation.generate_text", side_effect=answer), \
         patch("answereval.scorers.cosine.generate_embedding", AsyncMock(return_value=[1.0, 0.0])), \
         patch("answereval.scorers.calculate_llm_judge_score",
               AsyncMock(return_value=JudgeResult(0.9, "Correct."))):
        yield


def _run(runner, suite_file, db, *extra):
    return runner.invoke(cli, ["run", "--suite", suite_file, "--db", db, "--no-progress", *extra])


class TestRun:
    def test_run_success(self, runner, suite_file, db, offline):
        result = _run(runner, suite_file, db)
        assert result.exit_code == 0, result.output
        assert "capital" in result.output
        assert "Completed: 2  Failed: 0" in result.output

        with ResultStore(db) as store:
            runs = store.list_runs()
            assert len(runs) == 1
            assert runs[0].status is RunStatus.COMPLETED
            assert runs[0].llm_model == "openai:gpt-4o-mini"
            assert len(store.get_results(runs[0].id)) == 2

    def test_run_params_stored(self, runner, suite_file, db, offline):
        result = _run(runner, suite_file, db, "--model", "google:gemini-2.0-flash",
                      "--temperature", "0.2", "--top-p", "0.5", "--top-k", "7")
        assert result.exit_code == 0, result.output
        with ResultStore(db) as store:
            run = store.list_runs()[0]
        assert (run.llm_model, run.temperature, run.top_p, run.top_k) == (
            "google:gemini-2.0-flash", 0.2, 0.5, 7,
        )

    def test_failed_case_exit_code(self, runner, suite_file, db, offline):
        from answereval.errors import GenerationError

        with patch("answereval.generation.generate_text",
                   AsyncMock(side_effect=GenerationError("LLM generation failed: down"))):
            result = _run(runner, suite_file, db, "--details")
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "reason: LLM generation failed: down" in result.output

    def test_with_progress_bar(self, runner, suite_file, db, offline):
        result = runner.invoke(cli, ["run", "--suite", suite_file, "--db", db])
        assert result.exit_code == 0, result.output

    def test_invalid_suite(self, runner, tmp_path, db):
        p = tmp_path / "bad.yaml"
        p.write_text("name: bad\n")
        result = runner.invoke(cli, ["run", "--suite", str(p), "--db", db])
        assert result.exit_code == 1
        assert "Error loading suite" in result.output

    def test_invalid_temperature(self, runner, suite_file, db):
        result = _run(runner, suite_file, db, "--temperature", "5")
        assert result.exit_code == 1
        assert "--temperature" in result.output

    def test_invalid_concurrency(self, runner, suite_file, db):
        result = _run(runner, suite_file, db, "--concurrency", "0")
        assert result.exit_code == 1


class TestShowAndList:
    def _seed(self, runner, suite_file, db):
        result = _run(runner, suite_file, db)
        assert result.exit_code == 0, result.output
        with ResultStore(db) as store:
            return store.list_runs()[0].id

    def test_list(self, runner, suite_file, db, offline):
        run_id = self._seed(runner, suite_file, db)
        result = runner.invoke(cli, ["list", "--db", db])
        assert result.exit_code == 0
        assert run_id in result.output
        assert "COMPLETED" in result.output

    def test_list_empty(self, runner, db):
        result = runner.invoke(cli, ["list", "--db", db])
        assert "No runs found." in result.output

    def test_show_json(self, runner, suite_file, db, offline):
        run_id = self._seed(runner, suite_file, db)
        result = runner.invoke(cli, ["show", run_id, "--db", db, "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["id"] == run_id
        assert data["status"] == "COMPLETED"
        assert data["summary"]["completed"] == 2
        assert {r["caseId"] for r in data["results"]} == {"capital", "river"}
        assert data["results"][0]["status"] == ResultStatus.COMPLETED.value

    def test_show_table(self, runner, suite_file, db, offline):
        run_id = self._seed(runner, suite_file, db)
        result = runner.invoke(cli, ["show", run_id, "--db", db, "--details"])
        assert result.exit_code == 0
        assert "judge: Correct." in result.output

    def test_show_missing(self, runner, db):
        result = runner.invoke(cli, ["show", "nope", "--db", db])
        assert result.exit_code == 1
        assert "Run not found" in result.output


class TestQueueCommands:
    def test_enqueue_from_suite_file(self, runner, suite_file, db):
        fake = fakeredis.FakeRedis(decode_responses=True)
        with patch("answereval.queue.connect", return_value=fake):
            result = runner.invoke(cli, ["enqueue", "--suite", suite_file, "--db", db])
        assert result.exit_code == 0, result.output
        run_id = result.output.strip().splitlines()[-1]
        assert json.loads(fake.rpop("answereval:test-run")) == {"testRunId": run_id}
        with ResultStore(db) as store:
            assert store.get_run(run_id).status is RunStatus.PENDING

    def test_enqueue_unknown_suite_id(self, runner, db):
        result = runner.invoke(cli, ["enqueue", "--suite-id", "nope", "--db", db])
        assert result.exit_code == 1
        assert "Suite not found" in result.output

    def test_enqueue_needs_exactly_one_source(self, runner, db):
        result = runner.invoke(cli, ["enqueue", "--db", db])
        assert result.exit_code == 1

    def test_worker_starts_queue_worker(self, runner, db):
        with patch("answereval.queue.QueueWorker") as worker_cls:
            result = runner.invoke(cli, ["worker", "--db", db, "--concurrency", "4"])
        assert result.exit_code == 0, result.output
        assert worker_cls.call_args.kwargs["concurrency"] == 4
        assert worker_cls.call_args.kwargs["run_options"]["concurrency"] == 3
        worker_cls.return_value.start.assert_called_once()


class TestCheck:
    def test_reports_missing_keys(self, runner, monkeypatch):
        for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_AI_API_KEY"):
            monkeypatch.delenv(var, raising=False)
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 1
        assert "OPENAI_API_KEY" in result.output
        assert "unavailable" in result.output

    def test_available(self, runner, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        with patch("answereval.realtime.check_realtime_availability",
                   AsyncMock(return_value=(True, None))):
            result = runner.invoke(cli, ["check"])
        assert result.exit_code == 0
        assert "available" in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "answereval" in result.output
