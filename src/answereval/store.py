"""SQLite store for suites, runs and results."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from answereval.models import (
    ContextDocument,
    QuestionInput,
    ResultStatus,
    RunStatus,
    TestCase,
    TestRun,
    TestRunResult,
    TestSuite,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS test_suites (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS test_cases (
    id TEXT PRIMARY KEY,
    suite_id TEXT NOT NULL REFERENCES test_suites(id),
    position INTEGER NOT NULL DEFAULT 0,
    question_text TEXT,
    question_audio_path TEXT,
    question_image_path TEXT,
    expected_answer TEXT NOT NULL,
    archived INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS contexts (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    text TEXT,
    file_path TEXT
);

CREATE TABLE IF NOT EXISTS suite_contexts (
    suite_id TEXT NOT NULL REFERENCES test_suites(id) ON DELETE CASCADE,
    context_id TEXT NOT NULL REFERENCES contexts(id) ON DELETE CASCADE,
    PRIMARY KEY (suite_id, context_id)
);

CREATE TABLE IF NOT EXISTS test_runs (
    id TEXT PRIMARY KEY,
    suite_id TEXT NOT NULL REFERENCES test_suites(id),
    llm_model TEXT NOT NULL,
    prompt TEXT NOT NULL,
    temperature REAL NOT NULL,
    top_p REAL NOT NULL,
    top_k INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS test_run_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL REFERENCES test_runs(id) ON DELETE CASCADE,
    case_id TEXT NOT NULL REFERENCES test_cases(id),
    status TEXT NOT NULL,
    fail_reason TEXT,
    answer TEXT NOT NULL DEFAULT '',
    bleu_score REAL NOT NULL DEFAULT 0,
    cosine_sim_score REAL NOT NULL DEFAULT 0,
    llm_score REAL NOT NULL DEFAULT 0,
    llm_score_reason TEXT NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_results_run_id ON test_run_results(run_id);
CREATE INDEX IF NOT EXISTS idx_cases_suite_id ON test_cases(suite_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class ResultStore:
    """SQLite-backed persistence for the evaluation pipeline."""

    def __init__(self, db_path: str | Path = "answereval.db") -> None:
        self._db_path = str(db_path)
        self._conn: Optional[sqlite3.Connection] = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
        return self._conn

    # ── suites ──

    def save_suite(self, suite: TestSuite) -> TestSuite:
        """Insert or replace a suite with its cases and context links.

        Cases no longer in ``suite`` are archived, not deleted, so results of
        earlier runs still resolve.
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT INTO test_suites (id, name, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name = excluded.name",
                (suite.id, suite.name, _now()),
            )
            for position, case in enumerate(suite.cases):
                fields = case.question.as_fields() if case.question else {
                    "question_text": None, "question_audio_path": None, "question_image_path": None,
                }
                conn.execute(
                    "INSERT INTO test_cases "
                    "(id, suite_id, position, question_text, question_audio_path, "
                    "question_image_path, expected_answer) VALUES (?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET suite_id = excluded.suite_id, "
                    "position = excluded.position, question_text = excluded.question_text, "
                    "question_audio_path = excluded.question_audio_path, "
                    "question_image_path = excluded.question_image_path, "
                    "expected_answer = excluded.expected_answer, archived = 0",
                    (case.id, suite.id, position, fields["question_text"],
                     fields["question_audio_path"], fields["question_image_path"],
                     case.expected_answer),
                )
            kept = [case.id for case in suite.cases]
            conn.execute(
                "UPDATE test_cases SET archived = 1 WHERE suite_id = ? "
                f"AND id NOT IN ({', '.join('?' * len(kept))})",
                (suite.id, *kept),
            )
            conn.execute("DELETE FROM suite_contexts WHERE suite_id = ?", (suite.id,))
            for ctx in suite.contexts:
                conn.execute(
                    "INSERT INTO contexts (id, name, text, file_path) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET name = excluded.name, text = excluded.text, "
                    "file_path = excluded.file_path",
                    (ctx.id, ctx.name, ctx.text, ctx.file_path),
                )
                conn.execute(
                    "INSERT INTO suite_contexts (suite_id, context_id) VALUES (?, ?)",
                    (suite.id, ctx.id),
                )
        return suite

    def get_suite(self, suite_id: str) -> Optional[TestSuite]:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM test_suites WHERE id = ?", (suite_id,)).fetchone()
        if row is None:
            return None
        cases = [
            TestCase(
                id=r["id"],
                question=QuestionInput.from_fields(
                    r["question_text"], r["question_audio_path"], r["question_image_path"],
                ),
                expected_answer=r["expected_answer"],
            )
            for r in conn.execute(
                "SELECT * FROM test_cases WHERE suite_id = ? AND archived = 0 ORDER BY position", (suite_id,)
            )
        ]
        contexts = [
            ContextDocument(id=r["id"], name=r["name"], text=r["text"], file_path=r["file_path"])
            for r in conn.execute(
                "SELECT c.* FROM contexts c JOIN suite_contexts sc ON sc.context_id = c.id "
                "WHERE sc.suite_id = ? ORDER BY c.id",
                (suite_id,),
            )
        ]
        return TestSuite(id=row["id"], name=row["name"], cases=cases, contexts=contexts)

    # ── runs ──

    def create_run(
        self,
        suite_id: str,
        llm_model: str,
        prompt: str,
        *,
        temperature: float = 0.7,
        top_p: float = 1.0,
        top_k: int = 40,
        run_id: Optional[str] = None,
    ) -> TestRun:
        """Create a PENDING run."""
        run = TestRun(
            id=run_id or new_id(), suite_id=suite_id, llm_model=llm_model, prompt=prompt,
            temperature=temperature, top_p=top_p, top_k=top_k,
            status=RunStatus.PENDING, created_at=_now(),
        )
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT INTO test_runs (id, suite_id, llm_model, prompt, temperature, top_p, "
                "top_k, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (run.id, run.suite_id, run.llm_model, run.prompt, run.temperature,
                 run.top_p, run.top_k, run.status.value, run.created_at),
            )
        return run

    def _row_to_run(self, row: sqlite3.Row) -> TestRun:
        return TestRun(
            id=row["id"], suite_id=row["suite_id"], llm_model=row["llm_model"],
            prompt=row["prompt"], temperature=row["temperature"], top_p=row["top_p"],
            top_k=row["top_k"], status=RunStatus(row["status"]),
            created_at=row["created_at"], completed_at=row["completed_at"],
        )

    def get_run(self, run_id: str) -> Optional[TestRun]:
        row = self._get_conn().execute("SELECT * FROM test_runs WHERE id = ?", (run_id,)).fetchone()
        return self._row_to_run(row) if row is not None else None

    def fetch_run_with_relations(self, run_id: str) -> Optional[TestRun]:
        """The run with its suite, cases and contexts attached."""
        run = self.get_run(run_id)
        if run is None:
            return None
        run.suite = self.get_suite(run.suite_id)
        return run

    def list_runs(self, suite_id: Optional[str] = None) -> List[TestRun]:
        conn = self._get_conn()
        if suite_id:
            rows = conn.execute(
                "SELECT * FROM test_runs WHERE suite_id = ? ORDER BY created_at DESC", (suite_id,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM test_runs ORDER BY created_at DESC").fetchall()
        return [self._row_to_run(r) for r in rows]

    def mark_run_completed(self, run_id: str, completed_at: Optional[str] = None) -> str:
        completed_at = completed_at or _now()
        conn = self._get_conn()
        with conn:
            conn.execute(
                "UPDATE test_runs SET status = ?, completed_at = ? WHERE id = ?",
                (RunStatus.COMPLETED.value, completed_at, run_id),
            )
        return completed_at

    # ── results ──

    def save_results(self, results: Iterable[TestRunResult]) -> int:
        """Bulk-insert result records in one transaction."""
        rows = [
            (r.run_id, r.case_id, r.status.value, r.fail_reason, r.answer, r.bleu_score,
             r.cosine_sim_score, r.llm_score, r.llm_score_reason)
            for r in results
        ]
        conn = self._get_conn()
        with conn:
            conn.executemany(
                "INSERT INTO test_run_results (run_id, case_id, status, fail_reason, answer, "
                "bleu_score, cosine_sim_score, llm_score, llm_score_reason) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return len(rows)

    def get_results(self, run_id: str) -> List[TestRunResult]:
        rows = self._get_conn().execute(
            "SELECT * FROM test_run_results WHERE run_id = ? ORDER BY id", (run_id,)
        ).fetchall()
        return [
            TestRunResult(
                run_id=r["run_id"], case_id=r["case_id"], status=ResultStatus(r["status"]),
                answer=r["answer"], bleu_score=r["bleu_score"],
                cosine_sim_score=r["cosine_sim_score"], llm_score=r["llm_score"],
                llm_score_reason=r["llm_score_reason"], fail_reason=r["fail_reason"],
            )
            for r in rows
        ]

    def __enter__(self) -> "ResultStore":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
