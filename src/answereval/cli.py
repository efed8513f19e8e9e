"""CLI entry point for AnswerEval."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Optional

import click

from answereval import __version__
from answereval.config import API_KEY_ENV, Settings
from answereval.loader import LoadError, load_suite
from answereval.models import ResultStatus, TestRun
from answereval.progress import ProgressReporter
from answereval.runner import process_test_run, summarize_results
from answereval.store import ResultStore

DEFAULT_MODEL = "openai:gpt-4o-mini"
DEFAULT_PROMPT = "You are a helpful assistant. Answer the question using the provided context."


@click.group()
@click.version_option(version=__version__, prog_name="answereval")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """AnswerEval — Score LLM answers against expected answers."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _model_options(fn):
    """Shared run-parameter options for ``run`` and ``enqueue``."""
    options = [
        click.option("--model", default=DEFAULT_MODEL, show_default=True,
                     help="Answer model as 'provider:model-id'."),
        click.option("--prompt", default=DEFAULT_PROMPT, help="System prompt for answer generation."),
        click.option("--temperature", default=0.7, show_default=True, type=float),
        click.option("--top-p", "top_p", default=1.0, show_default=True, type=float),
        click.option("--top-k", "top_k", default=40, show_default=True, type=int),
        click.option("--db", default=None, help="SQLite database path. [default: $ANSWEREVAL_DB or answereval.db]"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _validate_params(temperature: float, top_p: float, top_k: int) -> None:
    if not 0.0 <= temperature <= 2.0:
        click.echo("Error: --temperature must be between 0 and 2.", err=True)
        sys.exit(1)
    if not 0.0 < top_p <= 1.0:
        click.echo("Error: --top-p must be in (0, 1].", err=True)
        sys.exit(1)
    if top_k < 1:
        click.echo("Error: --top-k must be positive.", err=True)
        sys.exit(1)


def _load_suite_or_exit(path: str):
    try:
        return load_suite(path)
    except LoadError as e:
        click.echo(f"Error loading suite: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--suite", required=True, type=click.Path(exists=True), help="Path to YAML suite file.")
@_model_options
@click.option("--concurrency", default=None, type=int,
              help="Max cases in flight. [default: $ANSWEREVAL_CONCURRENCY or 3]")
@click.option("--judge-model", "judge_model", default=None, help="Judge model as 'provider:model-id'.")
@click.option("--progress/--no-progress", default=True, show_default=True, help="Show a progress bar.")
@click.option("--details", is_flag=True, help="Show judge reasoning and failure reasons per case.")
def run(
    suite: str,
    model: str,
    prompt: str,
    temperature: float,
    top_p: float,
    top_k: int,
    db: Optional[str],
    concurrency: Optional[int],
    judge_model: Optional[str],
    progress: bool,
    details: bool,
) -> None:
    """Load a suite, run it against a model and print the scores."""
    _validate_params(temperature, top_p, top_k)
    if concurrency is not None and concurrency < 1:
        click.echo("Error: --concurrency must be positive.", err=True)
        sys.exit(1)

    settings = Settings.from_env().with_overrides(
        db_path=db, concurrency=concurrency, judge_model=judge_model,
    )
    test_suite = _load_suite_or_exit(suite)

    store = ResultStore(settings.db_path)
    reporter = ProgressReporter() if progress else None
    try:
        store.save_suite(test_suite)
        test_run = store.create_run(
            test_suite.id, model, prompt, temperature=temperature, top_p=top_p, top_k=top_k,
        )
        if reporter is not None:
            reporter.start(len(test_suite.cases))
        test_run = asyncio.run(
            process_test_run(
                test_run.id,
                store,
                concurrency=settings.concurrency,
                judge_model=settings.judge_model,
                embedding_model=settings.embedding_model,
                files_dir=settings.files_dir,
                on_result=reporter.update if reporter is not None else None,
            )
        )
    except Exception as e:
        if reporter is not None:
            reporter.finish()
            reporter = None
        click.echo(f"Error during run: {e}", err=True)
        sys.exit(1)
    finally:
        if reporter is not None:
            reporter.finish()
        store.close()

    _print_run_results(test_run, test_run.results, details)

    if any(r.status is ResultStatus.FAILED for r in test_run.results):
        sys.exit(1)


def _print_run_results(test_run: TestRun, results: list, details: bool) -> None:
    """Print run results as a formatted table."""
    click.echo(f"\n{'='*72}")
    click.echo(f"Run: {test_run.id}  |  Suite: {test_run.suite_id}  |  Model: {test_run.llm_model}")
    click.echo(f"{'='*72}")
    click.echo(f"  {'Status':<10} {'Case':<24} {'BLEU':>6} {'Cosine':>7} {'LLM':>6}")
    for r in results:
        ok = r.status is ResultStatus.COMPLETED
        status = click.style(f"{'OK' if ok else 'FAILED':<10}", fg="green" if ok else "red")
        click.echo(
            f"  {status} {r.case_id:<24} {r.bleu_score:>6.3f} "
            f"{r.cosine_sim_score:>7.3f} {r.llm_score:>6.3f}"
        )
        if details:
            if r.fail_reason:
                click.echo(f"             reason: {r.fail_reason}")
            else:
                click.echo(f"             judge: {r.llm_score_reason}")

    s = summarize_results(results)
    click.echo(
        f"\nTotal: {s['total']}  Completed: {s['completed']}  Failed: {s['failed']}"
    )
    click.echo(
        f"Mean BLEU: {s['mean_bleu']:.3f}  Cosine: {s['mean_cosine']:.3f}  "
        f"LLM: {s['mean_llm']:.3f}  Aggregate: {s['mean_aggregate']:.3f}"
    )
    click.echo()


@cli.command()
@click.option("--suite", default=None, type=click.Path(exists=True), help="YAML suite to store and run.")
@click.option("--suite-id", "suite_id", default=None, help="Id of a suite already in the database.")
@_model_options
@click.option("--redis-url", "redis_url", default=None, help="Redis URL. [default: $REDIS_URL]")
def enqueue(
    suite: Optional[str],
    suite_id: Optional[str],
    model: str,
    prompt: str,
    temperature: float,
    top_p: float,
    top_k: int,
    db: Optional[str],
    redis_url: Optional[str],
) -> None:
    """Create a PENDING run and queue it for a worker."""
    from answereval.queue import enqueue_test_run

    if bool(suite) == bool(suite_id):
        click.echo("Error: Give exactly one of --suite or --suite-id.", err=True)
        sys.exit(1)
    _validate_params(temperature, top_p, top_k)
    settings = Settings.from_env().with_overrides(db_path=db, redis_url=redis_url)

    store = ResultStore(settings.db_path)
    try:
        if suite:
            test_suite = _load_suite_or_exit(suite)
            store.save_suite(test_suite)
            suite_id = test_suite.id
        elif store.get_suite(suite_id) is None:
            click.echo(f"Error: Suite not found: {suite_id}", err=True)
            sys.exit(1)
        test_run = store.create_run(
            suite_id, model, prompt, temperature=temperature, top_p=top_p, top_k=top_k,
        )
    finally:
        store.close()

    try:
        enqueue_test_run(test_run.id, redis_url=settings.redis_url)
    except Exception as e:
        click.echo(f"Error enqueueing run {test_run.id}: {e}", err=True)
        sys.exit(1)
    click.echo(test_run.id)


@cli.command()
@click.option("--db", default=None, help="SQLite database path. [default: $ANSWEREVAL_DB or answereval.db]")
@click.option("--redis-url", "redis_url", default=None, help="Redis URL. [default: $REDIS_URL]")
@click.option("--concurrency", default=2, show_default=True, help="Test runs processed at once.")
def worker(db: Optional[str], redis_url: Optional[str], concurrency: int) -> None:
    """Process queued test runs until interrupted."""
    from answereval.queue import QueueWorker

    if concurrency < 1:
        click.echo("Error: --concurrency must be positive.", err=True)
        sys.exit(1)
    settings = Settings.from_env().with_overrides(db_path=db, redis_url=redis_url)

    store = ResultStore(settings.db_path)
    try:
        QueueWorker(
            store,
            redis_url=settings.redis_url,
            concurrency=concurrency,
            run_options={
                "concurrency": settings.concurrency,
                "judge_model": settings.judge_model,
                "embedding_model": settings.embedding_model,
                "files_dir": settings.files_dir,
            },
        ).start()
    finally:
        store.close()


@cli.command("list")
@click.option("--db", default=None, help="SQLite database path. [default: $ANSWEREVAL_DB or answereval.db]")
@click.option("--suite-id", "suite_id", default=None, help="Only runs of this suite.")
@click.option("--limit", default=20, show_default=True, help="Max number of runs to show.")
def list_runs(db: Optional[str], suite_id: Optional[str], limit: int) -> None:
    """List past test runs."""
    if limit <= 0:
        click.echo("Error: --limit must be positive.", err=True)
        sys.exit(1)

    settings = Settings.from_env().with_overrides(db_path=db)
    store = ResultStore(settings.db_path)
    try:
        runs = store.list_runs(suite_id=suite_id)[:limit]
        summaries = {r.id: summarize_results(store.get_results(r.id)) for r in runs}
    finally:
        store.close()

    if not runs:
        click.echo("No runs found.")
        return

    click.echo(f"\n{'ID':<14} {'Suite':<20} {'Model':<30} {'Status':<10} {'Cases':<6} {'Score':<6} {'Created'}")
    click.echo("-" * 110)
    for r in runs:
        s = summaries[r.id]
        click.echo(
            f"{r.id:<14} {r.suite_id:<20} {r.llm_model:<30} {r.status.value:<10} "
            f"{s['total']:<6} {s['mean_aggregate']:<6.3f} {r.created_at[:19]}"
        )
    click.echo()


def _run_to_dict(test_run: TestRun, results: list) -> dict:
    return {
        "id": test_run.id,
        "suiteId": test_run.suite_id,
        "llmModel": test_run.llm_model,
        "prompt": test_run.prompt,
        "temperature": test_run.temperature,
        "topP": test_run.top_p,
        "topK": test_run.top_k,
        "status": test_run.status.value,
        "createdAt": test_run.created_at,
        "completedAt": test_run.completed_at,
        "summary": summarize_results(results),
        "results": [r.to_dict() for r in results],
    }


@cli.command()
@click.argument("run_id")
@click.option("--db", default=None, help="SQLite database path. [default: $ANSWEREVAL_DB or answereval.db]")
@click.option("--format", "fmt", type=click.Choice(["table", "json"]), default="table", show_default=True)
@click.option("--details", is_flag=True, help="Show judge reasoning and failure reasons per case.")
def show(run_id: str, db: Optional[str], fmt: str, details: bool) -> None:
    """Show the results of one test run."""
    settings = Settings.from_env().with_overrides(db_path=db)
    store = ResultStore(settings.db_path)
    try:
        test_run = store.get_run(run_id)
        results = store.get_results(run_id) if test_run is not None else []
    finally:
        store.close()

    if test_run is None:
        click.echo(f"Error: Run not found: {run_id}", err=True)
        sys.exit(1)

    if fmt == "json":
        click.echo(json.dumps(_run_to_dict(test_run, results), indent=2))
    else:
        _print_run_results(test_run, results, details)


@cli.command()
def check() -> None:
    """Report configured provider keys and realtime API availability."""
    from answereval.realtime import check_realtime_availability

    for provider, env_var in sorted(API_KEY_ENV.items()):
        state = click.style("set", fg="green") if os.environ.get(env_var) else click.style("missing", fg="yellow")
        click.echo(f"{provider:<10} {env_var:<20} {state}")

    available, error = asyncio.run(check_realtime_availability())
    if available:
        click.echo(f"realtime   {click.style('available', fg='green')}")
    else:
        click.echo(f"realtime   {click.style('unavailable', fg='red')}: {error}")
        sys.exit(1)
