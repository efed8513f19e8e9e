"""Runner — processes a test run: generate an answer per case, score it, persist."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from answereval.config import DEFAULT_CONCURRENCY
from answereval.context import load_contexts
from answereval.errors import AnswerEvalError, RunNotFoundError
from answereval.generation import AnswerGenerator, Transport, select_transport
from answereval.models import (
    ContextDocument,
    ResultStatus,
    RunStatus,
    ScoreResult,
    TestCase,
    TestRun,
    TestRunResult,
)
from answereval.scorers import calculate_aggregate_score, calculate_scores
from answereval.store import ResultStore

logger = logging.getLogger(__name__)

ContextLoader = Callable[[Sequence[ContextDocument], Optional[str]], str]
ResultCallback = Callable[[TestRunResult], None]


def _failed_result(run: TestRun, case: TestCase, exc: Exception) -> TestRunResult:
    message = str(exc) or type(exc).__name__
    return TestRunResult(
        run_id=run.id,
        case_id=case.id,
        status=ResultStatus.FAILED,
        fail_reason=message,
        answer=f"[ERROR] {message}",
        bleu_score=0.0,
        cosine_sim_score=0.0,
        llm_score=0.0,
        llm_score_reason=f"Processing failed: {message}",
    )


async def _process_case(
    run: TestRun,
    case: TestCase,
    context: str,
    generator: AnswerGenerator,
    *,
    judge_model: Optional[str],
    embedding_model: Optional[str],
) -> TestRunResult:
    """Generate then score one case. Raises on any failure."""
    question = case.question
    if question is None:
        raise AnswerEvalError("Test case has no question (text, audio or image)")

    scoring_question = question.describe()
    transport = select_transport(question, run.llm_model)
    logger.debug("run=%s case=%s generating via %s", run.id, case.id, transport.value)

    if transport is Transport.REALTIME:
        realtime = await generator.generate_realtime(
            run.llm_model,
            run.prompt,
            context,
            question_text=None if question.is_audio else question.describe(),
            question_audio_path=question.value if question.is_audio else None,
        )
        answer = realtime.answer
        if realtime.input_transcript:
            scoring_question = realtime.input_transcript
    else:
        answer = await generator.generate(
            run.llm_model,
            run.prompt,
            question.describe(),
            context,
            run.temperature,
            run.top_p,
            run.top_k,
        )

    scores = await calculate_scores(
        answer,
        case.expected_answer,
        scoring_question,
        run.llm_model,
        judge_model=judge_model,
        embedding_model=embedding_model,
    )
    logger.info(
        "run=%s case=%s BLEU=%.3f cosine=%.3f LLM=%.3f",
        run.id, case.id, scores.bleu, scores.cosine, scores.llm_score,
    )
    return TestRunResult(
        run_id=run.id,
        case_id=case.id,
        status=ResultStatus.COMPLETED,
        answer=answer,
        bleu_score=scores.bleu,
        cosine_sim_score=scores.cosine,
        llm_score=scores.llm_score,
        llm_score_reason=scores.llm_reason,
    )


async def _process_case_safe(
    run: TestRun,
    case: TestCase,
    context: str,
    generator: AnswerGenerator,
    **scoring: Optional[str],
) -> TestRunResult:
    """Like _process_case, but any exception becomes a FAILED result."""
    try:
        return await _process_case(run, case, context, generator, **scoring)
    except Exception as exc:
        logger.error("run=%s case=%s FAILED: %s", run.id, case.id, exc)
        return _failed_result(run, case, exc)


def _load_context(
    run: TestRun,
    documents: Sequence[ContextDocument],
    loader: ContextLoader,
    files_dir: Optional[str],
) -> str:
    try:
        return loader(documents, files_dir)
    except Exception as exc:
        logger.error("run=%s context loading failed: %s", run.id, exc)
        return f"[Error loading contexts]: {exc}"


async def process_test_run(
    run_id: str,
    store: ResultStore,
    *,
    generator: Optional[AnswerGenerator] = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    judge_model: Optional[str] = None,
    embedding_model: Optional[str] = None,
    files_dir: Optional[str] = None,
    context_loader: ContextLoader = load_contexts,
    on_result: Optional[ResultCallback] = None,
) -> TestRun:
    """Process every case of a run, save all results, mark the run completed.

    At most ``concurrency`` cases are generated and scored at once. A case
    that fails yields a FAILED result; it never aborts the others. The only
    errors that escape are those raised while loading the run itself.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    start = time.perf_counter()
    run = store.fetch_run_with_relations(run_id)
    if run is None or run.suite is None:
        raise RunNotFoundError(run_id)

    suite = run.suite
    logger.info(
        "run=%s starting: suite=%r model=%s cases=%d contexts=%d",
        run.id, suite.name, run.llm_model, len(suite.cases), len(suite.contexts),
    )

    context = await asyncio.to_thread(
        _load_context, run, suite.contexts, context_loader, files_dir,
    )
    logger.info("run=%s context loaded: %d chars", run.id, len(context))

    generator = generator or AnswerGenerator(files_dir=files_dir)
    semaphore = asyncio.Semaphore(concurrency)

    async def _bounded(case: TestCase) -> TestRunResult:
        async with semaphore:
            result = await _process_case_safe(
                run, case, context, generator,
                judge_model=judge_model, embedding_model=embedding_model,
            )
        if on_result is not None:
            try:
                on_result(result)
            except Exception as exc:
                logger.error("run=%s case=%s result callback failed: %s", run.id, case.id, exc)
        return result

    results: List[TestRunResult] = list(
        await asyncio.gather(*(_bounded(case) for case in suite.cases))
    )

    if results:
        store.save_results(results)
    run.completed_at = store.mark_run_completed(run.id)
    run.status = RunStatus.COMPLETED
    run.results = results

    completed = sum(1 for r in results if r.status is ResultStatus.COMPLETED)
    logger.info(
        "run=%s COMPLETED in %.2fs: %d/%d cases succeeded",
        run.id, time.perf_counter() - start, completed, len(results),
    )
    return run


async def process_test_run_by_suite_id(
    suite_id: str,
    store: ResultStore,
    *,
    llm_model: str,
    prompt: str,
    temperature: float,
    top_p: float,
    top_k: int,
    **kwargs,
) -> str:
    """Create a PENDING run for ``suite_id``, process it and return its id."""
    run = store.create_run(
        suite_id, llm_model, prompt, temperature=temperature, top_p=top_p, top_k=top_k,
    )
    logger.info("Created run %s for suite %s", run.id, suite_id)
    await process_test_run(run.id, store, **kwargs)
    return run.id


def summarize_results(results: Sequence[TestRunResult]) -> Dict[str, float]:
    """Counts and mean scores over a run's results.

    Means cover COMPLETED results only.
    """
    completed = [r for r in results if r.status is ResultStatus.COMPLETED]
    n = len(completed)

    def _mean(values: List[float]) -> float:
        return sum(values) / n if n else 0.0

    aggregates = [
        calculate_aggregate_score(
            ScoreResult(r.bleu_score, r.cosine_sim_score, r.llm_score, r.llm_score_reason)
        )
        for r in completed
    ]
    return {
        "total": len(results),
        "completed": n,
        "failed": len(results) - n,
        "mean_bleu": _mean([r.bleu_score for r in completed]),
        "mean_cosine": _mean([r.cosine_sim_score for r in completed]),
        "mean_llm": _mean([r.llm_score for r in completed]),
        "mean_aggregate": _mean(aggregates),
    }
