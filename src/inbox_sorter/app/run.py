# src/inbox_sorter/app/run.py
from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from inbox_sorter.classification.orchestrator import ClassificationOrchestrator, build_orchestrator
from inbox_sorter.config.settings import PipelineConfig, Settings, secrets_dir
from inbox_sorter.errors import ConfigurationError, LabelMappingError, RetriesExhausted
from inbox_sorter.gmail.client import GmailClient, GmailClientConfig
from inbox_sorter.gmail.label_colors import ColorResolver, gmail_color_for
from inbox_sorter.gmail.mailbox import GmailMailbox, Mailbox
from inbox_sorter.labels.mapper import LabelMapper, label_name
from inbox_sorter.models import Category, ClassificationResult, NormalizedMessage, RunSummary
from inbox_sorter.observability.logging import get_logger
from inbox_sorter.pipeline.aggregator import RunRecord, aggregate
from inbox_sorter.pipeline.applier import BulkLabelApplier
from inbox_sorter.pipeline.fetcher import MessageFetcher, build_query
from inbox_sorter.pipeline.policy import already_classified, categories_to_label, label_pairs, plan_for
from inbox_sorter.pipeline.retry import RetryPolicy
from inbox_sorter.pipeline.scheduler import BatchScheduler

logger = get_logger(__name__)

ProgressCallback = Callable[[str, Dict[str, Any]], None]
Sleep = Callable[[float], Awaitable[None]]

DEADLINE_REASON = "deadline reached before the message was processed"


def load_gmail_config(timeout_s: float = 30.0) -> GmailClientConfig:
    base = secrets_dir()
    credentials_path = base / "credentials.json"
    if not credentials_path.exists():
        raise ConfigurationError(
            f"Missing Gmail credentials at {credentials_path}. "
            "Did you configure INBOX_SORTER_SECRETS_DIR?"
        )

    return GmailClientConfig(
        credentials_path=credentials_path,
        token_path=base / "gmail_token.json",
        user_id="me",
        timeout_s=timeout_s,
    )


def _reporter(progress_cb: Optional[ProgressCallback]):
    def report(step: str, *, detail: Optional[str] = None, metrics: Optional[Dict[str, Any]] = None) -> None:
        if not progress_cb:
            return
        # Same payload shape for UI and CLI consumers.
        payload: Dict[str, Any] = {"detail": detail}
        if metrics:
            payload["metrics"] = metrics
        progress_cb(step, payload)

    return report


async def _label_and_apply(
    mailbox: Mailbox,
    config: PipelineConfig,
    mapper: LabelMapper,
    messages: Sequence[NormalizedMessage],
    record: RunRecord,
    run_errors: List[str],
    report,
    *,
    deadline: Optional[float],
    clock: Callable[[], float],
    sleep: Sleep,
) -> None:
    """Create missing labels and write them; fills record.outcomes in place."""
    classified = record.classifications
    report("resolve_labels", detail="Resolving labels")
    mapping = await mapper.ensure_all_labels(categories_to_label(classified.values()))
    run_errors.extend(mapper.failure_messages())
    record.labels_created = len(mapper.created_labels())

    by_id = {m.message_id: m for m in messages}
    plans = [plan_for(by_id[mid], result, mapping) for mid, result in classified.items() if mid in by_id]
    pairs = label_pairs(plans)
    report("apply_labels", detail=f"Applying labels to {len(pairs)} messages")

    applier = BulkLabelApplier(
        mailbox,
        batch_size=config.batch_size,
        batch_delay_s=config.batch_delay_s,
        retry=RetryPolicy(max_attempts=config.max_retries, sleep=sleep, stage="apply"),
        verify=config.verify,
        sleep=sleep,
        clock=clock,
    )
    applied = await applier.bulk_apply(pairs, deadline=deadline)
    record.outcomes = {o.message_id: o for o in applied.outcomes}
    if applied.pending:
        run_errors.append(f"deadline reached: {len(applied.pending)} message(s) classified but not labeled")


def _finisher(
    run_errors: List[str],
    report,
    *,
    started: float,
    clock: Callable[[], float],
    provider_breakdown: Callable[[], Mapping[str, int]],
) -> Callable[[RunRecord], RunSummary]:
    def finish(record: RunRecord) -> RunSummary:
        record.run_errors = list(record.run_errors) + run_errors
        record.provider_breakdown = dict(provider_breakdown())
        record.started_at = started
        record.finished_at = clock()
        summary = aggregate(record)
        report(
            "done",
            detail="Run completed",
            metrics={k: v for k, v in summary.to_dict().items() if k != "rows"},
        )
        logger.info(
            "[run] processed=%d classified=%d labels_applied=%d errors=%d (%d ms)",
            summary.total_processed,
            summary.total_classified,
            summary.labels_applied,
            len(summary.errors),
            summary.duration_ms,
        )
        return summary

    return finish


def _fetcher(mailbox: Mailbox, config: PipelineConfig, *, clock: Callable[[], float], sleep: Sleep) -> MessageFetcher:
    return MessageFetcher(
        mailbox,
        detail_batch_size=config.fetch_batch_size,
        delay_s=config.fetch_delay_s,
        retry=RetryPolicy(max_attempts=config.max_retries, sleep=sleep, stage="fetch"),
        sleep=sleep,
        clock=clock,
    )


async def run_pipeline(
    mailbox: Mailbox,
    config: PipelineConfig,
    *,
    orchestrator: Optional[ClassificationOrchestrator] = None,
    settings: Optional[Settings] = None,
    progress_cb: Optional[ProgressCallback] = None,
    color_for: ColorResolver = gmail_color_for,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> RunSummary:
    """
    Fetch one page, classify it, resolve labels and (unless dry run) apply them.

    Only ConfigurationError escapes; every other failure ends up in the
    returned summary's errors or warnings. clock drives the deadline for
    every stage.
    """
    settings = settings or Settings.from_env()
    # Raises ConfigurationError for an unconfigured single-provider choice.
    orchestrator = orchestrator or build_orchestrator(config.ai_model, settings)
    report = _reporter(progress_cb)

    started = clock()
    deadline = started + config.deadline_s if config.deadline_s else None
    stats_before = Counter(orchestrator.stats)
    run_errors: List[str] = []
    finish = _finisher(
        run_errors,
        report,
        started=started,
        clock=clock,
        provider_breakdown=lambda: Counter(orchestrator.stats) - stats_before,
    )

    # --- Fetch ---
    report("fetch_messages", detail=f"Fetching up to {config.max_results} messages")
    fetcher = _fetcher(mailbox, config, clock=clock, sleep=sleep)
    try:
        page = await fetcher.fetch_messages(
            config.query,
            config.max_results,
            config.page_token,
            unread_only=config.unread_only,
            deadline=deadline,
        )
    except RetriesExhausted as exc:
        logger.error("[fetch] listing messages failed: %s", exc)
        run_errors.append(f"listing messages failed: {exc}")
        return finish(RunRecord())

    not_processed: Dict[str, str] = {mid: DEADLINE_REASON for mid in page.pending}

    # --- Existing labels (read-only, also needed to skip already-labeled mail) ---
    mapper = LabelMapper(mailbox, prefix=settings.label_prefix, color_for=color_for)
    try:
        await mapper.load()
    except LabelMappingError as exc:
        logger.error("[labels] %s", exc)
        run_errors.append(str(exc))

    skipped_ids = set()
    to_classify: List[NormalizedMessage] = []
    pipeline_labels = mapper.known_label_ids() if mapper.loaded else set()
    for message in page.messages:
        if config.skip_classified and already_classified(message, pipeline_labels):
            skipped_ids.add(message.message_id)
        else:
            to_classify.append(message)
    if skipped_ids:
        logger.info("[fetch] %d message(s) already carry a pipeline label, skipped", len(skipped_ids))

    # --- Classify ---
    report(
        "classify",
        detail=f"Classifying {len(to_classify)} messages",
        metrics={"fetched": len(page.messages), "skipped": len(skipped_ids), "fetch_errors": len(page.failed)},
    )

    async def classify_one(message: NormalizedMessage) -> ClassificationResult:
        return await orchestrator.classify(message)

    classifier = BatchScheduler(config.classify_concurrency, name="classify", clock=clock)
    scheduled = await classifier.run(
        to_classify,
        classify_one,
        deadline=deadline,
        on_batch_done=lambda done, total: report("classify", detail=f"Classified {done}/{total}"),
    )
    classified = dict(zip((m.message_id for m in to_classify), scheduled.results))
    for message in scheduled.pending:
        not_processed[message.message_id] = DEADLINE_REASON

    record = RunRecord(
        messages=page.messages,
        classifications=classified,
        skipped_ids=skipped_ids,
        fetch_failures=page.failed,
        not_processed=not_processed,
        next_page_token=page.next_page_token,
    )

    # Dry run: labels are listed but never created or applied.
    if not mapper.loaded or not config.apply_labels:
        return finish(record)

    await _label_and_apply(
        mailbox, config, mapper, to_classify, record, run_errors, report, deadline=deadline, clock=clock, sleep=sleep
    )
    return finish(record)


def classifications_from_summary(summary: Mapping[str, Any]) -> Dict[str, ClassificationResult]:
    """
    Read the per-message classifications back out of a `--json` run summary.

    Rows without a classification (skipped, fetch errors) and rows whose
    classification failed are left out.
    """
    rows = summary.get("rows") if isinstance(summary, Mapping) else None
    if not isinstance(rows, list):
        raise ConfigurationError("summary has no 'rows' list; expected the output of 'classify --json'")

    results: Dict[str, ClassificationResult] = {}
    for row in rows:
        data = row.get("classification") if isinstance(row, Mapping) else None
        if not data or data.get("error") or not row.get("message_id"):
            continue
        try:
            results[str(row["message_id"])] = ClassificationResult.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"row {row['message_id']}: {exc}") from exc
    return results


async def apply_classifications(
    mailbox: Mailbox,
    config: PipelineConfig,
    results: Mapping[str, ClassificationResult],
    *,
    settings: Optional[Settings] = None,
    progress_cb: Optional[ProgressCallback] = None,
    color_for: ColorResolver = gmail_color_for,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> RunSummary:
    """
    Label messages with classifications from an earlier run, without classifying again.

    Messages are re-read so labels they already carry are not sent twice.
    Honors apply_labels like run_pipeline does.
    """
    settings = settings or Settings.from_env()
    report = _reporter(progress_cb)

    started = clock()
    deadline = started + config.deadline_s if config.deadline_s else None
    run_errors: List[str] = []
    loaded: Dict[str, ClassificationResult] = {}
    finish = _finisher(
        run_errors,
        report,
        started=started,
        clock=clock,
        provider_breakdown=lambda: Counter(r.provider for r in loaded.values()),
    )

    report("fetch_messages", detail=f"Loading {len(results)} classified messages")
    page = await _fetcher(mailbox, config, clock=clock, sleep=sleep).fetch_by_ids(list(results), deadline=deadline)
    loaded.update((m.message_id, results[m.message_id]) for m in page.messages)

    record = RunRecord(
        messages=page.messages,
        classifications=loaded,
        fetch_failures=page.failed,
        not_processed={mid: DEADLINE_REASON for mid in page.pending},
    )

    mapper = LabelMapper(mailbox, prefix=settings.label_prefix, color_for=color_for)
    try:
        await mapper.load()
    except LabelMappingError as exc:
        logger.error("[labels] %s", exc)
        run_errors.append(str(exc))
        return finish(record)

    if not config.apply_labels:
        return finish(record)

    await _label_and_apply(
        mailbox, config, mapper, page.messages, record, run_errors, report, deadline=deadline, clock=clock, sleep=sleep
    )
    return finish(record)


@dataclass
class RemovalSummary:
    categories: List[str]
    messages_matched: int = 0
    labels_removed: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def label_query(name: str) -> str:
    # Gmail search spells "AI/Work" as label:ai-work.
    return "label:" + name.lower().replace("/", "-").replace(" ", "-")


async def run_label_removal(
    mailbox: Mailbox,
    config: PipelineConfig,
    categories: Sequence[Category],
    *,
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> RemovalSummary:
    """Strip the pipeline's labels for the given categories, e.g. before re-classifying."""
    settings = settings or Settings.from_env()
    started = clock()
    summary = RemovalSummary(categories=[c.value for c in categories])

    mapper = LabelMapper(mailbox, prefix=settings.label_prefix)
    try:
        await mapper.load()
    except LabelMappingError as exc:
        summary.errors.append(str(exc))
        summary.duration_ms = int((clock() - started) * 1000)
        return summary

    retry = RetryPolicy(max_attempts=config.max_retries, sleep=sleep, stage="strip")
    targets: Dict[str, List[str]] = {}
    for category in dict.fromkeys(categories):
        # Never create a label just to remove it.
        label_id = mapper.lookup(category)
        name = label_name(category, mapper.prefix)
        if label_id is None:
            summary.warnings.append(f"label {name} does not exist")
            continue
        query = build_query(f"{config.query} {label_query(name)}", config.unread_only)
        try:
            (ids, _), _ = await retry.call(lambda: mailbox.list_message_ids(query, config.max_results, None))
        except RetriesExhausted as exc:
            summary.errors.append(f"listing messages for {name} failed: {exc}")
            continue
        for mid in ids:
            targets.setdefault(mid, []).append(label_id)

    summary.messages_matched = len(targets)
    if targets and config.apply_labels:
        applier = BulkLabelApplier(
            mailbox,
            batch_size=config.batch_size,
            batch_delay_s=config.batch_delay_s,
            retry=retry,
            verify=config.verify,
            sleep=sleep,
            clock=clock,
        )
        removed = await applier.bulk_remove(list(targets.items()))
        summary.labels_removed = removed.labels_changed
        summary.errors.extend(removed.errors)
        summary.warnings.extend(
            f"message {mid}: labels still present after re-read" for mid in removed.verification_mismatches
        )
    elif targets:
        logger.info("[apply] dry run: would strip labels from %d message(s)", len(targets))

    summary.duration_ms = int((clock() - started) * 1000)
    return summary


def connect_mailbox(settings: Settings) -> GmailMailbox:
    client = GmailClient(load_gmail_config(timeout_s=settings.request_timeout_s))
    client.connect()
    profile = client.get_profile()
    logger.info("[gmail] connected as %s", profile.get("emailAddress"))
    return GmailMailbox(client)


def run_once(
    config: PipelineConfig,
    *,
    progress_cb: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    """
    Execute a single pipeline run against the authenticated Gmail account.

    Returns:
        dict summary (JSON-serializable).
    """
    settings = Settings.from_env()
    orchestrator = build_orchestrator(config.ai_model, settings)
    mailbox = connect_mailbox(settings)
    summary = asyncio.run(
        run_pipeline(mailbox, config, orchestrator=orchestrator, settings=settings, progress_cb=progress_cb)
    )
    return summary.to_dict()


def strip_once(config: PipelineConfig, categories: Sequence[Category]) -> Dict[str, Any]:
    settings = Settings.from_env()
    mailbox = connect_mailbox(settings)
    return asyncio.run(run_label_removal(mailbox, config, categories, settings=settings)).to_dict()


def apply_once(
    config: PipelineConfig,
    results: Mapping[str, ClassificationResult],
    *,
    progress_cb: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    settings = Settings.from_env()
    mailbox = connect_mailbox(settings)
    summary = asyncio.run(
        apply_classifications(mailbox, config, results, settings=settings, progress_cb=progress_cb)
    )
    return summary.to_dict()
