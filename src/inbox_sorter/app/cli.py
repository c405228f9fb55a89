from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional, Sequence

from inbox_sorter.app.run import apply_once, classifications_from_summary, run_once, strip_once
from inbox_sorter.config.settings import AI_MODELS, PipelineConfig
from inbox_sorter.errors import ConfigurationError
from inbox_sorter.models import TAXONOMY, Category, ClassificationResult
from inbox_sorter.observability.logging import configure_logging


def _category(value: str) -> Category:
    category = Category.parse(value)
    if category is None or category not in TAXONOMY:
        raise argparse.ArgumentTypeError(
            f"unknown category {value!r} (choose from {', '.join(c.value for c in TAXONOMY)})"
        )
    return category


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--query", dest="query", default="", help="Gmail search filter, passed through verbatim.")
    parser.add_argument(
        "--max-results", dest="max_results", type=int, default=50, help="Messages per page (1-500)."
    )
    parser.add_argument("--batch-size", dest="batch_size", type=int, default=50, help="Label writes per batch.")
    parser.add_argument("--max-retries", dest="max_retries", type=int, default=3, help="Attempts per write.")
    parser.add_argument("--unread-only", dest="unread_only", action="store_true", help="Only unread messages.")
    parser.add_argument(
        "--verify", dest="verify", action="store_true", help="Re-read each message after changing its labels."
    )
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the full summary as JSON.")
    parser.add_argument(
        "--log-level", dest="log_level", default=None, help="Overrides INBOX_SORTER_LOG_LEVEL (DEBUG, INFO, ...)."
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inbox-sorter",
        description="Classify Gmail messages with AI and label them in bulk.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    classify = sub.add_parser("classify", help="Classify one page of messages and optionally label them.")
    _add_common(classify)
    classify.add_argument(
        "--apply", dest="apply_labels", action="store_true", help="Write labels (default is a dry run)."
    )
    classify.add_argument(
        "--ai-model", dest="ai_model", choices=AI_MODELS, default="auto", help="Classification provider chain."
    )
    classify.add_argument(
        "--no-skip-classified",
        dest="skip_classified",
        action="store_false",
        help="Reclassify messages that already carry a pipeline label.",
    )
    classify.add_argument("--page-token", dest="page_token", default=None, help="Continue from a previous page.")
    classify.add_argument(
        "--deadline", dest="deadline_s", type=float, default=None, help="Stop dispatching work after N seconds."
    )

    strip = sub.add_parser("strip", help="Remove pipeline labels, e.g. before re-classifying.")
    _add_common(strip)
    strip.add_argument(
        "--category",
        dest="categories",
        type=_category,
        action="append",
        required=True,
        help="Category whose label is removed; repeat for several.",
    )
    strip.add_argument(
        "--dry-run", dest="apply_labels", action="store_false", help="Only report which messages would change."
    )

    apply = sub.add_parser(
        "apply", help="Label messages from a saved 'classify --json' summary without reclassifying."
    )
    apply.add_argument(
        "--from-json", dest="from_json", required=True, help="Path to the JSON summary of an earlier classify run."
    )
    apply.add_argument("--batch-size", dest="batch_size", type=int, default=50, help="Label writes per batch.")
    apply.add_argument("--max-retries", dest="max_retries", type=int, default=3, help="Attempts per write.")
    apply.add_argument(
        "--verify", dest="verify", action="store_true", help="Re-read each message after changing its labels."
    )
    apply.add_argument("--json", dest="as_json", action="store_true", help="Print the full summary as JSON.")
    apply.add_argument(
        "--log-level", dest="log_level", default=None, help="Overrides INBOX_SORTER_LOG_LEVEL (DEBUG, INFO, ...)."
    )
    apply.add_argument(
        "--dry-run", dest="apply_labels", action="store_false", help="Only report which labels would be written."
    )
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    keys = (
        "query",
        "max_results",
        "batch_size",
        "max_retries",
        "unread_only",
        "verify",
        "apply_labels",
        "ai_model",
        "skip_classified",
        "page_token",
        "deadline_s",
    )
    return PipelineConfig(**{k: getattr(args, k) for k in keys if hasattr(args, k)})


def _load_classifications(path: str) -> Dict[str, ClassificationResult]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            summary = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"cannot read {path}: {exc}") from exc
    return classifications_from_summary(summary)


def _print_progress(step: str, payload: Dict[str, Any]) -> None:
    detail = payload.get("detail")
    if detail and step != "done":
        print(f"[{step}] {detail}")


def _print_summary(summary: Dict[str, Any]) -> None:
    for row in summary.get("rows", []):
        c = row.get("classification") or {}
        label = ", ".join(row.get("applied_labels") or []) or "-"
        print("----")
        print(f"Subject: {row.get('subject', '')}")
        print(f"From:    {row.get('from', '')}")
        print(f"[{row['status']}] {c.get('category', '-')} ({c.get('confidence', 0):.2f}, {c.get('provider', '-')}) labels={label}")
        if row.get("error"):
            print(f"  error: {row['error']}")

    print("====")
    print(
        f"processed={summary['total_processed']} classified={summary['total_classified']} "
        f"labels_applied={summary['labels_applied']} skipped={summary['skipped']} "
        f"errors={len(summary['errors'])} duration={summary['duration_ms']}ms"
    )
    for category, count in sorted(summary["category_breakdown"].items()):
        print(f"  {category}: {count}")
    for error in summary["errors"]:
        print(f"[error] {error}")
    for warning in summary["warnings"]:
        print(f"[warn] {warning}")
    if summary.get("next_page_token"):
        print(f"next page: --page-token {summary['next_page_token']}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = config_from_args(args)
        if args.command == "strip":
            categories: List[Category] = args.categories
            result = strip_once(config, categories)
        elif args.command == "apply":
            result = apply_once(
                config,
                _load_classifications(args.from_json),
                progress_cb=None if args.as_json else _print_progress,
            )
        else:
            result = run_once(config, progress_cb=None if args.as_json else _print_progress)
    except ConfigurationError as exc:
        parser.exit(2, f"inbox-sorter: {exc}\n")

    if args.as_json:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    elif args.command == "strip":
        print(
            f"matched={result['messages_matched']} labels_removed={result['labels_removed']} "
            f"errors={len(result['errors'])}"
        )
        for error in result["errors"]:
            print(f"[error] {error}")
        for warning in result["warnings"]:
            print(f"[warn] {warning}")
    else:
        _print_summary(result)

    return 1 if result["errors"] else 0
