"""CLI - Command line interface for Resume Enhancer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import Settings, has_errors, load_settings, validate_settings
from .estimator import CostEstimator, format_cost
from .factory import create_history, create_orchestrator, create_usage_tracker
from .history import HistoryFilters
from .models import ENHANCEMENT_LEVELS, AIEnhancementResult, EnhancementOptions
from .providers import supported_providers
from .resume import import_json
from .review import SuggestionReview

console = Console()


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


def read_resume(path: Path) -> Tuple[str, Dict[str, Any]]:
    """Return (plain text, structured data) for a resume file.

    JSON files are parsed as exported resume data; anything else is sent
    as plain text with no structured data.
    """
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() != ".json":
        return content, {}
    resume = import_json(content)
    return resume.to_text(), resume.to_wire()


def _print_estimates(title: str, estimates: List[Any]) -> None:
    table = Table(title=title)
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Input tokens", justify="right")
    table.add_column("Output tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("")
    for item in estimates:
        flags = []
        if item.recommended:
            flags.append("recommended")
        if item.warnings_exceeded_context:
            flags.append("exceeds context")
        table.add_row(
            item.provider,
            item.model,
            str(item.token_estimate.input_tokens),
            str(item.token_estimate.output_tokens),
            format_cost(item.total_cost, item.currency),
            ", ".join(flags),
        )
    console.print(table)


def cmd_estimate(args: argparse.Namespace, settings: Settings) -> int:
    text, _ = read_resume(Path(args.file))
    provider = args.provider.lower()
    model = args.model or settings.default_models.get(provider, "")
    estimate = CostEstimator().estimate_enhancement_cost(
        provider, model, text, args.job_description, args.instructions, args.level
    )
    if estimate is None:
        console.print(f"No pricing for {provider}/{model}", style="red")
        return 1
    _print_estimates("Cost estimate", [estimate])
    return 0


def cmd_compare(args: argparse.Namespace, settings: Settings) -> int:
    text, _ = read_resume(Path(args.file))
    estimates = CostEstimator().compare_providers_for_request(
        text, args.job_description, args.instructions, args.level
    )
    _print_estimates("Provider comparison", estimates)
    return 0


def print_result(result: AIEnhancementResult, annotations: Dict[str, List[str]]) -> None:
    if not result.success:
        error = result.error or {}
        console.print(f"Enhancement failed ({error.get('type', 'unknown')}): {error.get('message', '')}", style="red")
        return

    table = Table(title=f"Suggestions from {result.provider}/{result.model}")
    table.add_column("Field")
    table.add_column("Original")
    table.add_column("Suggested")
    table.add_column("Confidence", justify="right")
    table.add_column("Improvements")
    for suggestion in result.suggestions:
        table.add_row(
            suggestion.field,
            suggestion.original_value,
            suggestion.suggested_value,
            f"{suggestion.confidence:.2f}",
            "; ".join(annotations.get(suggestion.id, [])),
        )
    console.print(table)
    metadata = result.metadata
    console.print(
        f"tokens={metadata.tokens_used} cost={format_cost(metadata.cost)} "
        f"time={metadata.processing_time_ms}ms confidence={result.confidence:.2f}",
        style="dim",
    )


def cmd_enhance(args: argparse.Namespace, settings: Settings) -> int:
    text, data = read_resume(Path(args.file))
    options = EnhancementOptions(
        provider=args.provider.lower(),
        model=args.model or "",
        enhancement_level=args.level,
        job_description=args.job_description,
        user_instructions=args.instructions,
        focus_areas=args.focus or [],
        enable_fallback=args.fallback,
    )
    orchestrator = create_orchestrator(settings, create_usage_tracker(settings))
    result = asyncio.run(orchestrator.enhance(options, text, data, args.api_key))

    review = SuggestionReview.from_result(result)
    print_result(result, review.annotate() if result.success else {})
    if not result.success:
        return 1

    if args.accept_all:
        review.accept_all()
        outcome = review.apply(data)
        if orchestrator.history is not None and result.history_id:
            orchestrator.history.update_user_actions(
                result.history_id,
                accepted=outcome.applied,
                enhanced_data=outcome.resume_data,
            )
        for skipped in outcome.skipped:
            console.print(f"Skipped {skipped.field}: {skipped.reason}", style="yellow")
        if args.output:
            Path(args.output).write_text(json.dumps(outcome.resume_data, indent=2, ensure_ascii=False), encoding="utf-8")
            console.print(f"Wrote {len(outcome.applied)} change(s) to {args.output}", style="green")
    return 0


def cmd_usage(args: argparse.Namespace, settings: Settings) -> int:
    tracker = create_usage_tracker(settings)
    if args.export:
        sys.stdout.write(tracker.export_data(args.export) + "\n")
        return 0

    stats = tracker.get_stats(args.days)
    table = Table(title=f"Usage over the last {args.days:g} days")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Events", str(stats.total_events))
    table.add_row("Tokens", str(stats.total_tokens))
    table.add_row("Cost", format_cost(stats.total_cost))
    table.add_row("Success rate", f"{stats.success_rate:.0%}")
    table.add_row("Avg processing time", f"{stats.avg_processing_time:.0f}ms")
    console.print(table)

    monitoring = tracker.get_cost_monitoring()
    console.print(
        f"today={format_cost(monitoring.spent_today)} "
        f"month={format_cost(monitoring.spent_this_month)} "
        f"daily_limit={monitoring.daily_limit} monthly_limit={monitoring.monthly_limit}",
        style="dim",
    )
    return 0


def cmd_history(args: argparse.Namespace, settings: Settings) -> int:
    history = create_history(settings)
    if args.export:
        sys.stdout.write(history.export_history(args.export) + "\n")
        return 0

    filters = HistoryFilters(providers=[args.provider] if args.provider else [])
    table = Table(title="Enhancement history")
    table.add_column("Id")
    table.add_column("When")
    table.add_column("Provider")
    table.add_column("Level")
    table.add_column("Suggestions", justify="right")
    table.add_column("Accepted", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Tags")
    for entry in history.get_history(filters, args.limit):
        table.add_row(
            entry.id,
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.provider,
            entry.enhancement_level,
            str(entry.suggestions_count),
            str(len(entry.accepted_suggestions)),
            f"{entry.confidence:.2f}",
            ", ".join(entry.tags),
        )
    console.print(table)

    stats = history.get_stats(filters)
    console.print(
        f"total={stats.total_enhancements} avg_confidence={stats.average_confidence:.2f} "
        f"cost={format_cost(stats.total_cost)} provider={stats.most_used_provider or '-'}",
        style="dim",
    )
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    issues = validate_settings(settings)
    for issue in issues:
        style = "red" if has_errors([issue]) else "yellow"
        console.print(f"{issue.field}: {issue.message}", style=style)
    if has_errors(issues):
        return 1

    import uvicorn

    from .web.app import create_app

    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


def _add_request_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", help="Resume file (.json export or plain text)")
    parser.add_argument("--level", choices=ENHANCEMENT_LEVELS, default="moderate", help="Enhancement level")
    parser.add_argument("--job-description", "-j", help="Target job description")
    parser.add_argument("--instructions", "-i", help="Extra instructions for the model")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resume-enhancer",
        description="Resume Enhancer - multi-provider AI resume suggestions",
    )
    parser.add_argument("--config", "-c", help="Path to configuration file (default: config/config.yaml)")
    parser.add_argument("--log-level", help="Override the configured log level")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(handler=cmd_serve)

    estimate = commands.add_parser("estimate", help="Estimate the cost of one enhancement")
    _add_request_arguments(estimate)
    estimate.add_argument("--provider", "-p", choices=supported_providers(), default="openai")
    estimate.add_argument("--model", "-m")
    estimate.set_defaults(handler=cmd_estimate)

    compare = commands.add_parser("compare", help="Compare enhancement costs across providers")
    _add_request_arguments(compare)
    compare.set_defaults(handler=cmd_compare)

    enhance = commands.add_parser("enhance", help="Request suggestions for a resume")
    _add_request_arguments(enhance)
    enhance.add_argument("--provider", "-p", choices=supported_providers(), default="openai")
    enhance.add_argument("--model", "-m")
    enhance.add_argument("--api-key", help="Provider API key (default: config or environment)")
    enhance.add_argument("--focus", action="append", help="Focus area (repeatable)")
    enhance.add_argument("--fallback", action="store_true", help="Fall back to other providers on rate limits")
    enhance.add_argument("--accept-all", action="store_true", help="Accept every suggestion and merge it")
    enhance.add_argument("--output", "-o", help="Write the merged resume JSON here (with --accept-all)")
    enhance.set_defaults(handler=cmd_enhance)

    usage = commands.add_parser("usage", help="Show usage statistics and cost monitoring")
    usage.add_argument("--days", type=float, default=30)
    usage.add_argument("--export", choices=("json", "csv"), help="Print the raw usage history instead")
    usage.set_defaults(handler=cmd_usage)

    history = commands.add_parser("history", help="List past enhancements and their review outcome")
    history.add_argument("--limit", type=int, default=20)
    history.add_argument("--provider", "-p", choices=supported_providers())
    history.add_argument("--export", choices=("json", "csv"), help="Print the raw history instead")
    history.set_defaults(handler=cmd_history)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"Config error: {e}", style="red")
        return 2
    setup_logging(args.log_level or settings.log_level)

    try:
        return args.handler(args, settings)
    except FileNotFoundError as e:
        console.print(f"File not found: {e.filename}", style="red")
        return 2
    except PydanticValidationError as e:
        console.print(f"Invalid resume JSON: {e}", style="red")
        return 2


if __name__ == "__main__":
    sys.exit(main())
