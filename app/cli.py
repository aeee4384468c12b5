"""
Command-line interface for the exam strategy analyzer.

Usage:
    python -m app analyze --syllabus SYLLABUS.pdf --papers PAPERS.pdf [OPTIONS]
    python -m app check FILE.pdf [FILE.pdf ...]
"""

import argparse
import asyncio
import os
import sys
from typing import Callable, Optional

import magic
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.exceptions import ConfigurationError, PipelineError
from app.models.analysis import AnalysisResult, UploadedDocument
from app.services.markdown_export import export_markdown
from app.services.strategy_orchestrator import create_orchestrator
from app.services.upload_gate import UploadGate, check_document


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="exam-strategy",
        description="Exam Strategy CLI - Rank syllabus topics against past papers"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyze a syllabus against past exam papers"
    )
    analyze_parser.add_argument(
        "--syllabus",
        "-s",
        type=str,
        required=True,
        help="Path to the syllabus PDF"
    )
    analyze_parser.add_argument(
        "--papers",
        "-p",
        type=str,
        required=True,
        help="Path to the past exam papers PDF"
    )
    analyze_parser.add_argument(
        "--export",
        "-e",
        type=str,
        default=None,
        help="Write the priority list as markdown to this path"
    )
    analyze_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Use files flagged by the quick check without asking"
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Run the upload quick check on one or more files"
    )
    check_parser.add_argument("files", nargs="+", help="Files to check")

    return parser


def load_document(path: str) -> UploadedDocument:
    """Read a local file into an UploadedDocument."""
    with open(path, "rb") as f:
        content = f.read()
    media_type = magic.from_buffer(content, mime=True) if content else "application/octet-stream"
    return UploadedDocument(
        content=content,
        media_type=media_type,
        filename=os.path.basename(path),
    )


def _ask(prompt: str) -> bool:
    answer = input(f"{prompt} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def offer_file(
    gate: UploadGate,
    slot: str,
    path: str,
    assume_yes: bool,
    ask: Optional[Callable[[str], bool]] = None,
) -> bool:
    """Put ``path`` into ``slot``, asking the user when the quick check warns.

    Returns:
        True if the slot ends up holding an accepted file
    """
    decision = gate.select(slot, load_document(path))

    if decision.status == "ignored":
        print(f"Skipping {decision.filename}: only PDF files are accepted")
        return False

    if decision.status == "warning":
        print(f"Warning for {decision.filename}: {decision.message}")
        if assume_yes or (ask or _ask)("Use this file anyway?"):
            gate.confirm(slot)
        else:
            gate.cancel(slot)
            return False

    return True


def print_result(result: AnalysisResult) -> None:
    summary = result.summary
    if summary is not None:
        print(
            f"\n{summary.total_topics} topics, {summary.high_priority_count} high priority, "
            f"{summary.low_effort_high_reward} low effort / high reward\n"
        )
    else:
        print(f"\n{len(result.topics)} topics\n")
    for index, topic in enumerate(result.sorted_topics(), start=1):
        marker = " *" if topic.is_quick_win else ""
        print(
            f"{index:>2}. {topic.name} - {topic.confidence}% "
            f"(effort {topic.effort}, reward {topic.reward}, "
            f"priority {topic.resolved_priority}, seen {topic.frequency}x){marker}"
        )


def _load_settings() -> Optional[Settings]:
    try:
        return get_settings()
    except (ValidationError, ValueError) as e:
        print(f"Configuration error: {e}")
        print("\nMake sure you have a .env file with:")
        print("  GEMINI_API_KEY=your_api_key")
        return None


async def analyze_command(args: argparse.Namespace) -> int:
    """
    Execute the analyze command.

    Args:
        args: Parsed command-line arguments

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    settings = _load_settings()
    if settings is None:
        return 1

    for path in (args.syllabus, args.papers):
        if not os.path.isfile(path):
            print(f"Error: File not found: {path}")
            return 1

    gate = UploadGate(settings)
    offer_file(gate, "syllabus", args.syllabus, args.yes)
    offer_file(gate, "past_papers", args.papers, args.yes)

    try:
        request = gate.build_request()
        orchestrator = create_orchestrator(settings)
        result = await orchestrator.analyze_request(request, on_progress=print)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1
    except PipelineError as e:
        print(f"\n{e.user_message}")
        return 1
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 1

    print_result(result)

    if args.export:
        with open(args.export, "w", encoding="utf-8") as f:
            f.write(export_markdown(result))
        print(f"\nPriority list written to {args.export}")

    return 0


def check_command(args: argparse.Namespace) -> int:
    """Print the quick-check verdict for each file; exit 1 if any is flagged."""
    settings = _load_settings()
    if settings is None:
        return 1

    flagged = False
    for path in args.files:
        if not os.path.isfile(path):
            print(f"{path}: not found")
            flagged = True
            continue
        decision = check_document(load_document(path), settings)
        keywords = ", ".join(decision.matched_keywords) or "none"
        print(f"{decision.filename}: {decision.status} (keywords: {keywords})")
        flagged = flagged or decision.status != "accepted"

    return 1 if flagged else 0


def main() -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "analyze":
        return asyncio.run(analyze_command(args))
    elif args.command == "check":
        return check_command(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
