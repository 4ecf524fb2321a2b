"""
Permissionless Oracle CLI
=========================

Command-line interface for one-off research calls and catalog inspection.

Usage:
    permissionless-oracle research "QUESTION" [OPTIONS]
    permissionless-oracle sources [--category CATEGORY]

Examples:
    permissionless-oracle research "Will Bitcoin exceed $100,000 by end of 2026?"
    permissionless-oracle research "Will oil prices rise above $90?" --budget 1.0
    permissionless-oracle sources --category crypto
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from permissionless_oracle import __version__
from permissionless_oracle.domain.errors import InsufficientSources, ResearchError
from permissionless_oracle.domain.results import ConsensusResult, ResearchOptions
from permissionless_oracle.domain.services.consensus_engine import ConsensusEngine
from permissionless_oracle.infrastructure.config import get_settings
from permissionless_oracle.infrastructure.dependencies import oracle_session
from permissionless_oracle.infrastructure.logging import configure_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the oracle CLI."""
    parser = argparse.ArgumentParser(
        prog="permissionless-oracle",
        description="Permissionless Oracle - consensus answers for prediction-market questions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  CONSENSUS_DEFAULT_BUDGET  Budget per research call
  CONSENSUS_MIN_SOURCES     Minimum sources required
  DISCOVERY_ENABLED         Allow source discovery
  LLM_ENABLED               Classify with an OpenAI-compatible LLM
  LOG_LEVEL                 Logging level (default: INFO)
        """,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    research = subparsers.add_parser("research", help="Research a yes/no question")
    research.add_argument("question", type=str, help="Question to resolve")
    research.add_argument(
        "--budget",
        "-b",
        type=float,
        default=None,
        help="Maximum total spend (default: CONSENSUS_DEFAULT_BUDGET)",
    )
    research.add_argument(
        "--min-sources",
        "-m",
        type=int,
        default=None,
        help="Minimum number of sources (default: CONSENSUS_MIN_SOURCES)",
    )
    research.add_argument(
        "--no-discovery",
        action="store_true",
        help="Do not search directories for new sources",
    )
    research.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Seconds to wait for sources before using the answers collected so far",
    )
    research.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON",
    )

    sources = subparsers.add_parser("sources", help="List catalog sources")
    sources.add_argument(
        "--category",
        "-c",
        type=str,
        default=None,
        help="Only active sources serving this category",
    )

    return parser


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = create_parser()
    return parser.parse_args(args)


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------


def render_result(console: Console, result: ConsensusResult) -> None:
    verdict = "[bold green]YES[/bold green]" if result.outcome else "[bold red]NO[/bold red]"
    console.print(
        Panel(
            f"{result.question}\n\n"
            f"Outcome: {verdict}   "
            f"Confidence: {result.confidence:.2f}   "
            f"Strength: {result.consensus_strength:.2f}\n"
            f"[dim]Category: {result.category} | Cost: {result.total_cost:.4f} | "
            f"{result.processing_time_ms:.0f}ms[/dim]",
            title="Consensus",
            border_style="cyan",
        )
    )

    table = Table(title="Source answers")
    table.add_column("Source", style="cyan")
    table.add_column("Outcome")
    table.add_column("Confidence", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Verified")
    table.add_column("Status")

    excluded = set(result.excluded_outliers)
    for point in result.data_points:
        table.add_row(
            point.source_id,
            "yes" if point.outcome else "no",
            f"{point.confidence:.2f}",
            f"{point.response_time_ms:.0f}",
            "yes" if point.domain_verified else "no",
            "[yellow]outlier[/yellow]" if point.source_id in excluded else "[green]inlier[/green]",
        )
    for source_id, kind in sorted(result.failed_sources.items()):
        table.add_row(source_id, "-", "-", "-", "-", f"[red]{kind.value}[/red]")
    console.print(table)

    if result.discovered_sources:
        console.print(f"Discovered: {', '.join(result.discovered_sources)}")
    console.print(f"[dim]Proof: {result.proof_hash}[/dim]")


def render_sources(console: Console, engine: ConsensusEngine, category: str | None) -> None:
    table = Table(title=f"Sources ({category})" if category else "Sources")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Categories")
    table.add_column("Cost", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Queries", justify="right")

    for source in sorted(engine.list_sources(category), key=lambda s: s.id):
        record = engine.get_source_reputation(source.id)
        table.add_row(
            source.id if source.active else f"[dim]{source.id}[/dim]",
            source.name,
            ", ".join(sorted(source.categories)),
            f"{source.cost_per_call:.3f}",
            f"{record.success_rate:.0%}" if record.total_queries else "-",
            str(record.total_queries),
        )
    console.print(table)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


async def run_research(args: argparse.Namespace, console: Console) -> int:
    defaults = get_settings().consensus
    try:
        options = ResearchOptions(
            budget=args.budget if args.budget is not None else defaults.default_budget,
            min_sources=args.min_sources or defaults.min_sources,
            max_sources=defaults.max_sources,
            allow_discovery=not args.no_discovery,
            deadline_seconds=args.deadline,
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        console.print(f"[red]Invalid options:[/red] {problems}")
        return 1

    async with oracle_session() as engine:
        try:
            with console.status("Researching..."):
                result = await engine.research_question(args.question, options)
        except InsufficientSources as e:
            console.print(
                f"[red]Insufficient sources:[/red] {e} "
                f"(available {e.available}, required {e.required})"
            )
            return 2
        except ResearchError as e:
            console.print(f"[red]{type(e).__name__}:[/red] {e}")
            return 1
        except ValueError as e:
            console.print(f"[red]Invalid question:[/red] {e}")
            return 1

    if args.json:
        console.print_json(result.model_dump_json())
    else:
        render_result(console, result)
    return 0


async def run_sources(args: argparse.Namespace, console: Console) -> int:
    async with oracle_session() as engine:
        render_sources(console, engine, args.category)
    return 0


async def main_async(args: argparse.Namespace) -> int:
    """Async main entry point."""
    console = Console()
    if args.command == "research":
        return await run_research(args, console)
    return await run_sources(args, console)


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed_args = parse_args(args)
    settings = get_settings()
    configure_logging("DEBUG" if parsed_args.verbose else settings.log_level)

    try:
        return asyncio.run(main_async(parsed_args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
