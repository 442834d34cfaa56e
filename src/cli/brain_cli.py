#!/usr/bin/env python
"""CLI interface for querying and feeding the memory corpus."""

import asyncio
import json
import sys
from dataclasses import dataclass
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from src.core.config import Settings, get_settings
from src.core.exceptions import BrainError
from src.core.logging import get_logger, setup_logging
from src.core.text import extract_domain, truncate_text
from src.database.memory_repository import SQLiteMemoryRepository
from src.memory.models import QueryRequest
from src.memory.vector_search import VectorSearchService
from src.security.crypto_service import CryptoService, load_or_create_key
from src.services.capture_service import CaptureService
from src.services.gemini_provider import GeminiProvider
from src.services.hybrid_ai import HybridAIService, ProviderTier
from src.services.ollama_provider import OllamaProvider
from src.services.query_service import QueryService

logger = get_logger(__name__)
console = Console()

QUERY_FAILED_MESSAGE = "Could not process your query"


@dataclass
class BrainServices:
    """Wired service graph for one CLI invocation."""

    settings: Settings
    repository: SQLiteMemoryRepository
    crypto: CryptoService
    ai: HybridAIService
    search: VectorSearchService
    query: QueryService
    capture: CaptureService


def build_services(settings: Settings) -> BrainServices:
    """Construct every service from settings; nothing is shared globally."""
    repository = SQLiteMemoryRepository(settings.brain.database_path)

    crypto = CryptoService()
    if settings.brain.encryption_enabled:
        key_path = settings.brain.resolved_key_path()
        if settings.brain.encryption_passphrase:
            crypto.initialize(passphrase=settings.brain.encryption_passphrase)
        elif key_path:
            crypto.initialize(key=load_or_create_key(key_path))
        else:
            crypto.initialize()

    ai = HybridAIService(
        OllamaProvider(settings.ollama, settings.retry),
        GeminiProvider(settings.gemini, settings.retry),
    )
    search = VectorSearchService(repository, settings.search)

    return BrainServices(
        settings=settings,
        repository=repository,
        crypto=crypto,
        ai=ai,
        search=search,
        query=QueryService(ai, search, crypto, settings.search),
        capture=CaptureService(ai, repository, crypto, settings.brain),
    )


@click.group()
@click.option('--log-level', default=None, help='Override APP_LOG_LEVEL')
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    """Local Web Brain - ask questions about your browsing history."""
    settings = get_settings()
    setup_logging(
        log_level=log_level or settings.app.log_level,
        json_format=settings.app.json_logs,
        log_file=settings.app.log_file,
        max_bytes=settings.app.log_max_bytes,
        backup_count=settings.app.log_backup_count,
        enable_console=settings.app.log_to_console,
    )
    ctx.obj = settings


@cli.command()
@click.argument('query')
@click.option('--limit', default=None, type=int, help='Maximum number of sources')
@click.option('--tag', 'tags', multiple=True, help='Only use memories with this tag')
@click.option('--format', 'output_format', default='panel', type=click.Choice(['panel', 'json']),
              help='Output format')
@click.pass_obj
def ask(settings: Settings, query: str, limit: Optional[int], tags: tuple, output_format: str):
    """Answer a question from remembered pages."""

    async def run():
        services = build_services(settings)
        try:
            await services.repository.initialize()
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task("Thinking...", total=None)
                await services.ai.initialize()
                request = QueryRequest(query=query, limit=limit, tags=list(tags) or None)
                return await services.query.process_query(request)
        finally:
            await services.repository.close()

    try:
        response = asyncio.run(run())
    except Exception as e:
        logger.error("ask_failed", error=str(e), error_type=type(e).__name__)
        console.print(f"[red]{QUERY_FAILED_MESSAGE}[/red]")
        sys.exit(1)

    if output_format == 'json':
        console.print_json(response.model_dump_json())
        return

    console.print(Panel(response.answer, title="Answer", border_style="green"))

    if response.sources:
        table = Table(title="Sources")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Title", style="cyan")
        table.add_column("Site", style="blue")
        table.add_column("Score", justify="right", style="magenta")

        for idx, source in enumerate(response.sources, 1):
            table.add_row(
                str(idx),
                truncate_text(source.memory.title, 70),
                extract_domain(source.memory.url),
                f"{source.score:.2f}",
            )
        console.print(table)

    console.print(f"[dim]Answered in {response.processing_time:.0f} ms[/dim]")


@cli.command()
@click.argument('url')
@click.option('--title', default='', help='Page title')
@click.option('--file', 'text_file', type=click.File('r'), default='-',
              help='File with the page text (default: stdin)')
@click.option('--tag', 'tags', multiple=True, help='Tag to attach to the memory')
@click.pass_obj
def remember(settings: Settings, url: str, title: str, text_file, tags: tuple):
    """Capture a page's text into the corpus."""
    text = text_file.read()

    async def run():
        services = build_services(settings)
        try:
            await services.repository.initialize()
            await services.ai.initialize()
            return await services.capture.capture(url, title, text, list(tags) or None)
        finally:
            await services.repository.close()

    try:
        record = asyncio.run(run())
    except BrainError as e:
        logger.error("remember_failed", url=url, error=str(e))
        console.print(f"[red]Could not remember {url}: {e}[/red]")
        sys.exit(1)

    if record is None:
        console.print("[yellow]Page skipped (ignored URL or not enough text)[/yellow]")
        return

    console.print(f"[green]Remembered[/green] {record.title or record.url} "
                  f"[dim]({record.id}, visits: {record.visit_count})[/dim]")


@cli.command()
@click.option('--threshold', default=None, type=float, help='Cluster similarity threshold')
@click.option('--min-size', default=1, type=int, help='Hide clusters smaller than this')
@click.pass_obj
def clusters(settings: Settings, threshold: Optional[float], min_size: int):
    """Group remembered pages by topic similarity."""

    async def run():
        services = build_services(settings)
        try:
            await services.repository.initialize()
            return await services.search.cluster_memories(threshold)
        finally:
            await services.repository.close()

    try:
        groups = asyncio.run(run())
    except BrainError as e:
        logger.error("clustering_failed", error=str(e))
        console.print(f"[red]Error clustering memories: {e}[/red]")
        sys.exit(1)

    shown = [group for group in groups if len(group) >= min_size]
    if not shown:
        console.print("[yellow]No clusters found[/yellow]")
        return

    for idx, group in enumerate(shown, 1):
        console.print(Panel(
            "\n".join(f"- {truncate_text(m.title or m.url, 80)}" for m in group),
            title=f"Cluster {idx} ({len(group)} pages)",
            border_style="cyan",
        ))


@cli.command()
@click.pass_obj
def status(settings: Settings):
    """Show which AI provider is active and what it can do."""

    async def run():
        services = build_services(settings)
        await services.ai.initialize()
        return services.ai.get_status()

    info = asyncio.run(run())

    tier_color = "green" if info["active_tier"] == ProviderTier.PRIMARY.value else "yellow"
    console.print(f"Active provider: [{tier_color}]{info['active_tier']}[/{tier_color}] "
                  f"(primary: {info['primary']}, fallback: "
                  f"{info['secondary'] if info['secondary_ready'] else 'none'})")

    table = Table(title="Capabilities")
    table.add_column("Capability", style="cyan")
    table.add_column("Available", style="bold")
    for name, enabled in info["capabilities"].items():
        table.add_row(name, "[green]yes[/green]" if enabled else "[red]no[/red]")
    console.print(table)

    for message in settings.validate_all():
        console.print(f"[yellow]{message}[/yellow]")


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON')
@click.pass_obj
def stats(settings: Settings, as_json: bool):
    """Show corpus statistics."""

    async def run():
        repository = SQLiteMemoryRepository(settings.brain.database_path)
        try:
            await repository.initialize()
            return await repository.get_all(sort_by="visit_count", order="desc")
        finally:
            await repository.close()

    try:
        records = asyncio.run(run())
    except BrainError as e:
        console.print(f"[red]Error reading corpus: {e}[/red]")
        sys.exit(1)

    data = {
        "memories": len(records),
        "total_visits": sum(r.visit_count for r in records),
        "domains": len({extract_domain(r.url) for r in records}),
        "dimensions": sorted({r.dimensions for r in records}),
        "oldest": min((r.created_at for r in records), default=None),
        "newest": max((r.created_at for r in records), default=None),
    }

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    table = Table(title="Memory Corpus")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="magenta")
    for key, value in data.items():
        table.add_row(key.replace('_', ' ').title(), str(value) if value is not None else "-")
    console.print(table)

    if records:
        top = Table(title="Most Visited")
        top.add_column("Title", style="cyan")
        top.add_column("Visits", justify="right")
        for record in records[:5]:
            top.add_row(truncate_text(record.title or record.url, 70), str(record.visit_count))
        console.print(top)


if __name__ == '__main__':
    cli()
