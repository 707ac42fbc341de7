"""CLI entry point for CMS product synchronization.

This module provides the command-line interface for checking CMS
connectivity, running syncs into the local product store, inspecting sync
health, and serving products through the fallback chain.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import uvicorn
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from cms_sync.mock_servers import create_mock_cms
from cms_sync.models.config import AppConfig, ConfigManager
from cms_sync.models.data_models import (
    CMSProvider,
    FallbackStrategy,
    ProductFilters,
    SyncOptions,
    SyncResult,
    SyncStatusInfo,
)
from cms_sync.pipeline.orchestrator import SyncOrchestrator
from cms_sync.pipeline.output import JSONOutputFormatter
from cms_sync.sync import InMemoryProductStore, InMemorySyncStatusStore


console = Console()

PROVIDERS = [provider.value for provider in CMSProvider]
STRATEGIES = [strategy.value for strategy in FallbackStrategy]


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option("--provider", type=click.Choice(PROVIDERS), help="CMS provider (overrides config)")
@click.option("--api-url", help="CMS base URL (overrides config)")
@click.option("--api-key", help="CMS API key (overrides config)")
@click.option("--timeout", "-t", type=float, help="Per-request timeout in seconds (overrides config)")
@click.option("--retry-attempts", "-r", type=int, help="Retries after the first attempt (overrides config)")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress bars and tables (useful for CI/CD)",
)
@click.version_option(version="1.0.0", prog_name="cms-sync")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path,
    provider: Optional[str],
    api_url: Optional[str],
    api_key: Optional[str],
    timeout: Optional[float],
    retry_attempts: Optional[int],
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """
    CMS Sync - Headless CMS product synchronization with fallback.

    Pulls the product catalog from Contentful, Strapi, Sanity or a custom
    REST CMS into the local product store, and serves products from CMS,
    cache or local data depending on CMS health.

    Examples:

        # Check connectivity using config/config.yaml
        $ cms-sync check

        # Preview what a sync would change
        $ cms-sync sync --dry-run

        # Sync one category against a local mock CMS
        $ cms-sync --api-url http://localhost:8001 --api-key key sync --category Desks

        # Disable rich output for CI/CD
        $ cms-sync --no-progress sync
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config
    ctx.obj["no_progress"] = no_progress
    ctx.obj["overrides"] = {
        "cms.provider": provider,
        "cms.api_url": api_url,
        "cms.api_key": api_key,
        "cms.timeout": timeout,
        "cms.retry_attempts": retry_attempts,
        "log_level": log_level.upper() if log_level else None,
    }


def _load_config(ctx: click.Context, extra: Optional[Dict[str, Any]] = None) -> AppConfig:
    overrides = dict(ctx.obj["overrides"])
    overrides.update(extra or {})
    try:
        return ConfigManager(ctx.obj["config_file"]).load_config(overrides)
    except ValueError as e:
        console.print(f"\n[red]Configuration error:[/red] {e}", style="bold red")
        sys.exit(2)


def _open_orchestrator(config: AppConfig, formatter: JSONOutputFormatter) -> SyncOrchestrator:
    """Build an orchestrator over the persisted store snapshots."""
    return SyncOrchestrator(
        config,
        product_store=InMemoryProductStore(formatter.load_records(str(config.store_path))),
        status_store=InMemorySyncStatusStore(formatter.load_status_records(str(config.status_path))),
    )


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Test the CMS connection and report its health."""
    config = _load_config(ctx)
    no_progress = ctx.obj["no_progress"]

    async def _check() -> Dict[str, Any]:
        async with SyncOrchestrator(config) as orchestrator:
            return await orchestrator.check_connection()

    try:
        report = asyncio.run(_check())
    except KeyboardInterrupt:
        console.print("\n[yellow]Check interrupted by user[/yellow]")
        sys.exit(130)

    connection = report["connection"]
    health = report["health"]

    if no_progress:
        console.print(f"Connection: {connection.status.value} ({connection.response_time_ms:.0f}ms)")
        if connection.error:
            console.print(f"Error: {connection.error}")
    else:
        table = Table(title="CMS Connection", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        for key, value in report["config"].items():
            table.add_row(key, str(value))
        table.add_row("status", connection.status.value)
        table.add_row("response time", f"{connection.response_time_ms:.0f}ms")
        table.add_row("healthy", str(health.is_healthy))
        table.add_row("version", health.version or "N/A")
        if connection.error:
            table.add_row("error", f"[red]{connection.error}[/red]")
        console.print(table)

    sys.exit(0 if connection.success else 1)


@main.command()
@click.option("--category", help="Only sync products in this category (skips removals)")
@click.option("--dry-run", is_flag=True, help="Compute changes without writing to the store")
@click.option("--force-update", is_flag=True, help="Update products even when not newer")
@click.option("--batch-size", "-b", type=int, help="Products per batch (overrides config)")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output JSON file path (overrides config)",
)
@click.option("--total-timeout", type=float, help="Sync timeout in seconds (overrides config)")
@click.pass_context
def sync(
    ctx: click.Context,
    category: Optional[str],
    dry_run: bool,
    force_update: bool,
    batch_size: Optional[int],
    output: Optional[Path],
    total_timeout: Optional[float],
) -> None:
    """Synchronize CMS products into the local product store."""
    config = _load_config(ctx, {"sync_batch_size": batch_size, "total_timeout": total_timeout})
    no_progress = ctx.obj["no_progress"]
    output_path = output if output else config.output_path
    formatter = JSONOutputFormatter()

    options = SyncOptions(
        category=category,
        dry_run=dry_run,
        batch_size=config.sync_batch_size,
        force_update=force_update,
    )

    _display_sync_summary(config, options, no_progress)

    orchestrator = _open_orchestrator(config, formatter)
    try:
        result = asyncio.run(_run_sync_with_progress(orchestrator, options, no_progress))
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync interrupted by user[/yellow]")
        sys.exit(130)
    except asyncio.TimeoutError:
        formatter.save_status_records(orchestrator.status_store.all(), str(config.status_path))
        console.print(f"\n[red]Error:[/red] sync timed out after {config.total_timeout}s", style="bold red")
        sys.exit(1)

    formatter.save_sync_result(result, str(output_path))
    formatter.save_status_records(orchestrator.status_store.all(), str(config.status_path))
    if not dry_run:
        formatter.save_records(orchestrator.product_store.all(), str(config.store_path))

    _display_sync_result(result, output_path, dry_run, no_progress)
    sys.exit(0 if result.success else 1)


async def _run_sync_with_progress(
    orchestrator: SyncOrchestrator,
    options: SyncOptions,
    no_progress: bool,
) -> SyncResult:
    """
    Run the sync with progress tracking.

    Args:
        orchestrator: Orchestrator over the loaded stores
        options: Sync options
        no_progress: Whether to disable progress bars

    Returns:
        Sync result
    """
    async with orchestrator:
        if no_progress:
            console.print("[cyan]Running sync...[/cyan]")
            return await orchestrator.run_sync(options)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("[cyan]Starting sync...", total=100)
            run = asyncio.ensure_future(orchestrator.run_sync(options))

            while not run.done():
                status = orchestrator.sync_service.get_sync_status()
                description = status.step_detail or status.current_step.value
                progress.update(task_id, completed=status.progress, description=f"[cyan]{description}")
                await asyncio.sleep(0.1)

            progress.update(task_id, completed=100, description="[green]Sync finished")
            return run.result()


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show persisted sync health."""
    config = _load_config(ctx)
    formatter = JSONOutputFormatter()
    orchestrator = _open_orchestrator(config, formatter)

    info = asyncio.run(orchestrator.sync_status())
    _display_status(info, len(orchestrator.product_store), ctx.obj["no_progress"])
    sys.exit(0 if info.is_healthy else 1)


@main.command()
@click.option("--category", help="Filter by category")
@click.option("--limit", type=int, help="Maximum number of products")
@click.option("--strategy", type=click.Choice(STRATEGIES), help="Fallback strategy (overrides config)")
@click.pass_context
def products(
    ctx: click.Context,
    category: Optional[str],
    limit: Optional[int],
    strategy: Optional[str],
) -> None:
    """List products through the CMS fallback chain."""
    config = _load_config(ctx, {"fallback_strategy": strategy})
    formatter = JSONOutputFormatter()
    orchestrator = _open_orchestrator(config, formatter)

    async def _list():
        async with orchestrator:
            return await orchestrator.list_products(ProductFilters(category=category, limit=limit))

    result = asyncio.run(_list())

    if ctx.obj["no_progress"]:
        console.print(f"Source: {result.source.value} ({len(result.data)} products)")
    else:
        table = Table(title=f"Products (source: {result.source.value})")
        table.add_column("Slug", style="cyan")
        table.add_column("Name")
        table.add_column("Category", style="magenta")
        table.add_column("Price", justify="right", style="green")
        table.add_column("In Stock", justify="center")
        for record in result.data:
            table.add_row(
                record.slug,
                record.name,
                record.category,
                f"${record.price:.2f}",
                "yes" if record.in_stock else "no",
            )
        console.print(table)

    if result.error:
        console.print(f"[yellow]Warning:[/yellow] {result.error}")


@main.command("serve-mock")
@click.option("--provider", type=click.Choice(PROVIDERS), default="custom", help="Wire format to serve")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", "-p", type=int, default=8001, help="Bind port")
@click.option("--api-key", help="Require this bearer token")
@click.option("--error-rate", type=float, default=0.0, help="Probability of simulated 5xx errors")
@click.option("--latency-ms", type=int, default=0, help="Extra latency per request in milliseconds")
@click.option("--seed", type=int, default=42, help="Random seed for error injection")
def serve_mock(
    provider: str,
    host: str,
    port: int,
    api_key: Optional[str],
    error_rate: float,
    latency_ms: int,
    seed: int,
) -> None:
    """Serve a mock CMS with a sample catalog."""
    app = create_mock_cms(
        provider=CMSProvider(provider),
        api_key=api_key,
        random_seed=seed,
        error_rate=error_rate,
        extra_latency_ms=latency_ms,
    )
    uvicorn.run(app, host=host, port=port)


def _display_sync_summary(config: AppConfig, options: SyncOptions, no_progress: bool) -> None:
    """Display sync settings before running."""
    if no_progress:
        return

    console.print("\n[bold cyan]Sync Configuration[/bold cyan]")
    console.print(f"  Provider: {config.cms.provider.value}")
    console.print(f"  API URL: {config.cms.api_url}")
    console.print(f"  Category: {options.category or 'all'}")
    console.print(f"  Batch Size: {options.batch_size}")
    console.print(f"  Dry Run: {options.dry_run}")
    console.print(f"  Timeout: {config.total_timeout}s")
    console.print()


def _display_sync_result(
    result: SyncResult,
    output_path: Path,
    dry_run: bool,
    no_progress: bool,
) -> None:
    """Display final sync summary."""
    if no_progress:
        mark = "✓" if result.success else "✗"
        console.print(
            f"{mark} Sync {'complete' if result.success else 'failed'}: "
            f"{result.products_added} added, {result.products_updated} updated, "
            f"{result.products_removed} removed, {len(result.errors)} errors"
        )
        console.print(f"{mark} Output saved to: {output_path}")
        return

    title = "Sync Complete!" if result.success else "Sync Failed"
    style = "green" if result.success else "red"
    console.print(f"\n[bold {style}]{title}[/bold {style}]" + (" [yellow](dry run)[/yellow]" if dry_run else "") + "\n")

    summary_table = Table(title="Execution Summary", show_header=False)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", style="green")
    summary_table.add_row("Added", str(result.products_added))
    summary_table.add_row("Updated", str(result.products_updated))
    summary_table.add_row("Removed", str(result.products_removed))
    summary_table.add_row("Duration", f"{result.duration_ms / 1000:.2f}s")
    summary_table.add_row("Errors", str(len(result.errors)))
    console.print(summary_table)
    console.print()

    if result.errors:
        error_table = Table(title="Errors")
        error_table.add_column("Operation", style="cyan")
        error_table.add_column("Product", style="magenta")
        error_table.add_column("Message", style="red")
        for error in result.errors:
            error_table.add_row(error.operation.value, error.slug or "-", error.message)
        console.print(error_table)
        console.print()

    console.print(f"[bold]Output saved to:[/bold] {output_path}")
    console.print()


def _display_status(info: SyncStatusInfo, product_count: int, no_progress: bool) -> None:
    """Display sync health."""
    last_success = info.last_successful_sync.isoformat() if info.last_successful_sync else "never"

    if no_progress:
        console.print(f"Healthy: {info.is_healthy}")
        console.print(f"Last successful sync: {last_success}")
        console.print(f"Local products: {product_count}")
        if info.last_error:
            console.print(f"Last error: {info.last_error}")
        return

    table = Table(title="Sync Status", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Healthy", "[green]yes[/green]" if info.is_healthy else "[red]no[/red]")
    table.add_row("Last successful sync", last_success)
    table.add_row(
        "Last attempted sync",
        info.last_attempted_sync.isoformat() if info.last_attempted_sync else "never",
    )
    table.add_row("Error count", str(info.error_count))
    table.add_row(
        "Days since last sync",
        "N/A" if info.days_since_last_sync == float("inf") else f"{info.days_since_last_sync:.1f}",
    )
    table.add_row("Local products", str(product_count))
    if info.last_error:
        table.add_row("Last error", f"[red]{info.last_error}[/red]")
    console.print(table)


if __name__ == "__main__":
    main()
