"""
Command-line interface for grantsync.

Provides commands to sync the program catalog, run matching, serve the
API, initialize the database, and run diagnostic checks.

Usage:
    grantsync init-db               # Create tables
    grantsync sync                  # Sync every configured registry
    grantsync sync --mock           # Sync synthetic records
    grantsync sync-status           # Show per-registry sync status
    grantsync match <customer-id>   # Run matching for a customer
    grantsync serve                 # Start the API server
    grantsync health                # Check service health
"""

import asyncio
import sys

import click

from grantsync.config.settings import get_settings
from grantsync.ingestion.schemas import DataSource
from grantsync.observability.logging import setup_logging
from grantsync.observability.metrics import get_metrics
from grantsync.observability.tracing import configure_tracing

SOURCE_CHOICES = [s.value for s in DataSource]


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """grantsync - Government support program catalog sync and matching."""
    setup_logging(level="DEBUG" if debug else None)
    configure_tracing(get_settings())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from grantsync.catalog.repository import ProgramRepository
    from grantsync.matching.repository import MatchingResultRepository
    from grantsync.storage.database import Database
    from grantsync.sync.repository import SyncMetadataRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            # matching_results references programs
            await ProgramRepository(db).create_table()
            await SyncMetadataRepository(db).create_table()
            await MatchingResultRepository(db).create_table()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--mock", is_flag=True, help="Use mock connectors")
@click.option(
    "--source", "sources", multiple=True, type=click.Choice(SOURCE_CHOICES),
    help="Only sync this registry (repeatable)",
)
@click.option("--concurrency", default=None, type=int, help="Registries synced in parallel")
@click.option("--deadline", default=None, type=float, help="Run budget in seconds")
@click.option("--incremental", is_flag=True, help="Only fetch records newer than the last sync")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def sync(
    mock: bool,
    sources: tuple[str, ...],
    concurrency: int | None,
    deadline: float | None,
    incremental: bool,
    metrics: bool,
) -> None:
    """Sync every configured registry into the catalog once."""
    from grantsync.catalog.repository import ProgramRepository
    from grantsync.ingestion.connectors import create_connectors, create_mock_connectors
    from grantsync.storage.database import Database
    from grantsync.sync.config import SyncConfig
    from grantsync.sync.orchestrator import ProgramSyncOrchestrator
    from grantsync.sync.repository import SyncMetadataRepository

    overrides: dict = {}
    if concurrency is not None:
        overrides["concurrency"] = concurrency
    if incremental:
        overrides["incremental"] = True
    config = SyncConfig(**overrides)

    if mock:
        connectors = create_mock_connectors()
        if sources:
            connectors = [c for c in connectors if c.data_source in sources]
    else:
        connectors = create_connectors(
            get_settings(),
            page_size=config.page_size,
            max_pages=config.max_pages,
            only=list(sources) or None,
        )

    if not connectors:
        click.echo(click.style("No registries configured. Use --mock or set API keys.", fg="yellow"))
        sys.exit(1)

    async def run():
        if metrics:
            get_metrics().start_server()

        db = Database()
        await db.connect()

        try:
            async with ProgramSyncOrchestrator(
                connectors,
                ProgramRepository(db),
                SyncMetadataRepository(db),
                config,
            ) as orchestrator:
                return await orchestrator.sync_all(deadline=deadline)
        finally:
            await db.close()

    stats = asyncio.run(run())

    click.echo("\nSync Results:")
    click.echo("-" * 60)
    for result in stats.results:
        if result.success:
            click.echo(click.style(
                f"  ✓ {result.data_source:15s} {result.count:5d} programs "
                f"({result.skipped} skipped, {result.duration_seconds:.1f}s)",
                fg="green",
            ))
        else:
            click.echo(click.style(
                f"  ✗ {result.data_source:15s} {result.error}",
                fg="red",
            ))
    click.echo("-" * 60)
    click.echo(
        f"  {stats.succeeded}/{stats.total} sources succeeded, "
        f"{stats.program_count} programs upserted"
    )

    sys.exit(0 if stats.failed == 0 else 1)


@main.command("sync-status")
def sync_status() -> None:
    """Show per-registry sync status."""
    from grantsync.catalog.repository import ProgramRepository
    from grantsync.storage.database import Database
    from grantsync.sync.repository import SyncMetadataRepository

    async def run():
        db = Database()
        await db.connect()

        try:
            rows = await SyncMetadataRepository(db).list_all()
            counts = await ProgramRepository(db).count_by_source()

            if not rows:
                click.echo("No sync has run yet.")
                return

            click.echo("\nSync Status")
            click.echo("=" * 72)
            for meta in rows:
                last = (
                    meta.last_synced_at.strftime("%Y-%m-%d %H:%M:%S UTC")
                    if meta.last_synced_at else "never"
                )
                last_ok = (
                    meta.last_success_at.strftime("%Y-%m-%d %H:%M:%S UTC")
                    if meta.last_success_at else "never"
                )
                color = "green" if meta.last_succeeded else "red"
                click.echo(f"  {meta.data_source}")
                click.echo(f"    Last synced:  {last}")
                click.echo(f"    Last success: {last_ok}")
                click.echo(f"    Sync count:   {meta.sync_count}")
                click.echo(f"    Programs:     {counts.get(meta.data_source, 0)}")
                click.echo(click.style(f"    Last result:  {meta.last_result}", fg=color))
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("customer_id")
@click.option("--min-score", default=None, type=click.IntRange(0, 100), help="Minimum score")
@click.option("--max-results", default=None, type=click.IntRange(1, 500), help="Maximum results")
@click.option("--refresh", is_flag=True, help="Recompute even if results are stored")
def match(
    customer_id: str,
    min_score: int | None,
    max_results: int | None,
    refresh: bool,
) -> None:
    """Run matching for one customer and print the ranking."""
    import uuid

    from grantsync.catalog.repository import ProgramRepository
    from grantsync.errors import CustomerNotFoundError
    from grantsync.matching.engine import MatchingEngine
    from grantsync.matching.repository import CustomerRepository, MatchingResultRepository
    from grantsync.storage.database import Database

    try:
        uuid.UUID(customer_id)
    except ValueError:
        raise click.BadParameter("must be a UUID", param_hint="CUSTOMER_ID")

    async def run():
        db = Database()
        await db.connect()

        try:
            engine = MatchingEngine(
                ProgramRepository(db),
                MatchingResultRepository(db),
                CustomerRepository(db),
            )
            return await engine.match(
                customer_id,
                min_score=min_score,
                max_results=max_results,
                force_refresh=refresh,
            )
        finally:
            await db.close()

    try:
        results = asyncio.run(run())
    except CustomerNotFoundError as e:
        click.echo(click.style(str(e), fg="red"))
        sys.exit(1)

    if not results:
        click.echo("No matching programs.")
        return

    click.echo(f"\nTop {len(results)} programs for {customer_id}")
    click.echo("-" * 72)
    for rank, result in enumerate(results, start=1):
        title = (result.program or {}).get("title", result.program_id)
        click.echo(
            f"  {rank:3d}. [{result.score:3d}] {title}"
        )
        click.echo(
            f"       industry={result.industry_score} location={result.location_score} "
            f"keyword={result.keyword_score} "
            f"keywords={', '.join(result.matched_keywords) or '-'}"
        )


@main.command("backfill-attachments")
@click.option("--limit", default=500, help="Maximum programs to update")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing")
def backfill_attachments(limit: int, dry_run: bool) -> None:
    """Fill missing 기업마당 attachment URLs from stored raw payloads."""
    from grantsync.catalog.repository import ProgramRepository
    from grantsync.ingestion.normalizer import rules_for
    from grantsync.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = ProgramRepository(db)
            source = DataSource.BIZINFO.value
            rules = rules_for(source)
            programs = await repo.list_missing_attachments(source, limit=limit)

            candidates = [
                (program, url)
                for program in programs
                if (url := rules.attachment_url(program.raw_data))
            ]

            if dry_run:
                for program, url in candidates:
                    click.echo(f"  {program.external_id}: {url}")
                click.echo(
                    f"Would update {len(candidates)} of {len(programs)} "
                    "programs without attachments"
                )
                return

            updated = 0
            for program, url in candidates:
                if await repo.set_attachment_url(program.id, url):
                    updated += 1
            click.echo(f"Updated {updated} of {len(programs)} programs without attachments")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from grantsync.storage.database import Database
            async with Database() as db:
                results["postgres"] = await db.health_check()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Registries
        settings = get_settings()
        results["bizinfo_configured"] = settings.bizinfo_configured
        results["kstartup_configured"] = settings.kstartup_configured
        results["kocca_pims_configured"] = settings.kocca_pims_configured
        results["kocca_finance_configured"] = settings.kocca_finance_configured
        results["seoul_tp_configured"] = settings.seoul_tp_configured
        results["gyeonggi_tp_configured"] = settings.gyeonggi_tp_configured
        results["cron_secret_configured"] = bool(settings.cron_secret)

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        if results["postgres"]:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "grantsync.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
