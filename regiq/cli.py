"""
Command-line interface for RegIQ.

Provides commands to query regulatory sources, run a sync across the
implemented agencies, inspect source health and serve the HTTP API.

Usage:
    regiq sources                       # List sources
    regiq query FDA --filter product_type=food
    regiq sync --source FDA --source WHO
    regiq health --check                # Query sources, then print breaker state
    regiq serve                         # Run the API server
"""

import asyncio
import json
import sys
import uuid
from typing import Any

import click

from regiq.config.settings import get_settings
from regiq.ingestion.registry import SourceAdapterRegistry
from regiq.ingestion.schemas import SourceFilter, SourceResult, SourceType
from regiq.observability.logging import bind_context, clear_context, get_logger, setup_logging
from regiq.observability.metrics import get_metrics

logger = get_logger(__name__)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """RegIQ - Multi-source regulatory data ingestion."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from regiq.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


def build_registry() -> SourceAdapterRegistry:
    """Registry used by every command (patched in tests)."""
    return SourceAdapterRegistry()


def parse_filter_option(raw: str) -> tuple[str, Any]:
    """
    Parse one ``--filter`` value.

    ``name=a,b`` becomes a list, ``name=min..max`` a date range (either
    side may be empty), anything else a plain string.
    """
    name, sep, value = raw.partition("=")
    name = name.strip()
    if not sep or not name:
        raise click.BadParameter(f"expected name=value, got {raw!r}", param_hint="--filter")

    value = value.strip()
    if ".." in value:
        low, _, high = value.partition("..")
        return name, {"min": low.strip() or None, "max": high.strip() or None}
    if "," in value:
        return name, [part.strip() for part in value.split(",") if part.strip()]
    return name, value


def _echo_result(result: SourceResult) -> None:
    if result.success:
        cache = ""
        if result.cache_info and result.cache_info.hit:
            cache = " (cached)"
        click.echo(click.style(f"  ✓ {result.source}: {len(result.data)} records{cache}", fg="green"))
    else:
        click.echo(click.style(f"  ✗ {result.source}: {result.error}", fg="red"))


@main.command()
def sources() -> None:
    """List sources and whether a real adapter backs each."""
    registry = build_registry()
    implemented = {
        s.value if isinstance(s, SourceType) else s for s in registry.get_implemented_sources()
    }

    click.echo("\nSources:")
    click.echo("-" * 40)
    for source in registry.get_available_sources():
        name = source.value if isinstance(source, SourceType) else source
        if name in implemented:
            click.echo(click.style(f"  {name:<16} implemented", fg="green"))
        else:
            click.echo(f"  {name:<16} placeholder")
    click.echo("-" * 40)
    click.echo(f"{len(implemented)} implemented, {len(registry.get_available_sources())} total")


@main.command()
@click.argument("source")
@click.option("--filter", "filters", multiple=True, help="Filter as name=value (can repeat)")
@click.option("--json", "as_json", is_flag=True, help="Print the raw SourceResult as JSON")
def query(source: str, filters: tuple[str, ...], as_json: bool) -> None:
    """Run one query against SOURCE."""
    parsed = dict(parse_filter_option(f) for f in filters)

    async def run() -> SourceResult:
        async with build_registry() as registry:
            return await registry.execute_query(
                SourceFilter(source_type=source.upper(), filters=parsed)
            )

    result = asyncio.run(run())

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        _echo_result(result)
        for record in result.data:
            click.echo(f"    [{record.urgency.value:<8}] {record.published_date[:10]}  {record.title}")

    if not result.success:
        sys.exit(1)


@main.command()
@click.option("--source", "selected", multiple=True, help="Source to sync (can repeat)")
@click.option("--json", "as_json", is_flag=True, help="Print per-source summary as JSON")
def sync(selected: tuple[str, ...], as_json: bool) -> None:
    """Query every implemented source (or those given) once."""

    async def run() -> list[SourceResult]:
        async with build_registry() as registry:
            targets = [s.upper() for s in selected] or [
                s.value if isinstance(s, SourceType) else s
                for s in registry.get_implemented_sources()
            ]
            return await registry.execute_multiple_queries(
                [SourceFilter(source_type=t) for t in targets]
            )

    bind_context(sync_run=uuid.uuid4().hex[:8])
    try:
        results = asyncio.run(run())
        logger.info(
            "Sync finished",
            sources=len(results),
            failed=sum(1 for r in results if not r.success),
            records=sum(len(r.data) for r in results),
        )
    finally:
        clear_context()

    if as_json:
        summary = [
            {
                "source": r.source,
                "success": r.success,
                "records": len(r.data),
                "error": r.error,
                "error_type": r.error_type.value if r.error_type else None,
            }
            for r in results
        ]
        click.echo(json.dumps(summary, indent=2))
    else:
        click.echo("\nSync Results:")
        click.echo("-" * 40)
        for result in results:
            _echo_result(result)
        click.echo("-" * 40)
        total = sum(len(r.data) for r in results)
        failed = sum(1 for r in results if not r.success)
        click.echo(f"{total} records from {len(results) - failed}/{len(results)} sources")

    if any(not r.success for r in results):
        sys.exit(1)


@main.command()
@click.option("--check", is_flag=True, help="Query every implemented source before reporting")
def health(check: bool) -> None:
    """Print breaker state for every source."""

    async def collect() -> dict:
        async with build_registry() as registry:
            if check:
                await registry.execute_multiple_queries(
                    [SourceFilter(source_type=s) for s in registry.get_implemented_sources()]
                )
            return registry.get_source_health()

    snapshot = asyncio.run(collect())

    click.echo("\nSource Health:")
    click.echo("-" * 60)

    all_healthy = True
    for name, status in snapshot.items():
        if not status.implemented:
            continue
        icon = "✓" if status.available else "✗"
        color = "green" if status.available else "red"
        line = f"  {icon} {name:<8} failures={status.failures} circuit_open={status.circuit_open}"
        if status.last_error:
            line += f" last_error={status.last_error}"
        click.echo(click.style(line, fg=color))
        if status.circuit_open:
            all_healthy = False

    placeholders = sum(1 for s in snapshot.values() if not s.implemented)
    click.echo(f"  ({placeholders} placeholder sources not shown)")
    click.echo("-" * 60)

    if all_healthy:
        click.echo(click.style("All implemented sources available!", fg="green"))
        sys.exit(0)
    else:
        click.echo(click.style("Some circuits are open!", fg="red"))
        sys.exit(1)


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the RegIQ API server."""
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
        "regiq.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
