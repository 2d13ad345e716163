"""CLI commands for wa-operator."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from wa_operator import __brand__, __logo__, __version__

app = typer.Typer(
    name="wa-operator",
    help=f"{__logo__} {__brand__} - Personal WhatsApp operator",
    no_args_is_help=True,
)

console = Console()


def _cli_fail(cause: str, fix: str | None = None, *, exit_code: int = 1) -> None:
    """Print a consistent CLI error block and exit."""
    console.print(f"[red]{cause}[/red]")
    if fix:
        console.print(f"[dim]Fix: {fix}[/dim]")
    raise typer.Exit(exit_code)


def _mark(ok: bool) -> str:
    return "[green]✓[/green]" if ok else "[red]✗[/red]"


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} {__brand__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """wa-operator - Personal WhatsApp operator."""
    pass


@app.command("config-init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config with defaults"),
):
    """Write the configuration file, keeping existing values unless --force."""
    from wa_operator.config.loader import (
        convert_keys,
        convert_to_camel,
        deep_merge_config,
        get_config_path,
        load_config,
        save_config,
    )
    from wa_operator.config.schema import Config

    config_path = get_config_path()

    if config_path.exists() and not force:
        existing_data = convert_to_camel(load_config(config_path).model_dump())
        default_data = convert_to_camel(Config().model_dump())
        merged = Config.model_validate(convert_keys(deep_merge_config(existing_data, default_data)))
        save_config(merged, config_path)
        console.print(f"[green]✓[/green] Merged config at {config_path} (existing values preserved)")
    else:
        save_config(Config(), config_path)
        console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("\n  Next: set [cyan]persona.ownerJid[/cyan] and [cyan]provider.apiKeys[/cyan], then")
    console.print("  run: [cyan]wa-operator run[/cyan]")


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Start the operator and keep it running until interrupted."""
    from wa_operator.config.loader import get_config_path, load_config
    from wa_operator.gateway import Gateway
    from wa_operator.logging_setup import configure_from

    config = load_config()
    configure_from(config.logging, verbose=verbose)

    if not config.channels.whatsapp.enabled:
        _cli_fail(
            "WhatsApp channel is disabled.",
            f"Set channels.whatsapp.enabled=true in {get_config_path()}",
        )
    if not config.persona.owner_jid:
        console.print("[yellow]Warning: persona.ownerJid not set; alerts and reminders are off[/yellow]")

    console.print(f"{__logo__} Starting {__brand__} as {config.persona.bot_name}...")
    gateway = Gateway(config)
    console.print(f"[green]✓[/green] Store: {gateway.store.counts()}")
    console.print(f"[green]✓[/green] Jobs: {', '.join(job.name for job in gateway.cron.list_jobs())}")

    try:
        asyncio.run(gateway.run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def status(
    hours: int = typer.Option(24, "--hours", help="Metrics window in hours"),
):
    """Show configuration, stored data and recent metrics."""
    from wa_operator.config.loader import get_config_path, load_config
    from wa_operator.observability.metrics import MetricsStore
    from wa_operator.store.snapshot import SnapshotStore

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} {__brand__} Status\n")
    console.print(f"Config: {config_path} {_mark(config_path.exists())}")
    console.print(f"Snapshot: {config.snapshot_path} {_mark(config.snapshot_path.exists())}")
    console.print(f"Model: {config.provider.model} ({len(config.provider.api_keys)} keys)")
    console.print(f"Owner: {config.persona.owner_jid or '[dim]not set[/dim]'}")
    console.print(f"Bridge: {config.channels.whatsapp.bridge_url}")

    counts = SnapshotStore(config.snapshot_path).load().counts()
    table = Table(title="Stored data")
    table.add_column("Collection", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)

    snap = MetricsStore(config.metrics_path).snapshot(hours=hours)
    metrics_table = Table(title=f"Last {snap['window_hours']}h")
    metrics_table.add_column("Metric", style="cyan")
    metrics_table.add_column("Value", justify="right")
    for outcome, count in sorted(snap["pipeline"]["outcomes"].items()):
        metrics_table.add_row(f"messages {outcome}", str(count))
    metrics_table.add_row("LLM calls", str(snap["llm"]["calls"]))
    metrics_table.add_row("LLM success", f"{snap['llm']['success_rate']}%")
    metrics_table.add_row("LLM p95 latency", f"{snap['llm']['latency_p95_ms']}ms")
    metrics_table.add_row("Job runs", str(snap["jobs"]["runs"]))
    metrics_table.add_row("Job success", f"{snap['jobs']['success_rate']}%")
    console.print(metrics_table)


if __name__ == "__main__":
    app()
