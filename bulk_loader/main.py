from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer

from bulk_loader.config import Settings, load_config_file
from bulk_loader.errors import ConfigError, LoaderError
from bulk_loader.infrastructure.db_factory import build_dsn, check_connection, mask_dsn
from bulk_loader.orchestrator import run_load
from bulk_loader.reporter import print_summary
from bulk_loader.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Parallel CSV bulk loader CLI.")
log = get_logger(__name__)

EXIT_FAILED = 1
EXIT_PARTIAL = 2


def _load_settings(config: Path, **overrides) -> Settings:
    try:
        return load_config_file(config, **overrides)
    except ConfigError as exc:
        typer.echo(f"err:: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from exc


@app.command()
def info(
    config: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON config file."),
) -> None:
    """
    Show effective configuration values.
    """
    settings = _load_settings(config)
    typer.echo(
        f"DB={mask_dsn(build_dsn(settings))} | table={settings.db_table} | "
        f"pool=({settings.db_max_idle_conns},{settings.db_max_open_conns}) "
        f"workers={settings.total_worker} retry_max_attempts={settings.retry_max_attempts} "
        f"debug={settings.debug}"
    )


@app.command()
def check(
    config: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON config file."),
) -> None:
    """
    Verify the database is reachable.
    """
    settings = _load_settings(config)
    configure_logging(level=settings.effective_log_level, json_logs=settings.json_logs)
    try:
        version = check_connection(build_dsn(settings))
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"err:: connection failed: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from exc
    typer.echo(f"OK: {version}")


@app.command()
def load(
    config: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON config file."),
    data: Path = typer.Argument(..., exists=True, dir_okay=False, help="Delimited data file."),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Override total_worker."
    ),
    table: Optional[str] = typer.Option(None, "--table", "-t", help="Override db_table."),
    max_attempts: Optional[int] = typer.Option(
        None,
        "--max-attempts",
        min=0,
        help="Attempts per record before dead-lettering (0 retries forever).",
    ),
    dead_letter: Optional[Path] = typer.Option(
        None, "--dead-letter", help="CSV file receiving rejected records."
    ),
    delimiter: Optional[str] = typer.Option(
        None, "--delimiter", "-d", help="Field delimiter (detected when omitted)."
    ),
    debug: Optional[bool] = typer.Option(
        None, "--debug/--no-debug", help="Enable per-worker progress logging."
    ),
    json_logs: Optional[bool] = typer.Option(None, "--json-logs/--text-logs", help="Log format."),
    persist: bool = typer.Option(False, "--persist/--no-persist", help="Write results JSON."),
    results_dir: Path = typer.Option(Path("results"), "--results-dir", help="Results directory."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """
    Load DATA into the configured table using a pool of insert workers.
    """
    settings = _load_settings(
        config,
        total_worker=workers,
        db_table=table,
        retry_max_attempts=max_attempts,
        dead_letter_path=dead_letter,
        csv_delimiter=delimiter,
        debug=debug,
        json_logs=json_logs,
    )
    configure_logging(level=settings.effective_log_level, json_logs=settings.json_logs)
    log.info(
        "Config loaded",
        extra={
            "dsn": mask_dsn(build_dsn(settings)),
            "db_max_idle_conns": settings.db_max_idle_conns,
            "db_max_open_conns": settings.db_max_open_conns,
            "total_worker": settings.total_worker,
            "db_table": settings.db_table,
            "data_path": str(data),
            "debug": settings.debug,
        },
    )

    try:
        result = run_load(
            data,
            settings,
            failure_policy="tolerant",
            persist=persist,
            results_dir=results_dir,
        )
    except LoaderError as exc:
        log.error(f"Load aborted: {exc}")
        typer.echo(f"err:: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILED) from exc

    if as_json:
        typer.echo(json.dumps(result, indent=2, default=str))
    else:
        print_summary(result)

    if result.get("error"):
        raise typer.Exit(code=EXIT_FAILED)
    if result.get("source_error") or result.get("dead_lettered"):
        raise typer.Exit(code=EXIT_PARTIAL)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
