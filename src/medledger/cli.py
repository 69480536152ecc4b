"""Typer-based CLI for medledger."""

import logging
import random
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .bench.driver import BenchmarkSession, InsertWorkload, QueryWorkload
from .bench.runner import RunSummary, run_workload
from .bench.sink import LatencySink, summarize_latencies
from .config import BenchConfig
from .errors import MedLedgerError
from .ledger.client import ClientContext, LocalLedgerClient, get_ledger_client
from .models.transaction import TransactionPayload
from .schemas import RECORD_SCHEMAS, SOURCES
from .store import RecordStore
from .stream.tokenizer import header_length, partition_source

app = typer.Typer(
    name="medledger",
    help="medledger - clinical record store and ledger benchmark harness",
    add_completion=False,
)

console = Console()


@app.callback()
def main(
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging",
    ),
):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(**cli_overrides) -> BenchConfig:
    try:
        return BenchConfig.from_env(cli_overrides=cli_overrides)
    except MedLedgerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)


def _client(config: BenchConfig) -> LocalLedgerClient:
    return get_ledger_client(
        config.ledger_db_path,
        config.contract_name,
        config.contract_version,
        RecordStore(config.schemas()),
    )


def _session_factory(config: BenchConfig, client: LocalLedgerClient, sink: LatencySink):
    sink.sink_path.parent.mkdir(parents=True, exist_ok=True)

    def build(worker: int) -> BenchmarkSession:
        return BenchmarkSession(
            client=client,
            context=ClientContext(client_id=f"worker{worker}"),
            sink=sink,
            contract_name=config.contract_name,
            contract_version=config.contract_version,
        )

    return build


def _print_summary(summary: RunSummary, sink_path: Path) -> None:
    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Workers", str(summary.workers))
    table.add_row("Succeeded", str(summary.succeeded))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Exhausted workers", str(summary.exhausted_workers))
    table.add_row("Elapsed (s)", f"{summary.elapsed_s:.2f}")
    table.add_row("Throughput (tx/s)", f"{summary.throughput_tps:.1f}")
    for name, count in sorted(summary.errors.items()):
        table.add_row(f"  {name}", str(count))
    console.print(table)
    console.print(f"[dim]Latency samples appended to {sink_path}[/dim]")


@app.command()
def insert(
    record_type: str = typer.Argument(..., help=f"Record type: {', '.join(RECORD_SCHEMAS)}"),
    source: str = typer.Option(
        None,
        "--source",
        "-s",
        help="Source CSV (default: <data_dir>/<standard file name>)",
    ),
    start_offset: int = typer.Option(
        None,
        "--start-offset",
        help="Byte offset of the first record (default: known header length, or past the first line of --source)",
    ),
    iterations: int = typer.Option(1, "--iterations", "-n", help="Transactions per worker"),
    workers: int = typer.Option(1, "--workers", "-w", help="Concurrent workers (disjoint line ranges)"),
    ledger_db: str = typer.Option(None, "--ledger-db", help="SQLite world-state path"),
    sink: str = typer.Option(None, "--sink", help="Latency sink file"),
):
    """Stream records from a source file and insert one per transaction.

    With several workers the source is split into line-aligned byte ranges,
    so no two workers insert the same line.
    """
    config = _load_config(ledger_db_path=ledger_db, sink_path=sink)

    if record_type not in RECORD_SCHEMAS:
        console.print(f"[red]Error: Unknown record type {record_type!r}[/red]")
        raise typer.Exit(code=1)

    if source:
        source_path = Path(source)
    elif record_type in SOURCES:
        source_path = config.data_dir / SOURCES[record_type].filename
    else:
        console.print(f"[red]Error: No standard source for {record_type}; pass --source[/red]")
        raise typer.Exit(code=1)

    if not source_path.exists():
        console.print(f"[red]Error: Source file not found: {source_path}[/red]")
        raise typer.Exit(code=1)

    if start_offset is None:
        # A standard extract has a fixed header; any other file skips its first line.
        if source:
            start_offset = header_length(source_path)
        else:
            start_offset = SOURCES[record_type].header_bytes

    try:
        ranges = partition_source(source_path, start_offset, workers)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    schemas = config.schemas()
    client = _client(config)
    latency_sink = LatencySink(config.sink_path)

    def build_workload(worker: int) -> InsertWorkload:
        start, end = ranges[worker]
        return InsertWorkload.from_source(
            record_type,
            source_path,
            start_offset=start,
            end_offset=end,
            separator=config.separator,
            schemas=schemas,
            timeout_ms=config.insert_timeout_ms,
        )

    try:
        summary = run_workload(
            build_workload,
            _session_factory(config, client, latency_sink),
            iterations=iterations,
            workers=workers,
        )
    except MedLedgerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    _print_summary(summary, config.sink_path)


@app.command()
def query(
    iterations: int = typer.Option(1, "--iterations", "-n", help="Queries per worker"),
    workers: int = typer.Option(1, "--workers", "-w", help="Concurrent workers"),
    id_min: int = typer.Option(None, "--id-min", help="Lowest patient id to draw"),
    id_max: int = typer.Option(None, "--id-max", help="Highest patient id to draw"),
    seed: int = typer.Option(None, "--seed", help="Random seed (per-worker streams derive from it)"),
    ledger_db: str = typer.Option(None, "--ledger-db", help="SQLite world-state path"),
    sink: str = typer.Option(None, "--sink", help="Latency sink file"),
):
    """Query random patient ids and record per-query latency."""
    config = _load_config(
        ledger_db_path=ledger_db,
        sink_path=sink,
        query_id_min=id_min,
        query_id_max=id_max,
    )
    client = _client(config)
    latency_sink = LatencySink(config.sink_path)

    def build_workload(worker: int) -> QueryWorkload:
        rng = random.Random(seed + worker) if seed is not None else None
        return QueryWorkload(
            id_min=config.query_id_min,
            id_max=config.query_id_max,
            timeout_ms=config.query_timeout_ms,
            rng=rng,
        )

    try:
        summary = run_workload(
            build_workload,
            _session_factory(config, client, latency_sink),
            iterations=iterations,
            workers=workers,
        )
    except MedLedgerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    _print_summary(summary, config.sink_path)


@app.command()
def stats(
    sink: str = typer.Option(None, "--sink", help="Latency sink file"),
):
    """Summarize the durations recorded in a latency sink."""
    config = _load_config(sink_path=sink)
    summary = summarize_latencies(config.sink_path)

    if summary.count == 0:
        console.print(f"[dim]No latency samples in {config.sink_path}[/dim]")
        return

    table = Table(title=f"Latency ({summary.count} samples, ms)")
    table.add_column("min", style="cyan")
    table.add_column("mean", style="cyan")
    table.add_column("p50", style="magenta")
    table.add_column("p95", style="magenta")
    table.add_column("p99", style="magenta")
    table.add_column("max", style="cyan")
    table.add_row(
        str(summary.min_ms),
        f"{summary.mean_ms:.1f}",
        f"{summary.p50_ms:.0f}",
        f"{summary.p95_ms:.0f}",
        f"{summary.p99_ms:.0f}",
        str(summary.max_ms),
    )
    console.print(table)
    if summary.skipped_lines:
        console.print(f"[yellow]Skipped {summary.skipped_lines} malformed line(s)[/yellow]")


@app.command("read-patient")
def read_patient(
    subject_id: str = typer.Argument(..., help="Patient subject id"),
    ledger_db: str = typer.Option(None, "--ledger-db", help="SQLite world-state path"),
):
    """Print a stored patient record."""
    config = _load_config(ledger_db_path=ledger_db)
    client = _client(config)
    try:
        results = client.query(
            ClientContext(client_id="cli"),
            config.contract_name,
            config.contract_version,
            TransactionPayload(target_function="readPatient", arguments=[subject_id]),
            config.query_timeout_ms,
        )
    except MedLedgerError as e:
        cause = e.__cause__ or e
        console.print(f"[red]Error: {cause}[/red]")
        raise typer.Exit(code=1)

    for result in results:
        console.print_json(result.result.decode("utf-8"))


@app.command("show-config")
def show_config():
    """Print the effective configuration as TOML."""
    config = _load_config()
    console.print(config.to_toml_str(), markup=False, highlight=False)


if __name__ == "__main__":
    app()
