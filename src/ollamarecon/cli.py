"""Ollama Recon CLI
------------------
Entry‑point for the Ollama Recon tool.
Finds hosts serving the Ollama API, lists their models and benchmarks them.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from .core.config import (
    CHECKPOINT_INTERVAL, DEFAULT_INPUT, DEFAULT_MODEL_FILTER, DEFAULT_OUTPUT,
    DEFAULT_PORT, DEFAULT_PROMPT, DEFAULT_STATE, DEFAULT_WORKERS, ScanConfig,
)
from .core.engine import Scanner, ScanSummary
from .core.errors import ReconError, StateCorrupt
from .core.models import HostStatus
from .core.state import ScanState
from .scanners import nmap as nmap_scan
from .utils.io import interface_mac

# ─────────────────────────────────────────────────────────────────────────────
# Globals & singletons
# ─────────────────────────────────────────────────────────────────────────────

load_dotenv()

app: typer.Typer = typer.Typer(add_completion=False, rich_markup_mode="rich")
console: Console = Console()

log = logging.getLogger("ollamarecon")
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# ─────────────────────────────────────────────────────────────────────────────
# Helper functions (not exposed as CLI commands)
# ─────────────────────────────────────────────────────────────────────────────


def _setup_logging(verbose: bool, log_file: Optional[Path]) -> None:
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()
    log.setLevel(logging.DEBUG)

    stream = logging.StreamHandler()
    stream.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(stream)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG if verbose else logging.INFO)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(fh)


def _interrupt(cancel: asyncio.Event) -> None:
    if not cancel.is_set():
        console.print("\n[yellow]Interrupt received, saving progress…[/]")
    cancel.set()


async def _run_scan(config: ScanConfig) -> ScanSummary:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _interrupt, cancel)
            installed.append(sig)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_interrupt, cancel))
    try:
        return await Scanner(config, console=console, cancel=cancel).run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _print_summary(summary: ScanSummary) -> None:
    counts = summary.statuses
    console.print(
        f"[bold]{summary.probed}[/] probed, "
        f"{counts[HostStatus.MODELED]} with models, "
        f"{counts[HostStatus.NO_MODEL]} without matching models, "
        f"{counts[HostStatus.NO_SERVICE]} not Ollama, "
        f"{counts[HostStatus.UNREACHABLE]} unreachable; "
        f"{summary.rows_written} rows written"
    )
    if counts[HostStatus.UNPROCESSED]:
        console.print(f"[yellow]{counts[HostStatus.UNPROCESSED]} addresses not processed yet[/]")


# ─────────────────────────────────────────────────────────────────────────────
# Typer commands
# ─────────────────────────────────────────────────────────────────────────────


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", envvar="OLLAMARECON_LOG_FILE", help="Also log to this file."
    ),
) -> None:
    """Find Ollama servers, list their models and measure how fast they answer."""
    _setup_logging(verbose, log_file)


@app.command()
def scan(
    input: Path = typer.Option(DEFAULT_INPUT, "--input", "-i", envvar="OLLAMARECON_INPUT",
                               help="Candidate addresses, one per line."),
    output: Path = typer.Option(DEFAULT_OUTPUT, "--output", "-o", envvar="OLLAMARECON_OUTPUT",
                                help="CSV file for results."),
    state: Path = typer.Option(DEFAULT_STATE, "--state", envvar="OLLAMARECON_STATE",
                               help="Checkpoint file used by --resume."),
    gateway: str = typer.Option("", "--gateway", envvar="OLLAMARECON_GATEWAY",
                                help="Gateway identifier (defaults to the eth0 MAC)."),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", envvar="OLLAMARECON_PORT"),
    workers: int = typer.Option(DEFAULT_WORKERS, "--workers", "-w", envvar="OLLAMARECON_WORKERS"),
    model_filter: str = typer.Option(DEFAULT_MODEL_FILTER, "--model-filter", "-m",
                                     envvar="OLLAMARECON_MODEL_FILTER",
                                     help="Only keep models whose name contains this."),
    prompt: str = typer.Option(DEFAULT_PROMPT, "--prompt", envvar="OLLAMARECON_PROMPT",
                               help="Prompt used for benchmarking."),
    no_bench: bool = typer.Option(False, "--no-bench", envvar="OLLAMARECON_NO_BENCH",
                                  help="List models without benchmarking them."),
    resume: bool = typer.Option(False, "--resume", help="Continue an interrupted scan."),
    ranges: Optional[Path] = typer.Option(None, "--ranges",
                                          help="Run nmap over these ranges to build --input first."),
    checkpoint_interval: float = typer.Option(CHECKPOINT_INTERVAL, "--checkpoint-interval",
                                              help="Seconds between state saves."),
) -> None:
    """Probe every address in the input file and write what answers to the CSV."""
    try:
        config = ScanConfig(
            input_path=input,
            output_path=output,
            state_path=state,
            gateway=gateway or interface_mac("eth0"),
            port=port,
            workers=workers,
            model_filter=model_filter,
            prompt=prompt,
            benchmark=not no_bench,
            resume=resume,
            checkpoint_interval=checkpoint_interval,
        )
        if ranges is not None:
            # a resume that would be refused must not rewrite the candidate list
            Scanner(config, console=console).load_state()
            if nmap_scan.ensure_tool("nmap", confirm=typer.confirm):
                console.print(f"[cyan]Running nmap over {escape(str(ranges))}…[/]")
                hosts = nmap_scan.discover(ranges, input, port)
                console.print(f"[cyan]{len(hosts)} hosts with port {port} open[/]")

        summary = asyncio.run(_run_scan(config))
    except ReconError as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        raise typer.Exit(2)

    _print_summary(summary)
    if summary.cancelled:
        console.print("[yellow]Scan interrupted; run again with --resume to continue.[/]")
        raise typer.Exit(1)
    console.print(f"[bold green]Scan complete → {escape(str(output))}[/]")


@app.command()
def discover(
    ranges: Path = typer.Argument(..., help="nmap target specs (CIDR, host, range), one per line."),
    output: Path = typer.Option(DEFAULT_INPUT, "--output", "-o", envvar="OLLAMARECON_INPUT",
                                help="Where to write the candidate list."),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", envvar="OLLAMARECON_PORT"),
) -> None:
    """Build the candidate list with nmap."""
    try:
        hosts = nmap_scan.discover(ranges, output, port)
    except ReconError as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        raise typer.Exit(2)
    console.print(f"[bold green]{len(hosts)} candidates → {escape(str(output))}[/]")


@app.command()
def status(
    state: Path = typer.Option(DEFAULT_STATE, "--state", envvar="OLLAMARECON_STATE"),
) -> None:
    """Show how far a saved scan got."""
    try:
        saved = ScanState.load(state)
    except StateCorrupt as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        raise typer.Exit(2)
    if saved is None:
        console.print(f"[yellow]No scan state at {escape(str(state))}[/]")
        raise typer.Exit(1)

    data = saved.to_dict()
    del data["scanned_addresses"]
    data["processed_addresses"] = saved.processed_count()
    console.print_json(data=data)


# ─────────────────────────────────────────────────────────────────────────────
# python -m ollamarecon.cli entry‑point fallback
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
