import asyncio
import csv
import logging
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from .models import ScanResult

log = logging.getLogger("ollamarecon.sink")

BASE_HEADER  = ["address", "model", "status"]
BENCH_HEADER = ["first_token_latency_ms", "tokens_per_sec"]


class ResultSink:
    """
    The only writer of the output CSV.

    `drain()` consumes ScanResults from a queue until it receives `None`,
    printing a summary and appending one row per model, in arrival order.
    """

    def __init__(
        self,
        path: Path,
        benchmark: bool,
        console: Console | None = None,
        append: bool = False,
    ) -> None:
        self.path = Path(path)
        self.benchmark = benchmark
        self.console = console or Console()
        self.append = append
        self.rows_written = 0
        self._fh: TextIO | None = None
        self._writer = None

    @property
    def header(self) -> list[str]:
        return BASE_HEADER + BENCH_HEADER if self.benchmark else list(BASE_HEADER)

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fresh = not self.append or not self.path.exists() or self.path.stat().st_size == 0
        self._fh = self.path.open("w" if not self.append else "a", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh)
        if fresh:
            self._writer.writerow(self.header)
            self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def rows(self, result: ScanResult) -> list[list[str]]:
        rows = []
        for model in result.models:
            row = [result.address, model.name, model.status_label]
            if self.benchmark:
                row += [f"{model.first_token_latency * 1000:.0f}", f"{model.tokens_per_sec:.1f}"]
            rows.append(row)
        return rows

    def write(self, result: ScanResult) -> None:
        rows = self.rows(result)
        try:
            self._writer.writerows(rows)
            self._fh.flush()
        except OSError as exc:
            log.error("writing results for %s to %s failed: %s", result.address, self.path, exc)
            return
        self.rows_written += len(rows)

    def render(self, result: ScanResult) -> Tree:
        # names come from remote hosts: plain Text, never markup
        tree = Tree(Text(result.address, style="bold"))
        for model in result.models:
            branch = tree.add(Text(model.name, style="cyan"))
            branch.add(Text(f"status: {model.status_label}"))
            if self.benchmark:
                branch.add(Text(f"first token: {model.first_token_latency * 1000:.0f} ms"))
                branch.add(Text(f"speed: {model.tokens_per_sec:.1f} tokens/s"))
        return tree

    async def drain(self, queue: "asyncio.Queue[ScanResult | None]") -> int:
        while True:
            result = await queue.get()
            if result is None:
                return self.rows_written
            self.write(result)
            self.console.print()
            self.console.print(self.render(result))
