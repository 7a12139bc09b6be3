"""Scan orchestration
---------------------
Feeder -> bounded address queue -> N workers -> result queue -> ResultSink,
with a Checkpointer saving ScanState in the background. Everything runs as
tasks on one event loop and stops when `cancel` is set.
"""

import asyncio
import contextlib
import logging
from collections import Counter
from dataclasses import dataclass, field

import httpx
from rich.console import Console

from ..scanners.ollama import OllamaProbe, PortCheck, check_port
from .config import ScanConfig
from .errors import FingerprintMismatch
from .models import HostStatus, ScanResult
from .progress import ProgressTracker
from .sink import ResultSink
from .state import Checkpointer, ScanState
from .targets import TargetSource

log = logging.getLogger("ollamarecon.engine")


@dataclass
class ScanSummary:
    total: int = 0
    already_processed: int = 0
    statuses: Counter = field(default_factory=Counter)
    rows_written: int = 0
    cancelled: bool = False

    @property
    def probed(self) -> int:
        return sum(
            n for s, n in self.statuses.items()
            if s not in (HostStatus.SKIPPED, HostStatus.UNPROCESSED)
        )


class WorkerPool:
    """Fixed number of workers sharing one bounded queue of addresses."""

    def __init__(
        self,
        size: int,
        probe: OllamaProbe,
        state: ScanState,
        progress: ProgressTracker,
        summary: ScanSummary,
    ) -> None:
        self.size = size
        self.probe = probe
        self.state = state
        self.progress = progress
        self.summary = summary

    async def run(
        self,
        source: TargetSource,
        results: "asyncio.Queue[ScanResult | None]",
        cancel: asyncio.Event,
        sink: asyncio.Task | None = None,
    ) -> bool:
        """
        Process every address in `source`. Returns True if cancelled.

        A failure of the feeder, of any worker or of the `sink` task draining
        `results` is re-raised here after the remaining workers are cancelled.
        """
        addresses: asyncio.Queue[str | None] = asyncio.Queue(maxsize=self.size * 2)
        feeder = asyncio.create_task(self._feed(source, addresses), name="feeder")
        pending = {
            asyncio.create_task(self._work(addresses, results, cancel), name=f"worker-{i}")
            for i in range(self.size)
        }
        stop = asyncio.create_task(cancel.wait(), name="cancel-watch")
        watched = {stop, feeder}
        if sink is not None:
            watched.add(sink)
        try:
            while pending:
                done, _ = await asyncio.wait(pending | watched, return_when=asyncio.FIRST_COMPLETED)
                if stop in done:
                    log.warning("cancellation requested, %d workers still busy", len(pending))
                    break
                for task in done:
                    task.result()
                    if task is sink:
                        raise RuntimeError("result sink stopped before the workers finished")
                    pending.discard(task)
                    watched.discard(task)
        finally:
            stop.cancel()
            feeder.cancel()
            for task in pending:
                task.cancel()
            await asyncio.gather(feeder, stop, *pending, return_exceptions=True)
        return cancel.is_set()

    async def _feed(self, source: TargetSource, addresses: "asyncio.Queue[str | None]") -> None:
        for address in source:
            await addresses.put(address)
        for _ in range(self.size):
            await addresses.put(None)

    async def _work(
        self,
        addresses: "asyncio.Queue[str | None]",
        results: "asyncio.Queue[ScanResult | None]",
        cancel: asyncio.Event,
    ) -> None:
        while not cancel.is_set():
            address = await addresses.get()
            if address is None:
                return
            if self.state.is_processed(address):
                # already counted by ProgressTracker.seed()
                self.summary.statuses[HostStatus.SKIPPED] += 1
                continue

            outcome = await self.probe.probe(address)
            if outcome.result is not None:
                await results.put(outcome.result)
            # no await between the put and the mark: a processed address
            # always has its result on the sink's queue
            self.state.mark_processed(address)
            self.summary.statuses[outcome.status] += 1
            self.progress.increment()


class Scanner:
    """Runs one scan described by a ScanConfig."""

    def __init__(
        self,
        config: ScanConfig,
        console: Console | None = None,
        cancel: asyncio.Event | None = None,
        client: httpx.AsyncClient | None = None,
        port_check: PortCheck = check_port,
    ) -> None:
        self.config = config
        self.console = console or Console()
        self.cancel = cancel or asyncio.Event()
        self.client = client
        self.port_check = port_check

    def load_state(self) -> tuple[ScanState, bool]:
        """Existing state when resuming with a matching fingerprint, else a fresh one."""
        current = self.config.fingerprint()
        if self.config.resume:
            state = ScanState.load(self.config.state_path)
            if state is not None:
                mismatch = state.fingerprint.diff(current)
                if mismatch is not None:
                    raise FingerprintMismatch(*mismatch)
                log.info("resuming: %d addresses already processed", state.processed_count())
                return state, True
            log.info("no state file at %s, starting a fresh scan", self.config.state_path)
        return ScanState(current), False

    def _make_client(self) -> httpx.AsyncClient:
        cfg = self.config
        limits = httpx.Limits(
            max_connections=cfg.workers,
            max_keepalive_connections=min(cfg.workers, 100),
            keepalive_expiry=90.0,
        )
        return httpx.AsyncClient(limits=limits, timeout=cfg.probe_timeout, trust_env=False)

    async def run(self) -> ScanSummary:
        cfg = self.config
        source = TargetSource(cfg.input_path)
        source.ensure_exists()
        state, resumed = self.load_state()

        if state.total_addresses == 0:
            state.total_addresses = source.count()
        summary = ScanSummary(total=state.total_addresses, already_processed=state.processed_count())
        progress = ProgressTracker(summary.total, self.console)
        progress.seed(summary.already_processed)

        sink = ResultSink(cfg.output_path, cfg.benchmark, self.console, append=resumed)
        results: asyncio.Queue[ScanResult | None] = asyncio.Queue(maxsize=cfg.result_queue_size)
        checkpointer = Checkpointer(state, cfg.state_path, cfg.checkpoint_interval)

        async with contextlib.AsyncExitStack() as stack:
            client = self.client or await stack.enter_async_context(self._make_client())
            probe = OllamaProbe(cfg, client, self.port_check)
            pool = WorkerPool(cfg.workers, probe, state, progress, summary)

            sink.open()
            stack.callback(sink.close)
            sink_task = asyncio.create_task(sink.drain(results), name="sink")
            checkpointer.start()
            try:
                summary.cancelled = await pool.run(source, results, self.cancel, sink=sink_task)
                closing = asyncio.ensure_future(results.put(None))
                await asyncio.wait({closing, sink_task}, return_when=asyncio.FIRST_COMPLETED)
                closing.cancel()
                summary.rows_written = await sink_task
            finally:
                if not sink_task.done():
                    sink_task.cancel()
                    await asyncio.gather(sink_task, return_exceptions=True)
                await checkpointer.stop()

        left = summary.total - state.processed_count()
        if left > 0:
            summary.statuses[HostStatus.UNPROCESSED] = left

        self.console.print()
        log.info(
            "scan %s: %d probed, %d rows written to %s",
            "interrupted" if summary.cancelled else "finished",
            summary.probed, summary.rows_written, cfg.output_path,
        )
        return summary
