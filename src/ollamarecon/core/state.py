import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..utils.io import atomic_write_text
from .config import Fingerprint
from .errors import StateCorrupt

log = logging.getLogger("ollamarecon.state")


class ScanState:
    """
    Resumable record of a scan: which addresses are done, how many there are,
    and the configuration they were scanned with.

    The processed map is shared by every worker; all access goes through
    `_lock`. Addresses are only ever added, never removed.
    """

    def __init__(
        self,
        fingerprint: Fingerprint,
        total_addresses: int = 0,
        scanned: dict[str, bool] | None = None,
        last_scan_time: datetime | None = None,
    ) -> None:
        self.fingerprint = fingerprint
        self.total_addresses = total_addresses
        self.last_scan_time = last_scan_time
        self._scanned: dict[str, bool] = dict(scanned or {})
        self._lock = threading.Lock()

    # ------------- public API -------------

    def is_processed(self, address: str) -> bool:
        with self._lock:
            return self._scanned.get(address, False)

    def mark_processed(self, address: str) -> None:
        with self._lock:
            self._scanned[address] = True

    def processed_count(self) -> int:
        with self._lock:
            return sum(1 for done in self._scanned.values() if done)

    def processed(self) -> set[str]:
        with self._lock:
            return {addr for addr, done in self._scanned.items() if done}

    def validate(self, current: Fingerprint) -> bool:
        return self.fingerprint.diff(current) is None

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            scanned = dict(self._scanned)
        fp = self.fingerprint
        return {
            "scanned_addresses": scanned,
            "last_scan_time": self.last_scan_time.isoformat() if self.last_scan_time else None,
            "total_addresses": self.total_addresses,
            "config_fingerprint": {
                "gateway_identifier": fp.gateway_identifier,
                "input_path": fp.input_path,
                "output_path": fp.output_path,
                "benchmarking_enabled": fp.benchmarking_enabled,
            },
        }

    def save(self, path: Path) -> None:
        self.last_scan_time = datetime.now(timezone.utc)
        atomic_write_text(Path(path), json.dumps(self.to_dict(), indent=2))
        log.debug("state saved to %s (%d processed)", path, self.processed_count())

    @classmethod
    def from_dict(cls, data: Any) -> "ScanState":
        try:
            scanned = data["scanned_addresses"]
            total = data["total_addresses"]
            fp = data["config_fingerprint"]
            fingerprint = Fingerprint(
                gateway_identifier=fp["gateway_identifier"],
                input_path=fp["input_path"],
                output_path=fp["output_path"],
                benchmarking_enabled=fp["benchmarking_enabled"],
            )
            raw_time = data.get("last_scan_time")
        except (KeyError, TypeError, AttributeError) as exc:
            raise StateCorrupt(f"state file is missing field {exc}") from exc

        if not isinstance(scanned, dict) or not all(
            isinstance(k, str) and isinstance(v, bool) for k, v in scanned.items()
        ):
            raise StateCorrupt("scanned_addresses must map address strings to booleans")
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise StateCorrupt("total_addresses must be a non-negative integer")
        if not isinstance(fingerprint.benchmarking_enabled, bool):
            raise StateCorrupt("benchmarking_enabled must be a boolean")
        for name in ("gateway_identifier", "input_path", "output_path"):
            if not isinstance(getattr(fingerprint, name), str):
                raise StateCorrupt(f"{name} must be a string")

        last_scan_time = None
        if raw_time is not None:
            try:
                last_scan_time = datetime.fromisoformat(raw_time)
            except (TypeError, ValueError) as exc:
                raise StateCorrupt(f"bad last_scan_time: {raw_time!r}") from exc

        return cls(fingerprint, total, scanned, last_scan_time)

    @classmethod
    def load(cls, path: Path) -> "ScanState | None":
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StateCorrupt(f"cannot read state file {path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StateCorrupt(f"state file {path} is not valid JSON: {exc}") from exc
        return cls.from_dict(data)


class Checkpointer:
    """Saves a ScanState every `interval` seconds until stopped, then once more."""

    def __init__(self, state: ScanState, path: Path, interval: float) -> None:
        self.state = state
        self.path = Path(path)
        self.interval = interval
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="checkpointer")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await asyncio.to_thread(self.state.save, self.path)
            except OSError as exc:
                log.error("checkpoint failed: %s", exc)

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
        self.save_now()

    def save_now(self) -> bool:
        try:
            self.state.save(self.path)
        except OSError as exc:
            log.error("saving final scan state failed: %s", exc)
            return False
        return True
