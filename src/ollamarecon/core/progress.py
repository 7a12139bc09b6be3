import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from rich.console import Console
from rich.control import Control
from rich.segment import ControlType

# back to column 0 and clear the old line
REDRAW = Control(ControlType.CARRIAGE_RETURN, (ControlType.ERASE_IN_LINE, 2))


@dataclass(frozen=True)
class ProgressSnapshot:
    current: int
    total: int
    elapsed: float
    eta: float

    @property
    def percent(self) -> float:
        return 100.0 * self.current / self.total if self.total else 100.0

    def render(self) -> str:
        return (
            f"Progress: {self.percent:.1f}% ({self.current}/{self.total})  "
            f"elapsed {_fmt(self.elapsed)}  eta {_fmt(self.eta)}"
        )


def _fmt(seconds: float) -> str:
    return str(timedelta(seconds=round(seconds)))


class ProgressTracker:
    """Thread-safe done/total counter that redraws one status line per step."""

    def __init__(
        self,
        total: int,
        console: Console | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._console = console
        self.total = total
        self.current = 0
        self._start = clock()

    def seed(self, already_done: int) -> None:
        with self._lock:
            self.current = already_done

    def _snapshot(self) -> ProgressSnapshot:
        elapsed = self._clock() - self._start
        eta = 0.0
        if self.current > 0:
            eta = elapsed / self.current * max(self.total - self.current, 0)
        return ProgressSnapshot(self.current, self.total, elapsed, eta)

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot()

    def increment(self) -> ProgressSnapshot:
        with self._lock:
            self.current += 1
            snap = self._snapshot()
            if self._console is not None:
                self._draw(snap)
        return snap

    def _draw(self, snap: ProgressSnapshot) -> None:
        # redirected output gets one line per step instead of a redrawn line
        if self._console.is_terminal:
            self._console.control(REDRAW)
            self._console.print(snap.render(), end="", highlight=False, soft_wrap=True)
        else:
            self._console.print(snap.render(), highlight=False, soft_wrap=True)
