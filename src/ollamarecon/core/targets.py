import ipaddress
import logging
from collections.abc import Iterator
from pathlib import Path

from ..utils.io import touch
from .errors import PreconditionError

log = logging.getLogger("ollamarecon.targets")


def parse_address(line: str) -> str | None:
    """Return the trimmed line if it is an IPv4/IPv6 literal, else None."""
    candidate = line.strip()
    if not candidate:
        return None
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


class TargetSource:
    """
    Candidate addresses read lazily from a text file.

    Every iteration re-opens the file, so `count()` and `__iter__()` are two
    independent passes over the same content. Repeated addresses are yielded
    once.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def ensure_exists(self) -> None:
        if self.path.is_dir():
            raise PreconditionError(f"input file {self.path} is a directory")
        if self.path.exists():
            return
        touch(self.path)
        raise PreconditionError(
            f"input file {self.path} did not exist; an empty one was created. "
            "Add the addresses to scan (one per line) and run again."
        )

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        try:
            with self.path.open(encoding="utf-8", errors="replace") as fh:
                for line in fh:
                    address = parse_address(line)
                    if address is None or address in seen:
                        continue
                    seen.add(address)
                    yield address
        except OSError as exc:
            raise PreconditionError(f"cannot read input file {self.path}: {exc}") from exc

    def count(self) -> int:
        total = sum(1 for _ in self)
        log.info("%d valid addresses in %s", total, self.path)
        return total
