from typing import Any, Callable, List, Optional
from pathlib import Path
import logging, os, shlex, tempfile, nmap

from ..utils.io import tool_exists
from ..core.errors import ExternalToolError, PreconditionError

log = logging.getLogger("ollamarecon.nmap")

ARGS = "-Pn -n -T4 --open"

Confirm = Callable[[str], bool]


def ensure_tool(name: str, confirm: Optional[Confirm] = None) -> bool:
    """
    True if `name` is on PATH. Otherwise ask `confirm` whether to carry on
    without it (returns False) and raise ExternalToolError if it says no.
    """
    if tool_exists(name):
        return True
    message = f"{name} binary not found; continue with the existing candidate list?"
    if confirm is not None and confirm(message):
        log.warning("%s missing, continuing without discovery", name)
        return False
    raise ExternalToolError(f"{name} binary not found")


def read_ranges(path: Path) -> List[str]:
    ranges = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        spec = line.split("#", 1)[0].strip()
        if spec:
            ranges.append(spec)
    return ranges


def open_hosts(scanner: Any, port: int) -> List[str]:
    # massage nmap.PortScanner() to a plain host list
    found = []
    for h in scanner.all_hosts():
        info = scanner[h].get("tcp", {}).get(port)
        if info and info.get("state") == "open":
            found.append(h)
    return found


def discover(
    ranges_path: Path,
    candidates_path: Path,
    port: int,
    args: str = ARGS,
    scanner: Optional[Any] = None,
) -> List[str]:
    """Port-scan every range in `ranges_path` and write open hosts to `candidates_path`."""
    if not tool_exists("nmap") and scanner is None:
        raise ExternalToolError("nmap binary not found")
    try:
        ranges = read_ranges(ranges_path)
    except OSError as exc:
        raise PreconditionError(f"cannot read ranges file {ranges_path}: {exc}") from exc
    if not ranges:
        raise PreconditionError(f"no address ranges in {ranges_path}")

    scanner = scanner or nmap.PortScanner()
    # comments stripped; nmap reads the cleaned list with -iL
    with tempfile.NamedTemporaryFile("w", suffix="_ranges.txt", delete=False) as fh:
        fh.write("\n".join(ranges) + "\n")
        targets = fh.name
    arguments = f"-iL {shlex.quote(targets)} {args}"
    log.info("exec: nmap -p %d %s (%d ranges)", port, arguments, len(ranges))
    try:
        scanner.scan(hosts="", ports=str(port), arguments=arguments, sudo=False)
    except nmap.PortScannerError as exc:
        raise ExternalToolError(f"nmap failed: {exc}") from exc
    finally:
        os.remove(targets)

    hosts = sorted(open_hosts(scanner, port))
    candidates_path = Path(candidates_path)
    candidates_path.parent.mkdir(parents=True, exist_ok=True)
    candidates_path.write_text("".join(f"{h}\n" for h in hosts), encoding="utf-8")
    log.info("%d hosts with port %d open written to %s", len(hosts), port, candidates_path)
    return hosts
