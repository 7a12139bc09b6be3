import os, shutil, tempfile, logging
from pathlib import Path

log = logging.getLogger("ollamarecon")


def tool_exists(name: str) -> bool:
    return shutil.which(name) is not None


def touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()
    log.info("created empty file: %s", path)


def atomic_write_text(path: Path, text: str) -> None:
    """Write via a temp file in the same directory, then rename over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def interface_mac(name: str = "eth0") -> str:
    """MAC address of a network interface, or "" if it cannot be read."""
    try:
        mac = Path(f"/sys/class/net/{name}/address").read_text().strip()
    except OSError as exc:
        log.warning("cannot read MAC address of %s: %s", name, exc)
        return ""
    return "" if mac == "00:00:00:00:00:00" else mac
