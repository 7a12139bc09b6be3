"""Shared fixtures: a fake fleet of Ollama hosts behind httpx.MockTransport."""

from __future__ import annotations

import asyncio
import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from rich.console import Console

from ollamarecon.core.config import ScanConfig


@dataclass
class FakeHost:
    banner: str = "Ollama is running"
    banner_status: int = 200
    models: list[str] = field(default_factory=list)
    tags_body: str | None = None          # raw /api/tags body, overrides `models`
    generate_status: int = 200
    generate_lines: list[str] = field(default_factory=lambda: [
        json.dumps({"response": "The", "done": False}),
        json.dumps({"response": " sun", "done": False}),
        json.dumps({"response": ".", "done": True}),
    ])


class FakeOllama:
    """In-memory network: reachable hosts answer HTTP, the rest refuse TCP."""

    def __init__(self) -> None:
        self.hosts: dict[str, FakeHost] = {}
        self.hanging: set[str] = set()     # TCP connect never returns
        self.open_ports: set[str] = set()  # TCP open but no HTTP host configured
        self.requests: list[httpx.Request] = []
        self.connects: list[str] = []

    def add(self, address: str, **kwargs: Any) -> FakeHost:
        host = FakeHost(**kwargs)
        self.hosts[address] = host
        return host

    async def port_check(self, address: str, port: int, timeout: float) -> bool:
        self.connects.append(address)
        if address in self.hanging:
            await asyncio.sleep(3600)
        return address in self.hosts or address in self.open_ports

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = self.hosts.get(request.url.host)
        if host is None:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path == "/":
            return httpx.Response(host.banner_status, text=host.banner)
        if path == "/api/tags":
            if host.tags_body is not None:
                return httpx.Response(200, text=host.tags_body)
            return httpx.Response(200, json={"models": [{"model": m} for m in host.models]})
        if path == "/api/generate":
            if host.generate_status != 200:
                return httpx.Response(host.generate_status, text="boom")
            return httpx.Response(200, content="\n".join(host.generate_lines).encode())
        return httpx.Response(404)


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest_asyncio.fixture
async def client(fake_ollama: FakeOllama):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_ollama.handle)) as c:
        yield c


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def make_config(tmp_path: Path):
    """ScanConfig factory rooted in tmp_path."""

    def _make(**overrides: Any) -> ScanConfig:
        values: dict[str, Any] = dict(
            input_path=tmp_path / "ip.txt",
            output_path=tmp_path / "results.csv",
            state_path=tmp_path / "scan_state.json",
            gateway="aa:bb:cc:dd:ee:ff",
            workers=4,
            benchmark=False,
        )
        values.update(overrides)
        return ScanConfig(**values)

    return _make


def write_targets(path: Path, *lines: str) -> Path:
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logger = logging.getLogger("ollamarecon")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
