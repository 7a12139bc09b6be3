# src/ollamarecon/scanners/ollama.py
from __future__ import annotations
import asyncio, logging
from typing import Awaitable, Callable, List, Optional

import httpx

from ..core.config import BANNER, ScanConfig
from ..core.models import (
    HostStatus, ModelRecord, ModelStatus, ProbeOutcome, ScanResult, sort_models,
)
from .bench import Benchmarker, base_url

log = logging.getLogger("ollamarecon.probe")

BANNER_PEEK = 1024

PortCheck = Callable[[str, int, float], Awaitable[bool]]


async def check_port(address: str, port: int, timeout: float) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


class OllamaProbe:
    """
    Per-address pipeline: port -> banner -> /api/tags -> optional benchmark.

    Each stage short-circuits with the matching HostStatus. Network and
    parse failures never escape; only task cancellation does.
    """

    def __init__(
        self,
        config: ScanConfig,
        client: httpx.AsyncClient,
        port_check: PortCheck = check_port,
        benchmarker: Optional[Benchmarker] = None,
    ) -> None:
        self.config     = config
        self.client     = client
        self.port_check = port_check
        self.bench      = benchmarker or Benchmarker(
            client, config.port, config.prompt, timeout=config.bench_timeout
        )

    async def probe(self, address: str) -> ProbeOutcome:
        cfg = self.config
        outcome = ProbeOutcome(address)
        if not await self.port_check(address, cfg.port, cfg.probe_timeout):
            log.debug("%s: port %d closed", address, cfg.port)
            outcome.status = HostStatus.UNREACHABLE
            return outcome

        if not await self.is_ollama(address):
            log.debug("%s: no Ollama banner", address)
            outcome.status = HostStatus.NO_SERVICE
            return outcome

        models = await self.list_models(address)
        if not models:
            log.info("%s: Ollama found, no models matching %r", address, cfg.model_filter)
            outcome.status = HostStatus.NO_MODEL
            return outcome
        log.info("%s: models %s", address, ", ".join(models))

        # every record starts as Discovered
        result = ScanResult(address, [ModelRecord(name) for name in models])
        for i, record in enumerate(result.models):
            if cfg.benchmark:
                result.models[i] = await self.bench.benchmark(address, record.name)
            else:
                record.status = ModelStatus.UNTESTED
        outcome.status = HostStatus.MODELED
        outcome.result = result
        return outcome

    async def is_ollama(self, address: str) -> bool:
        url = base_url(address, self.config.port) + "/"
        try:
            async with self.client.stream("GET", url, timeout=self.config.probe_timeout) as resp:
                if resp.status_code != 200:
                    return False
                head = b""
                async for chunk in resp.aiter_bytes():
                    head += chunk
                    if len(head) >= BANNER_PEEK:
                        break
        except httpx.HTTPError as exc:
            log.debug("%s: banner request failed: %r", address, exc)
            return False
        return BANNER in head[:BANNER_PEEK].decode("utf-8", errors="replace")

    async def list_models(self, address: str) -> List[str]:
        url = base_url(address, self.config.port) + "/api/tags"
        try:
            resp = await self.client.get(url, timeout=self.config.probe_timeout)
        except httpx.HTTPError as exc:
            log.debug("%s: /api/tags failed: %r", address, exc)
            return []
        if resp.status_code != 200:
            return []
        try:
            data = resp.json()
        except ValueError:
            log.debug("%s: /api/tags returned malformed JSON", address)
            return []

        entries = data.get("models") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        names = [
            m["model"] for m in entries
            if isinstance(m, dict) and isinstance(m.get("model"), str)
        ]
        return sort_models([n for n in names if self.config.model_filter in n])
