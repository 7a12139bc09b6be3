# src/ollamarecon/scanners/bench.py
from __future__ import annotations
import json, time, asyncio, logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from ..core.models import ModelRecord, ModelStatus

log = logging.getLogger("ollamarecon.bench")


@dataclass
class _Tally:
    status_code: Optional[int] = None
    first_chunk: Optional[float] = None
    last_chunk: Optional[float] = None
    chunks: int = 0


def base_url(address: str, port: int) -> str:
    host = f"[{address}]" if ":" in address else address
    return f"http://{host}:{port}"


class Benchmarker:
    """
    Times one streaming /api/generate call.

    Latency is start -> first JSON chunk; throughput is chunks divided by
    start -> last chunk. Whatever arrived before a timeout or a broken
    stream still counts.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        port: int,
        prompt: str,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.client  = client
        self.port    = port
        self.prompt  = prompt
        self.timeout = timeout
        self.clock   = clock

    async def benchmark(self, address: str, model: str) -> ModelRecord:
        tally = _Tally()
        start = self.clock()
        try:
            await asyncio.wait_for(self._consume(address, model, tally), self.timeout)
        except (httpx.HTTPError, asyncio.TimeoutError, OSError) as exc:
            log.debug("benchmark %s/%s interrupted: %r", address, model, exc)

        record = ModelRecord(name=model)
        if tally.status_code is None:
            record.status = ModelStatus.CONNECT_FAILED
        elif tally.status_code != 200:
            record.status = ModelStatus.HTTP_ERROR
            record.http_status = tally.status_code
        elif tally.chunks == 0:
            record.status = ModelStatus.NO_RESPONSE
        else:
            record.status = ModelStatus.TESTED
            record.first_token_latency = tally.first_chunk - start
            elapsed = tally.last_chunk - start
            record.tokens_per_sec = tally.chunks / elapsed if elapsed > 0 else 0.0
        log.info("bench %s %s: %s", address, model, record.status_label)
        return record

    async def _consume(self, address: str, model: str, tally: _Tally) -> None:
        payload = {"model": model, "prompt": self.prompt, "stream": True}
        url = f"{base_url(address, self.port)}/api/generate"
        async with self.client.stream("POST", url, json=payload, timeout=self.timeout) as resp:
            tally.status_code = resp.status_code
            if resp.status_code != 200:
                return
            async for line in resp.aiter_lines():
                if not line.strip():
                    continue
                try:
                    chunk = json.loads(line)
                except ValueError:
                    continue
                now = self.clock()
                if tally.first_chunk is None:
                    tally.first_chunk = now
                tally.last_chunk = now
                tally.chunks += 1
                if isinstance(chunk, dict) and chunk.get("done") is True:
                    break
