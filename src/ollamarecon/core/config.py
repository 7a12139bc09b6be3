from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError

DEFAULT_PORT         = 11434
DEFAULT_WORKERS      = 200
DEFAULT_MODEL_FILTER = "deepseek-r1"
DEFAULT_PROMPT       = "Why does the sun shine? Answer in one sentence."
DEFAULT_INPUT        = Path("ip.txt")
DEFAULT_OUTPUT       = Path("results.csv")
DEFAULT_STATE        = Path("scan_state.json")

PROBE_TIMEOUT        = 3.0
BENCH_TIMEOUT        = 30.0
CHECKPOINT_INTERVAL  = 30.0
RESULT_QUEUE_SIZE    = 100
BANNER               = "Ollama is running"


@dataclass(frozen=True)
class Fingerprint:
    """Configuration values a saved state must match before it can be resumed."""

    gateway_identifier: str
    input_path: str
    output_path: str
    benchmarking_enabled: bool

    def diff(self, other: "Fingerprint") -> tuple[str, object, object] | None:
        for name in ("gateway_identifier", "input_path", "output_path", "benchmarking_enabled"):
            mine, theirs = getattr(self, name), getattr(other, name)
            if mine != theirs or type(mine) is not type(theirs):
                return name, mine, theirs
        return None


@dataclass(frozen=True)
class ScanConfig:
    """Immutable settings for one run, built once by the CLI."""

    input_path: Path = DEFAULT_INPUT
    output_path: Path = DEFAULT_OUTPUT
    state_path: Path = DEFAULT_STATE
    gateway: str = ""
    port: int = DEFAULT_PORT
    workers: int = DEFAULT_WORKERS
    model_filter: str = DEFAULT_MODEL_FILTER
    prompt: str = DEFAULT_PROMPT
    benchmark: bool = True
    resume: bool = False
    probe_timeout: float = PROBE_TIMEOUT
    bench_timeout: float = BENCH_TIMEOUT
    checkpoint_interval: float = CHECKPOINT_INTERVAL
    result_queue_size: int = RESULT_QUEUE_SIZE

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ConfigError(f"port must be between 1 and 65535, got {self.port}")
        if self.workers < 1:
            raise ConfigError(f"workers must be positive, got {self.workers}")
        if self.result_queue_size < 1:
            raise ConfigError("result queue size must be positive")
        for name in ("probe_timeout", "bench_timeout", "checkpoint_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

    def fingerprint(self) -> Fingerprint:
        return Fingerprint(
            gateway_identifier=self.gateway,
            input_path=str(self.input_path),
            output_path=str(self.output_path),
            benchmarking_enabled=self.benchmark,
        )
