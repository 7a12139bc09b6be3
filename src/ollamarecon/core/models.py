import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional


class HostStatus(Enum):
    UNPROCESSED = auto()
    SKIPPED     = auto()   # already processed in a resumed state
    UNREACHABLE = auto()
    NO_SERVICE  = auto()
    NO_MODEL    = auto()
    MODELED     = auto()


class ModelStatus(str, Enum):
    DISCOVERED     = "Discovered"
    TESTED         = "Tested"
    CONNECT_FAILED = "ConnectFailed"
    HTTP_ERROR     = "HTTPError"
    NO_RESPONSE    = "NoResponse"
    UNTESTED       = "Untested"


@dataclass
class ModelRecord:
    name: str
    status: ModelStatus = ModelStatus.DISCOVERED
    first_token_latency: float = 0.0    # seconds
    tokens_per_sec: float = 0.0
    http_status: Optional[int] = None

    @property
    def status_label(self) -> str:
        if self.status is ModelStatus.HTTP_ERROR and self.http_status is not None:
            return f"{self.status.value} {self.http_status}"
        return self.status.value


@dataclass
class ScanResult:
    address: str
    models: List[ModelRecord] = field(default_factory=list)


@dataclass
class ProbeOutcome:
    address: str
    status: HostStatus = HostStatus.UNPROCESSED
    result: Optional[ScanResult] = None


def parse_model_size(name: str) -> float:
    """`deepseek-r1:7b` -> 7.0; anything without a numeric tag -> 0."""
    if ":" not in name:
        return 0.0
    tag = name.rsplit(":", 1)[1].lower()
    if tag.endswith("b"):
        tag = tag[:-1]
    try:
        size = float(tag)
    except ValueError:
        return 0.0
    return size if math.isfinite(size) else 0.0


def sort_models(names: List[str]) -> List[str]:
    return sorted(names, key=parse_model_size)
