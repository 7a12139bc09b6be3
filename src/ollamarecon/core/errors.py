class ReconError(Exception):
    """Base class for errors that stop a scan before it starts."""


class ConfigError(ReconError):
    pass


class StateCorrupt(ConfigError):
    """State file exists but cannot be read back."""


class FingerprintMismatch(ConfigError):
    def __init__(self, field: str, saved: object, current: object) -> None:
        super().__init__(
            f"scan configuration changed since the last run ({field}: "
            f"{saved!r} -> {current!r}); refusing to resume"
        )
        self.field = field


class PreconditionError(ReconError):
    pass


class ExternalToolError(ReconError):
    pass
