"""Error taxonomy for survivor evaluation, caching and auditing."""


class SurvivorError(Exception):
    """Base class for all survivor-domain errors."""


class DataMissingError(SurvivorError):
    """A pick, result or pool member record is absent where it was expected."""


class DataAmbiguousError(SurvivorError):
    """Duplicate or conflicting records, e.g. two games for one team in a week."""

    def __init__(self, message: str, *, team: str | None = None, week: int | None = None):
        super().__init__(message)
        self.team = team
        self.week = week


class ProviderUnavailableError(SurvivorError):
    """The results provider timed out, failed, or returned an unusable payload."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider


class IntegrityViolationError(SurvivorError):
    """A recomputed status would move or clear an already-recorded elimination."""

    def __init__(
        self,
        message: str,
        *,
        previous_week: int | None = None,
        recomputed_week: int | None = None,
    ):
        super().__init__(message)
        self.previous_week = previous_week
        self.recomputed_week = recomputed_week
