from abc import ABC, abstractmethod

from survivor.models.survivor import GameResult


class ResultsProvider(ABC):
    """Abstract base class for weekly game result providers."""

    name: str = "provider"

    @abstractmethod
    async def get_week_results(self, week: int) -> list[GameResult]:
        """Fetch every game of a regular-season week.

        Returns GameResult records with raw (provider-formatted) team names;
        status is "final", "in_progress" or "scheduled" and winner is only
        set for final games. Raises ProviderUnavailableError when the
        provider cannot answer.
        """
        ...

    @property
    def circuit_open(self) -> bool:
        return False

    async def aclose(self) -> None:
        return None
