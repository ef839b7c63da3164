"""Survivor pool models: weekly picks, game results and derived elimination status."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from survivor.errors import DataMissingError


class TiePolicy(str, Enum):
    eliminate = "eliminate"
    push = "push"


class GameStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    final = "final"


class SurvivorState(str, Enum):
    alive_no_pick_yet = "alive_no_pick_yet"
    alive_pending = "alive_pending"
    alive_survived = "alive_survived"
    eliminated = "eliminated"


class Pick(BaseModel):
    """One user's team selection for one week. gameId is advisory only."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    week: int = Field(ge=1, le=18)
    team: str
    game_id: Optional[str] = Field(default=None, alias="gameId")


def picks_from_document(doc: dict | None) -> list[Pick]:
    """Parse {"picks": {"<week>": {"team": ..., "gameId": ...}}} into Pick objects.

    Week values may be bare team strings (older documents) or dicts using
    "team" or "teamPicked". Entries without a usable week or team are
    dropped, which evaluation treats as "no pick" for that week.
    """
    if not doc:
        return []
    raw = doc.get("picks", doc)
    if isinstance(raw, list):
        items = [(row.get("week"), row) for row in raw if isinstance(row, dict)]
    else:
        items = list(raw.items())

    picks: list[Pick] = []
    for week_key, value in items:
        try:
            week = int(week_key)
        except (TypeError, ValueError):
            continue
        if isinstance(value, str):
            team, game_id = value, None
        elif isinstance(value, dict):
            team = value.get("team") or value.get("teamPicked")
            game_id = value.get("gameId") or value.get("game_id")
        else:
            continue
        if not team or not 1 <= week <= 18:
            continue
        picks.append(Pick(week=week, team=str(team), game_id=str(game_id) if game_id is not None else None))
    return picks


class GameResult(BaseModel):
    """One game of a week. Entries are replaced, never mutated."""
    model_config = ConfigDict(frozen=True)

    week: int
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: GameStatus = GameStatus.scheduled
    winner: Optional[str] = None  # canonical team name | "TIE" | None while unresolved
    game_id: Optional[str] = None
    manual_override: bool = False
    last_updated: Optional[datetime] = None

    @property
    def has_winner(self) -> bool:
        return self.winner is not None

    @property
    def scoreline(self) -> str:
        if self.home_score is None or self.away_score is None:
            return ""
        return f"{self.home_score}-{self.away_score}"

    def opponent_of(self, team: str) -> str:
        return self.away_team if team == self.home_team else self.home_team


class WeekResult(BaseModel):
    week: int
    games: list[GameResult] = []


class SurvivorStatus(BaseModel):
    """Derived elimination summary for one member; persisted per pool/user."""
    state: SurvivorState = SurvivorState.alive_no_pick_yet
    alive: bool = True
    week: Optional[int] = None  # week the state refers to
    eliminated_week: Optional[int] = None
    elimination_reason: Optional[str] = None
    pick_history: list[str] = []
    pending_reason: Optional[str] = None
    stale: bool = False

    # Persistence / correction metadata (not part of the comparison)
    auto_corrected: bool = False
    correction_reason: Optional[str] = None
    corrected_at: Optional[datetime] = None
    manual_override: bool = False
    updated_at: Optional[datetime] = None

    @classmethod
    def no_pick_yet(cls) -> "SurvivorStatus":
        return cls()

    @classmethod
    def pending(cls, week: int, history: list[str], reason: str) -> "SurvivorStatus":
        return cls(
            state=SurvivorState.alive_pending,
            week=week,
            pick_history=list(history),
            pending_reason=reason,
        )

    @classmethod
    def survived(cls, week: int, history: list[str]) -> "SurvivorStatus":
        return cls(state=SurvivorState.alive_survived, week=week, pick_history=list(history))

    @classmethod
    def eliminated(cls, week: int, reason: str, history: list[str]) -> "SurvivorStatus":
        return cls(
            state=SurvivorState.eliminated,
            alive=False,
            week=week,
            eliminated_week=week,
            elimination_reason=reason,
            pick_history=list(history),
        )

    @property
    def is_eliminated(self) -> bool:
        return self.state == SurvivorState.eliminated

    @property
    def display_status(self) -> str:
        if self.is_eliminated:
            return "eliminated"
        if self.state == SurvivorState.alive_pending:
            return "status pending — awaiting data"
        return "alive"

    def comparable(self) -> dict[str, Any]:
        """Fields that must agree between a persisted and a recomputed status."""
        return {
            "state": self.state.value,
            "alive": self.alive,
            "week": self.week,
            "eliminated_week": self.eliminated_week,
            "elimination_reason": self.elimination_reason,
            "pick_history": list(self.pick_history),
        }

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump(mode="python")
        doc["state"] = self.state.value
        return doc

    @classmethod
    def from_document(cls, doc: dict | None) -> Optional["SurvivorStatus"]:
        """Parse a persisted status, including legacy {eliminated, eliminatedWeek} docs."""
        if not doc:
            return None
        if "state" not in doc:
            return cls._from_legacy(doc)
        fields = {k: v for k, v in doc.items() if k in cls.model_fields}
        return cls(**fields)

    @classmethod
    def _from_legacy(cls, doc: dict) -> "SurvivorStatus":
        eliminated = bool(doc.get("eliminated"))
        week = doc.get("eliminatedWeek") or doc.get("eliminated_week")
        reason = doc.get("eliminationReason") or doc.get("elimination_reason")
        history = [str(t) for t in (doc.get("pickHistory") or doc.get("pick_history") or [])]
        if eliminated:
            if not week:
                raise DataMissingError(
                    f"Legacy status for {doc.get('user_id', 'unknown user')} is eliminated without a week"
                )
            return cls.eliminated(int(week), reason or "", history)
        return cls(state=SurvivorState.alive_survived if history else SurvivorState.alive_no_pick_yet,
                   week=len(history) or None, pick_history=history)


class PoolMember(BaseModel):
    """Pool participant; owned by the pool repository, read-only here."""
    user_id: str
    display_name: str = "Unknown"
    email: str = ""
    role: str = "member"
    survivor_enabled: bool = True

    @classmethod
    def from_document(cls, doc: dict) -> "PoolMember":
        participation = doc.get("participation") or {}
        survivor = participation.get("survivor") or {}
        return cls(
            user_id=str(doc.get("user_id") or doc.get("_id")),
            display_name=doc.get("display_name") or doc.get("displayName") or doc.get("email") or "Unknown",
            email=doc.get("email") or "",
            role=doc.get("role") or "member",
            survivor_enabled=bool(survivor.get("enabled", True)),
        )


class SurvivorStandingEntry(BaseModel):
    """Single entry in survivor standings."""
    user_id: str
    display_name: str
    status: str
    state: str = SurvivorState.alive_no_pick_yet.value
    alive: bool
    week: Optional[int] = None
    eliminated_week: Optional[int] = None
    elimination_reason: Optional[str] = None
    last_pick: Optional[str] = None
    weeks_survived: int = 0
    stale: bool = False


class ResultOverrideRequest(BaseModel):
    """Admin body for a manual result correction."""
    week: int = Field(ge=1, le=18)
    team: str
    winner: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    opponent: Optional[str] = None
