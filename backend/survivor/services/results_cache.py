"""
backend/survivor/services/results_cache.py

Purpose:
    In-process per-team, per-week game result cache. Decouples elimination
    evaluation from provider latency/availability and carries operator
    corrections (manual overrides) that automated refreshes must not clobber.

Notes:
    - Keys are (canonical team, week); a game is stored under both teams.
    - Entries are value objects: merges replace them, never mutate them.
    - A finalized game is never un-finalized by a later store().
    - A team appearing in two different games of one week is marked as a
      conflict; lookups for that key raise DataAmbiguousError until a clean
      store() or an override resolves it. Conflict markers are persisted.
    - A manual override is never replaced or marked conflicting by store().
    - Absence of an entry means "unknown", never "lost".

Dependencies:
    - survivor.database (persistence helpers only)
    - survivor.services.team_name_normalizer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

import survivor.database as _db
from survivor.config import settings
from survivor.errors import DataAmbiguousError, DataMissingError
from survivor.models.survivor import GameResult, GameStatus, WeekResult
from survivor.services.team_name_normalizer import (
    TIE,
    is_known_team,
    normalize,
    normalize_winner,
)
from survivor.utils import ensure_utc, utcnow

logger = logging.getLogger("survivor.results_cache")

_COLLECTION = "results_cache"

CacheKey = tuple[str, int]


@dataclass
class StoreSummary:
    """Per-team-entry counters for one store() call."""
    week: int
    stored: int = 0
    unchanged: int = 0
    skipped_override: int = 0
    skipped_final: int = 0
    rejected: int = 0
    conflicts: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "week": self.week,
            "stored": self.stored,
            "unchanged": self.unchanged,
            "skipped_override": self.skipped_override,
            "skipped_final": self.skipped_final,
            "rejected": self.rejected,
            "conflicts": list(self.conflicts),
        }


def _parse_scoreline(scoreline: str | tuple[int, int] | None) -> tuple[int | None, int | None]:
    if scoreline is None or scoreline == "":
        return None, None
    if isinstance(scoreline, str):
        parts = scoreline.replace(" ", "").split("-")
        if len(parts) != 2:
            raise ValueError(f"Scoreline must look like '24-10', got {scoreline!r}")
        return int(parts[0]), int(parts[1])
    home, away = scoreline
    return int(home), int(away)


def _same_fixture(a: GameResult, b: GameResult) -> bool:
    return {a.home_team, a.away_team} == {b.home_team, b.away_team}


def _same_outcome(a: GameResult, b: GameResult) -> bool:
    return (
        a.winner == b.winner
        and a.status == b.status
        and a.home_score == b.home_score
        and a.away_score == b.away_score
    )


class ResultsCache:
    """Per-team-per-week result store with freshness tracking and manual overrides."""

    def __init__(self, max_age_ms: int | None = None) -> None:
        self._entries: dict[CacheKey, GameResult] = {}
        self._conflicts: set[CacheKey] = set()
        self._week_updated: dict[int, datetime] = {}
        if max_age_ms is None:
            max_age_ms = settings.RESULTS_CACHE_MAX_AGE_SECONDS * 1000
        self.max_age_ms = int(max_age_ms)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_result(self, team: str, week: int) -> GameResult | None:
        key = (normalize(team), int(week))
        if key in self._conflicts:
            raise DataAmbiguousError(
                f"Multiple games found for {key[0]} in Week {key[1]}",
                team=key[0],
                week=key[1],
            )
        return self._entries.get(key)

    def is_fresh(self, week: int, max_age_ms: int) -> bool:
        last = self._week_updated.get(int(week))
        if last is None:
            return False
        age_ms = (utcnow() - ensure_utc(last)).total_seconds() * 1000
        return age_ms < max_age_ms

    def is_stale(self, week: int) -> bool:
        return not self.is_fresh(week, self.max_age_ms)

    def has_week(self, week: int) -> bool:
        return int(week) in self._week_updated

    def week_results(self, week: int) -> WeekResult:
        games: list[GameResult] = []
        for (_, entry_week), game in sorted(self._entries.items()):
            if entry_week != int(week):
                continue
            if any(_same_fixture(game, seen) for seen in games):
                continue
            games.append(game)
        return WeekResult(week=int(week), games=games)

    def is_week_final(self, week: int) -> bool:
        """True once every cached game of the week has a winner."""
        games = self.week_results(week).games
        return bool(games) and all(g.has_winner for g in games)

    # ------------------------------------------------------------------
    # Provider merge
    # ------------------------------------------------------------------
    def store(self, week: int, results: Iterable[GameResult | dict]) -> StoreSummary:
        week = int(week)
        now = utcnow()
        summary = StoreSummary(week=week)

        accepted: list[GameResult] = []
        for raw in results:
            game = self._validate(week, raw)
            if game is None:
                summary.rejected += 1
                continue
            accepted.append(game)

        # Detect duplicate fixtures for the same team inside this batch.
        by_team: dict[str, GameResult] = {}
        batch_conflicts: set[str] = set()
        for game in accepted:
            for team in (game.home_team, game.away_team):
                prior = by_team.get(team)
                if prior is not None and not _same_fixture(prior, game):
                    batch_conflicts.add(team)
                by_team[team] = game

        for team, game in by_team.items():
            key = (team, week)
            existing = self._entries.get(key)
            if existing is not None and existing.manual_override:
                summary.skipped_override += 1
                continue

            if team in batch_conflicts:
                self._mark_conflict(key, summary)
                continue

            if existing is not None and existing.has_winner:
                if not _same_fixture(existing, game):
                    self._mark_conflict(key, summary)
                    continue
                self._resolve_conflict(key)
                if not game.has_winner:
                    summary.skipped_final += 1
                elif not _same_outcome(existing, game):
                    logger.warning(
                        "Provider disagrees with finalized result for %s week %d: cached=%s provider=%s",
                        team, week, existing.winner, game.winner,
                    )
                    summary.skipped_final += 1
                else:
                    summary.unchanged += 1
                continue

            self._resolve_conflict(key)
            if existing is not None and _same_outcome(existing, game) and _same_fixture(existing, game):
                summary.unchanged += 1
                continue
            self._entries[key] = game.model_copy(update={"last_updated": now})
            summary.stored += 1

        self._week_updated[week] = now
        logger.info(
            "Week %d merged: stored=%d unchanged=%d override=%d final=%d rejected=%d conflicts=%d",
            week, summary.stored, summary.unchanged, summary.skipped_override,
            summary.skipped_final, summary.rejected, len(summary.conflicts),
        )
        return summary

    def _mark_conflict(self, key: CacheKey, summary: StoreSummary) -> None:
        if key not in self._conflicts:
            logger.error("Conflicting games for %s in week %d; lookups will fail until resolved", *key)
        self._conflicts.add(key)
        summary.conflicts.append(key[0])

    def _resolve_conflict(self, key: CacheKey) -> None:
        if key in self._conflicts:
            self._conflicts.discard(key)
            logger.info("Conflict for %s in week %d resolved by a clean batch", *key)

    def _validate(self, week: int, raw: GameResult | dict) -> GameResult | None:
        """Canonicalize one untrusted provider record, or reject it (None)."""
        try:
            game = raw if isinstance(raw, GameResult) else GameResult.model_validate(raw)
        except ValueError as exc:
            logger.warning("Rejected malformed game for week %d: %s", week, exc)
            return None

        if game.week != week:
            logger.warning("Rejected game %s: week %d != %d", game.game_id, game.week, week)
            return None

        home, away = normalize(game.home_team), normalize(game.away_team)
        if not is_known_team(home) or not is_known_team(away) or home == away:
            logger.warning("Rejected game %s: unknown teams %r vs %r", game.game_id, game.home_team, game.away_team)
            return None

        winner = normalize_winner(game.winner)
        if game.status != GameStatus.final:
            winner = None
        elif winner is None and game.home_score is not None and game.away_score is not None:
            if game.home_score > game.away_score:
                winner = home
            elif game.away_score > game.home_score:
                winner = away
            else:
                winner = TIE

        if winner is not None and winner not in (home, away, TIE):
            logger.warning("Rejected game %s: winner %r not in %s/%s", game.game_id, game.winner, home, away)
            return None

        if winner is not None and game.home_score is not None and game.away_score is not None:
            if game.home_score > game.away_score:
                score_winner = home
            elif game.away_score > game.home_score:
                score_winner = away
            else:
                score_winner = TIE
            if score_winner != winner:
                logger.warning(
                    "Rejected game %s: declared winner %s contradicts score %s-%s",
                    game.game_id, winner, game.home_score, game.away_score,
                )
                return None

        return game.model_copy(update={
            "home_team": home,
            "away_team": away,
            "winner": winner,
            "manual_override": False,
        })

    # ------------------------------------------------------------------
    # Operator corrections
    # ------------------------------------------------------------------
    def set_manual_override(
        self,
        team: str,
        week: int,
        winner: str,
        scoreline: str | tuple[int, int] | None = None,
        *,
        opponent: str | None = None,
    ) -> GameResult:
        """Pin a final result for team/week. Last write wins; store() will not replace it.

        Scoreline is home-away. The opponent defaults to the cached fixture,
        or to the winner when the picked team lost.
        """
        week = int(week)
        canonical = normalize(team)
        declared = normalize_winner(winner)
        if declared is None:
            raise ValueError("Manual override requires a winner (team name or TIE)")

        existing = self._entries.get((canonical, week))
        if existing is not None:
            home, away = existing.home_team, existing.away_team
        else:
            other = normalize(opponent) if opponent else (declared if declared not in (canonical, TIE) else None)
            if not other:
                raise DataMissingError(f"No cached game for {canonical} in Week {week}; opponent required")
            home, away = canonical, other

        if declared not in (home, away, TIE):
            raise ValueError(f"Winner {winner!r} did not play in {home} vs {away}")

        home_score, away_score = _parse_scoreline(scoreline)
        game = GameResult(
            week=week,
            home_team=home,
            away_team=away,
            home_score=home_score,
            away_score=away_score,
            status=GameStatus.final,
            winner=declared,
            game_id=existing.game_id if existing else None,
            manual_override=True,
            last_updated=utcnow(),
        )
        for key_team in (home, away):
            self._entries[(key_team, week)] = game
            self._conflicts.discard((key_team, week))
        logger.warning("Manual override set: week %d %s vs %s winner=%s", week, home, away, declared)
        return game

    def clear_manual_override(self, team: str, week: int) -> bool:
        week = int(week)
        existing = self._entries.get((normalize(team), week))
        if existing is None or not existing.manual_override:
            return False
        for key_team in (existing.home_team, existing.away_team):
            entry = self._entries.get((key_team, week))
            if entry is not None and entry.manual_override:
                del self._entries[(key_team, week)]
        logger.warning("Manual override cleared: week %d %s vs %s", week, existing.home_team, existing.away_team)
        return True

    # ------------------------------------------------------------------
    # Admin / persistence
    # ------------------------------------------------------------------
    def status(self) -> dict[str, Any]:
        now = utcnow()
        weeks = []
        for week, updated in sorted(self._week_updated.items()):
            age = (now - ensure_utc(updated)).total_seconds()
            weeks.append({
                "week": week,
                "last_updated": updated,
                "age_seconds": int(age),
                "fresh": age * 1000 < self.max_age_ms,
                "final": self.is_week_final(week),
            })
        return {
            "entries": len(self._entries),
            "overrides": sum(1 for g in self._entries.values() if g.manual_override),
            "conflicts": [f"{team}:{week}" for team, week in sorted(self._conflicts)],
            "weeks": weeks,
        }

    def to_documents(self, week: int | None = None) -> list[dict[str, Any]]:
        """One document per key; conflicted keys are written with `conflict: True`."""
        docs = []
        for team, entry_week in sorted(set(self._entries) | self._conflicts):
            if week is not None and entry_week != int(week):
                continue
            game = self._entries.get((team, entry_week))
            docs.append({
                "_id": f"{entry_week}:{team}",
                "team": team,
                "week": entry_week,
                "game": game.model_dump(mode="python") if game is not None else None,
                "conflict": (team, entry_week) in self._conflicts,
                "week_updated_at": self._week_updated.get(entry_week),
            })
        return docs

    def load_documents(self, docs: Iterable[dict[str, Any]]) -> int:
        loaded = 0
        for doc in docs:
            try:
                key = (normalize(doc["team"]), int(doc["week"]))
                raw_game = doc.get("game")
                game = GameResult.model_validate(raw_game) if raw_game is not None else None
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable cache document %s", doc.get("_id"))
                continue
            if game is None and not doc.get("conflict"):
                logger.warning("Skipping cache document %s without a game", doc.get("_id"))
                continue
            week = key[1]
            if doc.get("conflict"):
                self._conflicts.add(key)
            if game is not None:
                self._entries[key] = game
            updated = doc.get("week_updated_at")
            if updated is not None:
                updated = ensure_utc(updated)
                previous = self._week_updated.get(week)
                if previous is None or updated > previous:
                    self._week_updated[week] = updated
            loaded += 1
        return loaded


async def load_cache_from_db(cache: ResultsCache) -> int:
    docs = await getattr(_db.db, _COLLECTION).find({}).to_list(length=None)
    loaded = cache.load_documents(docs)
    logger.info("Results cache loaded: %d entries", loaded)
    return loaded


async def persist_week(cache: ResultsCache, week: int) -> int:
    """Write all entries of one week; removes docs for entries no longer cached."""
    collection = getattr(_db.db, _COLLECTION)
    docs = cache.to_documents(week)
    for doc in docs:
        await collection.update_one({"_id": doc["_id"]}, {"$set": doc}, upsert=True)
    keep = [doc["_id"] for doc in docs]
    await collection.delete_many({"week": int(week), "_id": {"$nin": keep}})
    return len(docs)
