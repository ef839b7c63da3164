"""
backend/survivor/services/elimination_engine.py

Purpose:
    The survivor elimination state machine. Given one member's picks and a
    results lookup, derive alive/pending/eliminated status deterministically.
    Every caller (recalculator, auto-elimination worker, integrity auditor,
    admin routes) goes through this one engine.

States (transition order):
    alive_no_pick_yet -> alive_pending(week) -> alive_survived(week)
    -> eliminated(week, reason)   [absorbing]

Notes:
    - Weeks are evaluated strictly ascending from week 1; evaluation stops
      at the first pending or eliminating week, so later picks are ignored.
    - A missing result is "pending", never "lost".
    - gameId on a pick is advisory; mismatches are logged only.
    - The only time input is the optional through_week boundary.

Dependencies:
    - survivor.services.team_name_normalizer
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from survivor.errors import DataAmbiguousError, IntegrityViolationError
from survivor.models.survivor import GameResult, Pick, SurvivorStatus, TiePolicy
from survivor.services.team_name_normalizer import TIE, normalize, normalize_winner

logger = logging.getLogger("survivor.engine")


class ResultsLookup(Protocol):
    def get_result(self, team: str, week: int) -> Optional[GameResult]: ...


class EliminationEngine:
    def __init__(self, tie_policy: TiePolicy | str = TiePolicy.eliminate) -> None:
        self.tie_policy = TiePolicy(tie_policy)

    def evaluate(
        self,
        picks: Iterable[Pick | dict],
        results_lookup: ResultsLookup,
        *,
        through_week: int | None = None,
    ) -> SurvivorStatus:
        """Derive a member's status from scratch.

        through_week is the latest week whose pick deadline has passed; a
        week up to that boundary without a pick eliminates. Without it the
        evaluation covers weeks 1..latest picked week.
        """
        by_week = self._order_picks(picks)
        last_week = max(by_week, default=0)
        if through_week:
            last_week = max(last_week, int(through_week))
        if last_week == 0:
            return SurvivorStatus.no_pick_yet()

        is_stale = getattr(results_lookup, "is_stale", None)
        history: list[str] = []
        stale = False

        for week in range(1, last_week + 1):
            pick = by_week.get(week)
            if pick is None:
                return self._finish(
                    SurvivorStatus.eliminated(week, f"No pick made for Week {week}", history),
                    stale,
                )

            team = normalize(pick.team)
            history.append(team)
            result = results_lookup.get_result(team, week)

            if result is not None and not result.manual_override and callable(is_stale) and is_stale(week):
                stale = True

            if result is None:
                return self._finish(
                    SurvivorStatus.pending(week, history, f"Awaiting result for {team} (Week {week})"),
                    stale,
                )
            if team not in (result.home_team, result.away_team):
                raise DataAmbiguousError(
                    f"Result returned for {team} in Week {week} is {result.home_team} vs {result.away_team}",
                    team=team,
                    week=week,
                )
            if pick.game_id and result.game_id and str(pick.game_id) != str(result.game_id):
                logger.warning(
                    "Pick gameId %s differs from result gameId %s for %s week %d; using team match",
                    pick.game_id, result.game_id, team, week,
                )

            winner = normalize_winner(result.winner)
            if winner is None:
                return self._finish(
                    SurvivorStatus.pending(week, history, f"{team} game not final (Week {week})"),
                    stale,
                )
            if winner == team:
                continue
            if winner == TIE:
                if self.tie_policy == TiePolicy.push:
                    continue
                return self._finish(
                    SurvivorStatus.eliminated(week, f"{team} tied {result.opponent_of(team)}", history),
                    stale,
                )
            return self._finish(
                SurvivorStatus.eliminated(week, f"{team} lost to {winner}", history),
                stale,
            )

        return self._finish(SurvivorStatus.survived(last_week, history), stale)

    @staticmethod
    def _finish(status: SurvivorStatus, stale: bool) -> SurvivorStatus:
        if stale:
            status.stale = True
        return status

    @staticmethod
    def _order_picks(picks: Iterable[Pick | dict]) -> dict[int, Pick]:
        by_week: dict[int, Pick] = {}
        for raw in picks:
            pick = raw if isinstance(raw, Pick) else Pick.model_validate(raw)
            if not normalize(pick.team):
                continue
            existing = by_week.get(pick.week)
            if existing is not None and normalize(existing.team) != normalize(pick.team):
                raise DataAmbiguousError(
                    f"Two different picks for Week {pick.week}: {existing.team} / {pick.team}",
                    week=pick.week,
                )
            by_week.setdefault(pick.week, pick)
        return dict(sorted(by_week.items()))


def check_monotonic(previous: SurvivorStatus | None, recomputed: SurvivorStatus) -> None:
    """Raise IntegrityViolationError if recomputed would move or clear a recorded elimination.

    Moving an elimination later is allowed (it corrects a false early
    elimination); moving it earlier or clearing it needs an operator.
    """
    if previous is None or previous.eliminated_week is None:
        return
    if recomputed.eliminated_week is None:
        raise IntegrityViolationError(
            f"Recomputed status clears elimination recorded at Week {previous.eliminated_week}",
            previous_week=previous.eliminated_week,
        )
    if recomputed.eliminated_week < previous.eliminated_week:
        raise IntegrityViolationError(
            f"Recomputed elimination Week {recomputed.eliminated_week} is earlier than "
            f"recorded Week {previous.eliminated_week}",
            previous_week=previous.eliminated_week,
            recomputed_week=recomputed.eliminated_week,
        )
