"""
backend/tests/test_team_name_normalizer.py

Purpose:
    Canonical NFL team-name resolution across abbreviations, nicknames,
    punctuation and casing variants.

Dependencies:
    - survivor.services.team_name_normalizer
"""

from __future__ import annotations

import pytest

from survivor.services.team_name_normalizer import (
    NFL_TEAMS,
    TIE,
    is_known_team,
    normalize,
    normalize_winner,
    teams_equal,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("LA Rams", "Los Angeles Rams"),
        ("L.A. Rams", "Los Angeles Rams"),
        ("LAR", "Los Angeles Rams"),
        ("rams", "Los Angeles Rams"),
        ("  Dallas   Cowboys ", "Dallas Cowboys"),
        ("KC", "Kansas City Chiefs"),
        ("Niners", "San Francisco 49ers"),
        ("SanFrancisco49ers", "San Francisco 49ers"),
        ("NY Jets", "New York Jets"),
        ("Washington Football Team", "Washington Commanders"),
    ],
)
def test_aliases_resolve_to_canonical_name(raw, expected):
    assert normalize(raw) == expected


def test_canonical_names_are_fixed_points():
    assert len(NFL_TEAMS) == 32
    for team in NFL_TEAMS:
        assert normalize(team) == team
        assert normalize(normalize(team)) == team


def test_unknown_names_pass_through_trimmed():
    assert normalize("  London Monarchs ") == "London Monarchs"
    assert not is_known_team("London Monarchs")
    assert normalize(None) == ""
    assert normalize("") == ""


def test_shared_city_names_are_not_guessed():
    # Two teams play in each of these cities
    assert normalize("New York") == "New York"
    assert normalize("Los Angeles") == "Los Angeles"


def test_teams_equal_ignores_formatting():
    assert teams_equal("LA Rams", "Los Angeles Rams")
    assert not teams_equal("LA Rams", "LA Chargers")
    assert not teams_equal("", "")


def test_normalize_winner_handles_ties_and_unresolved():
    assert normalize_winner("tie") == TIE
    assert normalize_winner(None) is None
    assert normalize_winner("TBD") is None
    assert normalize_winner(" ") is None
    assert normalize_winner("Eagles") == "Philadelphia Eagles"
