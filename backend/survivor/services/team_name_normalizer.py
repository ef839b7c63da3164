"""
backend/survivor/services/team_name_normalizer.py

Purpose:
    Canonicalize NFL team-name variants ("LA Rams", "LAR", "Rams") to one
    full roster name so picks, provider results and cache keys compare
    equal regardless of source formatting.

Notes:
    - Unmapped input is returned unchanged (trimmed), never rejected.
    - Bare city names shared by two teams ("Los Angeles", "New York") are
      deliberately not aliases.

Dependencies:
    - re
    - unicodedata
"""

from __future__ import annotations

import re
import unicodedata

_PUNCT_RE = re.compile(r"[^a-z0-9\s]")
_SPACE_RE = re.compile(r"\s+")

# canonical name -> aliases (abbreviations, nicknames, short forms)
_ROSTER: dict[str, tuple[str, ...]] = {
    "Arizona Cardinals": ("ARI", "ARZ", "Cardinals", "Arizona", "AZ Cardinals"),
    "Atlanta Falcons": ("ATL", "Falcons", "Atlanta"),
    "Baltimore Ravens": ("BAL", "Ravens", "Baltimore"),
    "Buffalo Bills": ("BUF", "Bills", "Buffalo"),
    "Carolina Panthers": ("CAR", "Panthers", "Carolina"),
    "Chicago Bears": ("CHI", "Bears", "Chicago"),
    "Cincinnati Bengals": ("CIN", "Bengals", "Cincinnati"),
    "Cleveland Browns": ("CLE", "Browns", "Cleveland"),
    "Dallas Cowboys": ("DAL", "Cowboys", "Dallas"),
    "Denver Broncos": ("DEN", "Broncos", "Denver"),
    "Detroit Lions": ("DET", "Lions", "Detroit"),
    "Green Bay Packers": ("GB", "GNB", "Packers", "Green Bay", "GB Packers"),
    "Houston Texans": ("HOU", "Texans", "Houston"),
    "Indianapolis Colts": ("IND", "Colts", "Indianapolis"),
    "Jacksonville Jaguars": ("JAX", "JAC", "Jaguars", "Jags", "Jacksonville"),
    "Kansas City Chiefs": ("KC", "KAN", "Chiefs", "Kansas City", "KC Chiefs"),
    "Las Vegas Raiders": ("LV", "LVR", "Raiders", "Las Vegas", "LV Raiders", "Vegas Raiders", "Oakland Raiders"),
    "Los Angeles Chargers": ("LAC", "Chargers", "LA Chargers", "L.A. Chargers", "San Diego Chargers"),
    "Los Angeles Rams": ("LAR", "Rams", "LA Rams", "L.A. Rams", "St. Louis Rams"),
    "Miami Dolphins": ("MIA", "Dolphins", "Miami"),
    "Minnesota Vikings": ("MIN", "Vikings", "Minnesota"),
    "New England Patriots": ("NE", "NWE", "Patriots", "Pats", "New England", "NE Patriots"),
    "New Orleans Saints": ("NO", "NOR", "Saints", "New Orleans", "NO Saints"),
    "New York Giants": ("NYG", "Giants", "NY Giants"),
    "New York Jets": ("NYJ", "Jets", "NY Jets"),
    "Philadelphia Eagles": ("PHI", "Eagles", "Philadelphia"),
    "Pittsburgh Steelers": ("PIT", "Steelers", "Pittsburgh"),
    "San Francisco 49ers": ("SF", "SFO", "49ers", "Niners", "San Francisco", "SF 49ers"),
    "Seattle Seahawks": ("SEA", "Seahawks", "Seattle"),
    "Tampa Bay Buccaneers": ("TB", "TAM", "Buccaneers", "Bucs", "Tampa Bay", "TB Buccaneers"),
    "Tennessee Titans": ("TEN", "Titans", "Tennessee"),
    "Washington Commanders": (
        "WSH", "WAS", "Commanders", "Washington", "Washington Football Team",
    ),
}

NFL_TEAMS: tuple[str, ...] = tuple(sorted(_ROSTER))

TIE = "TIE"
_UNRESOLVED_WINNERS = {"", "TBD", "NULL", "NONE"}


def alias_key(raw: str | None) -> str:
    """
    Normalize alias text into an ASCII-safe lookup key.

    Steps:
        1. lowercase + trim
        2. NFKD accent removal
        3. punctuation cleanup
        4. whitespace collapse
    """
    text = str(raw or "").strip().lower()
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = _PUNCT_RE.sub(" ", text)
    return _SPACE_RE.sub(" ", text).strip()


def _build_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for canonical, aliases in _ROSTER.items():
        for variant in (canonical, *aliases):
            key = alias_key(variant)
            existing = index.get(key)
            if existing and existing != canonical:
                raise RuntimeError(f"Alias {variant!r} maps to both {existing} and {canonical}")
            index[key] = canonical
        # run-together spellings such as "SanFrancisco49ers"
        index[alias_key(canonical).replace(" ", "")] = canonical
    return index


_ALIAS_INDEX = _build_index()


def normalize(raw_name: str | None) -> str:
    """Return the canonical roster name for raw_name, or raw_name (trimmed) if unknown."""
    if raw_name is None:
        return ""
    text = str(raw_name).strip()
    key = alias_key(text)
    if not key:
        return text
    return _ALIAS_INDEX.get(key) or _ALIAS_INDEX.get(key.replace(" ", "")) or text


def is_known_team(name: str | None) -> bool:
    return normalize(name) in _ROSTER


def teams_equal(a: str | None, b: str | None) -> bool:
    left, right = normalize(a), normalize(b)
    return bool(left) and left == right


def normalize_winner(raw_winner: str | None) -> str | None:
    """Canonical winner name, TIE, or None while the game is unresolved."""
    if raw_winner is None:
        return None
    text = str(raw_winner).strip()
    if text.upper() in _UNRESOLVED_WINNERS:
        return None
    if text.upper() == TIE:
        return TIE
    return normalize(text)
