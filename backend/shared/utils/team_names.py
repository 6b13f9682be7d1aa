"""
Team-name normalization and fuzzy pairing shared by bet correlation and
ad hoc match lookup.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from shared.models.domain import CanonicalMatch

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_TOKEN = re.compile(r"[a-z0-9]+")


def normalize(name: str | None) -> str:
    """Lower-case and strip everything that is not a-z or 0-9."""
    return _NON_ALNUM.sub("", (name or "").lower())


def tokens(name: str | None) -> list[str]:
    return _TOKEN.findall((name or "").lower())


def _abbreviates(short: list[str], long: list[str]) -> bool:
    """Every word of `short` starts the word at the same position in `long`."""
    if not short or len(short) > len(long):
        return False
    return all(full.startswith(part) for part, full in zip(short, long))


def _same_team_words(a: str | None, b: str | None) -> bool:
    ta, tb = tokens(a), tokens(b)
    return _abbreviates(ta, tb) or _abbreviates(tb, ta)


def names_match(
    wanted_home: str | None,
    wanted_away: str | None,
    candidate_home: str | None,
    candidate_away: str | None,
) -> bool:
    """
    Decide whether a (home, away) pair refers to a candidate fixture.

    Tried in order, each rule applied to both sides at once:
      1. normalized names are equal
      2. candidate names contain the wanted names
      3. wanted names contain the candidate names
      4. word-wise abbreviation ("Man United" / "Manchester United FC")
    Empty names never match.
    """
    wh, wa = normalize(wanted_home), normalize(wanted_away)
    ch, ca = normalize(candidate_home), normalize(candidate_away)
    if not (wh and wa and ch and ca):
        return False
    return (
        (ch == wh and ca == wa)
        or (wh in ch and wa in ca)
        or (ch in wh and ca in wa)
        or (
            _same_team_words(wanted_home, candidate_home)
            and _same_team_words(wanted_away, candidate_away)
        )
    )


def find_in_matches(
    matches: Iterable[CanonicalMatch], home_team: str | None, away_team: str | None
) -> Optional[CanonicalMatch]:
    """First match whose teams pair with (home_team, away_team); None if none do."""
    for match in matches:
        if names_match(home_team, away_team, match.home_team, match.away_team):
            return match
    return None
