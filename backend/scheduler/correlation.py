"""
Bet correlation: attaches live score and status to the selections of
tracked bets by fuzzy team-name matching against a snapshot.
"""
from __future__ import annotations

from typing import Iterable, Optional

from shared.models.domain import (
    CanonicalMatch,
    EnrichedBet,
    EnrichedSelection,
    LiveInfo,
    Snapshot,
    TrackedBet,
)
from shared.utils.logging import get_logger
from shared.utils.team_names import find_in_matches

logger = get_logger(__name__)


def find_in_snapshot(
    snapshot: Snapshot, home_team: str | None, away_team: str | None
) -> Optional[CanonicalMatch]:
    return find_in_matches(snapshot.matches, home_team, away_team)


def correlate(bets: Iterable[TrackedBet], snapshot: Snapshot) -> list[EnrichedBet]:
    """
    Enrich each non-terminal bet against the snapshot.

    The first fixture that pairs with a selection wins. Selections without
    a pairing pass through with `live=None`. Only bets with at least one
    paired selection are returned.
    """
    enriched: list[EnrichedBet] = []
    for bet in bets:
        if bet.status.is_terminal:
            continue

        selections: list[EnrichedSelection] = []
        matched = 0
        for selection in bet.selections:
            match = find_in_snapshot(snapshot, selection.home_team, selection.away_team)
            live = LiveInfo.from_match(match) if match is not None else None
            if live is not None:
                matched += 1
            selections.append(EnrichedSelection(**selection.model_dump(), live=live))

        if matched:
            enriched.append(EnrichedBet(bet_id=bet.id, selections=selections))
            logger.debug(
                "bet_correlated",
                bet_id=bet.id,
                matched=matched,
                selections=len(selections),
            )
    return enriched
