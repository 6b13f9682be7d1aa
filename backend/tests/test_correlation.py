"""Unit tests for bet/snapshot correlation."""
from __future__ import annotations

from shared.models.domain import Selection, TrackedBet
from shared.models.enums import BetStatus, MatchStatus

from scheduler.correlation import correlate, find_in_snapshot

from factories import make_match, make_snapshot


def _bet(bet_id: str, *pairs: tuple[str, str], status: BetStatus = BetStatus.PENDING) -> TrackedBet:
    return TrackedBet(
        id=bet_id,
        selections=[Selection(home_team=h, away_team=a, market="1X2", choice="1") for h, a in pairs],
        status=status,
    )


def test_arsenal_chelsea_scenario() -> None:
    bets = [_bet("b1", ("Arsenal", "Chelsea"))]
    snapshot = make_snapshot(
        make_match("m1", "Arsenal FC", "Chelsea FC", MatchStatus.LIVE, home_score=1, away_score=0)
    )

    (enriched,) = correlate(bets, snapshot)

    assert enriched.bet_id == "b1"
    live = enriched.selections[0].live
    assert live is not None
    assert live.id == "m1"
    assert (live.home_score, live.away_score) == (1, 0)
    assert live.status == MatchStatus.LIVE
    assert enriched.selections[0].market == "1X2"


def test_empty_bet_list_returns_empty() -> None:
    snapshot = make_snapshot(make_match())
    assert correlate([], snapshot) == []


def test_symmetry_of_abbreviated_names() -> None:
    long_live = make_snapshot(make_match("m1", "Manchester United", "Liverpool"))
    short_live = make_snapshot(make_match("m2", "Man United", "Liverpool"))

    assert correlate([_bet("b1", ("Man United", "Liverpool"))], long_live)[0].selections[0].live.id == "m1"
    assert correlate([_bet("b2", ("Manchester United", "Liverpool"))], short_live)[0].selections[0].live.id == "m2"


def test_unmatched_selection_passes_through() -> None:
    bets = [_bet("b1", ("Arsenal", "Chelsea"), ("Everton", "Fulham"))]
    snapshot = make_snapshot(make_match("m1", "Arsenal", "Chelsea", home_score=0, away_score=0))

    (enriched,) = correlate(bets, snapshot)

    assert enriched.selections[0].live is not None
    assert enriched.selections[1].live is None
    assert enriched.selections[1].home_team == "Everton"
    assert len(enriched.live_selections) == 1


def test_bet_without_any_live_fixture_is_not_emitted() -> None:
    bets = [_bet("b1", ("Everton", "Fulham")), _bet("b2", ("Arsenal", "Chelsea"))]
    snapshot = make_snapshot(make_match("m1", "Arsenal", "Chelsea"))

    result = correlate(bets, snapshot)

    assert [b.bet_id for b in result] == ["b2"]


def test_terminal_bets_are_skipped() -> None:
    snapshot = make_snapshot(make_match("m1", "Arsenal", "Chelsea"))
    bets = [
        _bet("won", ("Arsenal", "Chelsea"), status=BetStatus.WON),
        _bet("void", ("Arsenal", "Chelsea"), status=BetStatus.VOID),
        _bet("live", ("Arsenal", "Chelsea"), status=BetStatus.LIVE),
    ]

    assert [b.bet_id for b in correlate(bets, snapshot)] == ["live"]


def test_first_fixture_wins() -> None:
    snapshot = make_snapshot(
        make_match("first", "Arsenal FC", "Chelsea FC"),
        make_match("second", "Arsenal", "Chelsea"),
    )
    (enriched,) = correlate([_bet("b1", ("Arsenal", "Chelsea"))], snapshot)
    assert enriched.selections[0].live.id == "first"


def test_correlate_does_not_mutate_bets() -> None:
    bet = _bet("b1", ("Arsenal", "Chelsea"))
    before = bet.model_dump()
    correlate([bet], make_snapshot(make_match("m1", "Arsenal", "Chelsea", home_score=2)))
    assert bet.model_dump() == before


def test_find_in_snapshot() -> None:
    snapshot = make_snapshot(make_match("m1", "Real Madrid CF", "FC Barcelona"))
    assert find_in_snapshot(snapshot, "Real Madrid", "Barcelona").id == "m1"
    assert find_in_snapshot(snapshot, "Atletico", "Sevilla") is None
