"""Unit tests for team-name normalization and fuzzy pairing."""
from __future__ import annotations

from shared.utils.team_names import find_in_matches, names_match, normalize

from factories import make_match


class TestNormalize:

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Man. United F.C.") == "manunitedfc"

    def test_strips_spaces_and_accents(self) -> None:
        assert normalize("Atlético  Madrid") == "atlticomadrid"

    def test_none_is_empty(self) -> None:
        assert normalize(None) == ""


class TestNamesMatch:

    def test_exact_after_normalization(self) -> None:
        assert names_match("arsenal", "chelsea", "Arsenal", "CHELSEA")

    def test_candidate_contains_wanted(self) -> None:
        assert names_match("Arsenal", "Chelsea", "Arsenal FC", "Chelsea FC")

    def test_wanted_contains_candidate(self) -> None:
        assert names_match("Arsenal FC", "Chelsea FC", "Arsenal", "Chelsea")

    def test_abbreviated_words_both_directions(self) -> None:
        assert names_match("Manchester United", "Liverpool", "Man United", "Liverpool")
        assert names_match("Man United", "Liverpool", "Manchester United FC", "Liverpool FC")

    def test_one_side_mismatch_fails(self) -> None:
        assert not names_match("Arsenal", "Chelsea", "Arsenal FC", "Tottenham")

    def test_swapped_home_away_fails(self) -> None:
        assert not names_match("Chelsea", "Arsenal", "Arsenal", "Chelsea")

    def test_empty_names_never_match(self) -> None:
        assert not names_match("", "Chelsea", "Arsenal", "Chelsea")
        assert not names_match("Arsenal", "Chelsea", "Arsenal", None)
        assert not names_match("!!", "??", "Arsenal", "Chelsea")

    def test_substring_false_positive_is_kept(self) -> None:
        # Short names pair with longer unrelated ones; accepted behaviour.
        assert names_match("Inter", "Milan", "Inter Miami", "AC Milan")


class TestFindInMatches:

    def test_first_match_wins(self) -> None:
        first = make_match("m1", "Arsenal FC", "Chelsea FC")
        second = make_match("m2", "Arsenal", "Chelsea")
        assert find_in_matches([first, second], "Arsenal", "Chelsea") is first

    def test_none_when_nothing_pairs(self) -> None:
        assert find_in_matches([make_match()], "Everton", "Fulham") is None
