"""
Fixed 8-team knockout bracket: quarterfinals, semifinals and final.
"""
import copy
from typing import List, Optional, Sequence

from .models import KnockoutMatch


BRACKET_SIZE = 8

# Zero-based indices into the flattened top-two list (group order, winner first)
QUARTERFINAL_SEEDING = [(0, 5), (2, 7), (4, 3), (6, 1)]


class BracketError(ValueError):
    """Raised when the bracket cannot be built or a score cannot be applied."""


def generate_knockout_bracket(qualified: Sequence[str]) -> List[KnockoutMatch]:
    """
    Seed quarterfinals from the flattened top-two list and create empty later rounds.

    `qualified` must hold exactly eight names: 1st and 2nd of four groups.
    """
    if len(qualified) != BRACKET_SIZE:
        raise BracketError(
            f"Group stage must be complete to generate the knockout bracket "
            f"({len(qualified)} of {BRACKET_SIZE} qualified teams)")

    matches = []
    for number, (home_idx, away_idx) in enumerate(QUARTERFINAL_SEEDING, start=1):
        matches.append(KnockoutMatch(id=f"q{number}", round='quarter', match_number=number,
                                     home_team=qualified[home_idx], away_team=qualified[away_idx]))
    matches.append(KnockoutMatch(id='s1', round='semi', match_number=1))
    matches.append(KnockoutMatch(id='s2', round='semi', match_number=2))
    matches.append(KnockoutMatch(id='f1', round='final', match_number=1))
    return matches


def _next_slot(match: KnockoutMatch):
    """Return (next_match_id, 'home'|'away') for the winner of `match`, or None after the final."""
    if match.round == 'quarter':
        semi = 's1' if match.match_number <= 2 else 's2'
        return semi, 'home' if match.match_number % 2 == 1 else 'away'
    if match.round == 'semi':
        return 'f1', 'home' if match.match_number == 1 else 'away'
    return None


def record_knockout_score(matches: Sequence[KnockoutMatch], match_id: str,
                          home_score: int, away_score: int) -> List[KnockoutMatch]:
    """
    Apply a score to one bracket match and move its winner into the next round.

    Returns a new list; the input matches are not modified.
    """
    updated = [copy.copy(m) for m in matches]
    by_id = {m.id: m for m in updated}

    match = by_id.get(match_id)
    if match is None:
        raise BracketError(f"Unknown knockout match: {match_id}")
    if not match.home_team or not match.away_team:
        raise BracketError(f"Teams for {match_id} are not decided yet")
    for score in (home_score, away_score):
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise BracketError(f"Scores must be non-negative integers, got {score!r}")
    if home_score == away_score:
        raise BracketError(f"Knockout match {match_id} needs a winner; level scores are not allowed")

    previous_winner = match.winner
    match.home_score = home_score
    match.away_score = away_score

    if match.winner != previous_winner:
        _advance(by_id, match, match.winner)
    return updated


def _advance(by_id, match: KnockoutMatch, team: str):
    """
    Put `team` into the slot fed by `match`.

    A later match that was already played with the old occupant loses its
    score, and its own slot further on is emptied, up to the final.
    """
    target = _next_slot(match)
    if not target:
        return
    next_id, side = target
    next_match = by_id.get(next_id)
    if next_match is None:
        return
    setattr(next_match, f"{side}_team", team)
    if next_match.is_played:
        next_match.home_score = None
        next_match.away_score = None
        _advance(by_id, next_match, '')


def get_champion(matches: Sequence[KnockoutMatch]) -> Optional[str]:
    for match in matches:
        if match.round == 'final':
            return match.winner
    return None
