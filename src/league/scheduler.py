"""
Double round-robin fixture generation for group play.
"""
from itertools import combinations
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from .models import Fixture, InvalidRoster


def validate_roster(teams: Sequence[str]) -> List[str]:
    """Return the roster sorted lexicographically, rejecting blank or repeated names."""
    seen = set()
    duplicates = []
    for team in teams:
        if not isinstance(team, str) or not team.strip():
            raise InvalidRoster(f"Team names must be non-empty strings, got {team!r}")
        if team in seen and team not in duplicates:
            duplicates.append(team)
        seen.add(team)
    if duplicates:
        raise InvalidRoster(f"Duplicate team names in roster: {', '.join(duplicates)}")
    return sorted(teams)


def _pack_matchdays(pairings: List[Tuple[str, str]]) -> List[int]:
    """
    Assign each pairing to a matchday slot using greedy first-fit.

    Pairings are processed in order; each goes into the first existing slot
    where neither team already plays, or into a new slot.
    Returns the zero-based slot index for every pairing.
    """
    slots: List[Set[str]] = []
    assignment = []
    for home, away in pairings:
        for index, busy in enumerate(slots):
            if home not in busy and away not in busy:
                break
        else:
            index = len(slots)
            slots.append(set())
        slots[index].update((home, away))
        assignment.append(index)
    return assignment


def generate_double_round_robin(teams: Sequence[str], group_id: str) -> List[Fixture]:
    """
    Build a double round-robin schedule for one group.

    Every pair of teams meets twice. In round 1 the lexicographically smaller
    name plays at home; round 2 repeats the pairings with home and away
    swapped. Round 2 matchdays start right after the last matchday used by
    round 1.

    Fewer than two teams produces an empty schedule.
    """
    roster = validate_roster(teams)
    if len(roster) < 2:
        return []

    first_leg = list(combinations(roster, 2))
    slots = _pack_matchdays(first_leg)
    offset = max(slots) + 1

    fixtures = []
    for round_number in (1, 2):
        legs = []
        for position, (team1, team2) in enumerate(first_leg):
            home, away = (team1, team2) if round_number == 1 else (team2, team1)
            matchday = slots[position] + 1 + (offset if round_number == 2 else 0)
            legs.append((matchday, position, home, away))
        # Stable order: by matchday, then generation order
        legs.sort()
        for matchday, _, home, away in legs:
            fixtures.append(Fixture(home_team=home, away_team=away, matchday=matchday,
                                    round=round_number, group_id=group_id))
    return fixtures


def schedule_groups(groups: Dict[str, Sequence[str]]) -> List[Fixture]:
    """Schedule every group independently; groups with fewer than two teams are skipped."""
    fixtures = []
    for group_id in sorted(groups):
        fixtures.extend(generate_double_round_robin(groups[group_id], group_id))
    return fixtures


def count_matchdays(fixtures: Iterable[Fixture]) -> int:
    """Highest matchday actually assigned, 0 when there are no fixtures."""
    return max((fixture.matchday for fixture in fixtures), default=0)


def fixtures_by_matchday(fixtures: Iterable[Fixture]) -> Dict[int, Dict[str, List[Fixture]]]:
    """Group fixtures as {matchday: {group_id: [fixture, ...]}}, keys in ascending order."""
    grouped: Dict[int, Dict[str, List[Fixture]]] = {}
    for fixture in sorted(fixtures, key=lambda f: (f.matchday, f.group_id)):
        grouped.setdefault(fixture.matchday, {}).setdefault(fixture.group_id, []).append(fixture)
    return grouped


def rename_team(fixtures: Iterable[Fixture], old_name: str, new_name: str) -> List[Fixture]:
    """Replace a team name in every home/away slot. Matchdays are left untouched."""
    renamed = []
    for fixture in fixtures:
        if fixture.involves(old_name):
            fixture = Fixture(
                home_team=new_name if fixture.home_team == old_name else fixture.home_team,
                away_team=new_name if fixture.away_team == old_name else fixture.away_team,
                matchday=fixture.matchday,
                round=fixture.round,
                group_id=fixture.group_id,
            )
        renamed.append(fixture)
    return renamed
