"""
Group standings computed from recorded match results.
"""
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Fixture, Match, TeamRecord


DEFAULT_POINTS_FOR_WIN = 3
DEFAULT_POINTS_FOR_DRAW = 1


def _apply_result(record: TeamRecord, scored: int, conceded: int, points_for_win: int, points_for_draw: int):
    record.played += 1
    record.goals_for += scored
    record.goals_against += conceded
    if scored > conceded:
        record.wins += 1
        record.points += points_for_win
    elif scored == conceded:
        record.draws += 1
        record.points += points_for_draw
    else:
        record.losses += 1


def calculate_group_standings(groups: Dict[str, Sequence[str]], matches: Iterable[Match],
                              settings: Optional[Dict] = None) -> Dict[str, List[Dict]]:
    """
    Calculate standings for each group from its recorded matches.

    Returns: {group_id: [{'team': name, 'played': n, 'wins': n, 'draws': n,
                          'losses': n, 'goals_for': n, 'goals_against': n,
                          'goal_difference': n, 'points': n}, ...]}

    Ranking: points -> goal difference. Teams still level keep roster order.
    """
    settings = settings or {}
    points_for_win = settings.get('points_for_win', DEFAULT_POINTS_FOR_WIN)
    points_for_draw = settings.get('points_for_draw', DEFAULT_POINTS_FOR_DRAW)

    records = {
        group_id: {team: TeamRecord(team=team) for team in teams}
        for group_id, teams in groups.items()
    }

    for match in matches:
        group_records = records.get(match.group_id)
        if group_records is None:
            continue
        home = group_records.get(match.home_team)
        away = group_records.get(match.away_team)
        # Results for teams no longer on the roster are ignored
        if home is None or away is None:
            continue
        _apply_result(home, match.home_score, match.away_score, points_for_win, points_for_draw)
        _apply_result(away, match.away_score, match.home_score, points_for_win, points_for_draw)

    standings = {}
    for group_id, group_records in records.items():
        ordered = sorted(group_records.values(), key=lambda r: (-r.points, -r.goal_difference))
        standings[group_id] = [record.to_dict() for record in ordered]
    return standings


def top_two(standings: Dict[str, List[Dict]], group_ids: Sequence[str]) -> List[str]:
    """Flatten winner and runner-up of each group, in the given group order."""
    qualified = []
    for group_id in group_ids:
        qualified.extend(row['team'] for row in standings.get(group_id, [])[:2])
    return qualified


def is_group_stage_complete(fixtures: Iterable[Fixture], matches: Iterable[Match]) -> bool:
    """True when every fixture has a matching recorded result."""
    fixtures = list(fixtures)
    if not fixtures:
        return False
    played = {(m.group_id, m.home_team, m.away_team) for m in matches}
    return all((f.group_id, f.home_team, f.away_team) in played for f in fixtures)
