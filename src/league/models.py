"""
Records shared by the scheduler, standings and knockout modules.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Optional


FIXTURE_FIELDS = ('home_team', 'away_team', 'matchday', 'round', 'group_id')


class InvalidRoster(ValueError):
    """Raised when a group roster cannot be scheduled (duplicate or blank names)."""


def _require_name(value, field_name):
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string, got {value!r}")


def _require_positive_int(value, field_name):
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{field_name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class Fixture:
    """One scheduled (not necessarily played) match of a group."""
    home_team: str
    away_team: str
    matchday: int
    round: int
    group_id: str

    def __post_init__(self):
        _require_name(self.home_team, 'home_team')
        _require_name(self.away_team, 'away_team')
        _require_name(self.group_id, 'group_id')
        _require_positive_int(self.matchday, 'matchday')
        if isinstance(self.round, bool) or not isinstance(self.round, int) or self.round not in (1, 2):
            raise ValueError(f"round must be 1 or 2, got {self.round!r}")
        if self.home_team == self.away_team:
            raise ValueError(f"A team cannot play itself: {self.home_team!r}")

    def involves(self, team: str) -> bool:
        return team in (self.home_team, self.away_team)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Fixture':
        """Build a fixture from its serialized form, rejecting partial records."""
        if not isinstance(data, dict):
            raise ValueError(f"Fixture data must be a mapping, got {type(data).__name__}")
        missing = [name for name in FIXTURE_FIELDS if data.get(name) is None]
        if missing:
            raise ValueError(f"Fixture is missing required fields: {', '.join(missing)}")
        return cls(**{name: data[name] for name in FIXTURE_FIELDS})


@dataclass(frozen=True)
class Match:
    """A recorded group-stage result."""
    id: str
    group_id: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    played_at: str = ''

    def __post_init__(self):
        _require_name(self.id, 'id')
        _require_name(self.group_id, 'group_id')
        _require_name(self.home_team, 'home_team')
        _require_name(self.away_team, 'away_team')
        for field_name in ('home_score', 'away_score'):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{field_name} must be a non-negative integer, got {value!r}")
        if self.home_team == self.away_team:
            raise ValueError(f"A team cannot play itself: {self.home_team!r}")

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            id=data.get('id'),
            group_id=data.get('group_id'),
            home_team=data.get('home_team'),
            away_team=data.get('away_team'),
            home_score=data.get('home_score'),
            away_score=data.get('away_score'),
            played_at=data.get('played_at') or '',
        )


@dataclass
class KnockoutMatch:
    """A bracket slot. Team names stay empty until a previous round fills them."""
    id: str
    round: str
    match_number: int
    home_team: str = ''
    away_team: str = ''
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    @property
    def is_played(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    @property
    def winner(self) -> Optional[str]:
        if not self.is_played or self.home_score == self.away_score:
            return None
        return self.home_team if self.home_score > self.away_score else self.away_team

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'KnockoutMatch':
        return cls(
            id=data['id'],
            round=data['round'],
            match_number=data['match_number'],
            home_team=data.get('home_team') or '',
            away_team=data.get('away_team') or '',
            home_score=data.get('home_score'),
            away_score=data.get('away_score'),
        )


@dataclass
class TeamRecord:
    """Standings row for one team."""
    team: str
    played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['goal_difference'] = self.goal_difference
        return data
