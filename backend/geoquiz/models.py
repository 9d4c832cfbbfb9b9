import enum
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ROUND_TIME_BOUNDS = (10, 60)
FREE_RADIUS_BOUNDS = (0.0, 25.0)
PENALTY_BOUNDS = (0.0, 40000.0)
DEFAULT_PLAYER_NAME = 'Player'
MAX_NAME_LENGTH = 32


class SessionState(str, enum.Enum):
    LOBBY = 'lobby'
    IN_ROUND = 'in_round'
    SHOWING_RESULTS = 'showing_results'
    FINISHED = 'finished'


def _clamp(value, low, high, default):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(low, min(high, number))


def clean_name(name) -> str:
    """Strip and cap a display name, falling back to the default."""
    text = str(name).strip() if name is not None else ''
    return text[:MAX_NAME_LENGTH] or DEFAULT_PLAYER_NAME


@dataclass
class Settings:
    round_time_sec: int = 20
    free_radius_km: float = 0.0
    penalty_km: float = 20000.0

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]], defaults: 'Settings') -> 'Settings':
        """Build settings from client input; bad or out-of-range values are clamped."""
        return defaults.updated(data or {})

    def updated(self, data: Dict[str, Any]) -> 'Settings':
        """Return a copy with the given fields applied; unusable values keep the current ones."""
        round_time = _clamp(data.get('round_time_sec', self.round_time_sec), *ROUND_TIME_BOUNDS, self.round_time_sec)
        free_radius = _clamp(data.get('free_radius_km', self.free_radius_km), *FREE_RADIUS_BOUNDS, self.free_radius_km)
        penalty = _clamp(data.get('penalty_km', self.penalty_km), *PENALTY_BOUNDS, self.penalty_km)
        return Settings(int(round(round_time)), float(free_radius), float(penalty))

    def to_dict(self):
        return {
            'round_time_sec': self.round_time_sec,
            'free_radius_km': self.free_radius_km,
            'penalty_km': self.penalty_km,
        }


@dataclass
class Player:
    id: str
    name: str
    connection_id: Optional[str] = None
    total_km: float = 0.0

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'total_km': round(self.total_km, 1),
        }


@dataclass
class Guess:
    lat: float
    lng: float
    raw_km: float
    adjusted_km: float
    submitted_at: float
    first_lat: float
    first_lng: float
    first_submitted_at: float
    revisions: int = 0

    def revise(self, lat, lng, raw_km, adjusted_km, at):
        self.lat, self.lng = lat, lng
        self.raw_km, self.adjusted_km = raw_km, adjusted_km
        self.submitted_at = at
        self.revisions += 1

    def to_dict(self):
        return {
            'lat': self.lat,
            'lng': self.lng,
            'first': {'lat': self.first_lat, 'lng': self.first_lng},
            'revisions': self.revisions,
        }


@dataclass
class Round:
    number: int
    city_name: str
    lat: float
    lng: float
    started_at: float
    deadline_at: float
    guesses: Dict[str, Guess] = field(default_factory=dict)

    def public_dict(self):
        # The target coordinate stays server-side until results are revealed
        return {
            'round': self.number,
            'city_name': self.city_name,
            'deadline': self.deadline_at,
        }

    def target_dict(self):
        return {'name': self.city_name, 'lat': self.lat, 'lng': self.lng}


@dataclass(eq=False)
class Session:
    id: str
    code: str
    host_token: str
    settings: Settings
    created_at: float = 0.0
    state: SessionState = SessionState.LOBBY
    round: int = 0
    host_connection_id: Optional[str] = None
    host_disconnected_at: Optional[float] = None
    players: Dict[str, Player] = field(default_factory=dict)
    current_round: Optional[Round] = None
    random_cities: Optional[list] = None
    history: List[dict] = field(default_factory=list)
    # Pending timer handles owned by this session
    round_timer: Any = None
    grace_timer: Any = None
    reap_timer: Any = None
    lock: Any = field(default_factory=threading.RLock, repr=False)

    def is_host(self, connection_id) -> bool:
        return connection_id is not None and connection_id == self.host_connection_id

    def player_for_connection(self, connection_id) -> Optional[Player]:
        for player in self.players.values():
            if player.connection_id == connection_id:
                return player
        return None

    def roster(self):
        return [p.to_dict() for p in self.players.values()]

    def to_dict(self):
        return {
            'session_id': self.id,
            'code': self.code,
            'state': self.state.value,
            'round': self.round,
            'settings': self.settings.to_dict(),
            'players': self.roster(),
            'host_connected': self.host_connection_id is not None,
        }
