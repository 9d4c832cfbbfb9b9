import logging
import random
import secrets
import time
from typing import List, Optional, Tuple

from geoquiz.models import Guess, Player, Round, Session, SessionState, Settings, clean_name
from .cities import MIN_POPULATION, City, pick_random_cities
from .distance import adjusted_km, haversine_km, parse_coordinate
from .errors import GeocodingError, InvalidState, NotAuthorized, NotFound, ValidationError
from .host import HostContinuity
from .registry import SessionRegistry
from .scheduler import cancel_task
from .scoring import leaderboard, score_current_round

UNKNOWN_PLACE = 'Unknown location'


class GameService:
    """Session lifecycle and round flow for every live game.

    Each public operation takes the caller's connection id and runs to
    completion under the session's lock. Outbound events go through
    ``publisher``; deadlines go through ``scheduler``. Both are bound in
    ``init_app`` and can be swapped in tests.
    """

    def __init__(self):
        self.registry = SessionRegistry()
        self.host = HostContinuity(self)
        self.publisher = None
        self.scheduler = None
        self.geocoder = None
        self.cities: List[City] = []
        self.clock = time.time
        self.rng = random.Random()
        self.logger = logging.getLogger('geoquiz')
        self.defaults = Settings()
        self.host_grace_sec = 180
        self.finished_retention_sec = 600
        self.min_city_population = MIN_POPULATION

    def init_app(self, app, publisher, scheduler, geocoder=None, cities=None):
        cfg = app.config
        self.registry = SessionRegistry()
        self.publisher = publisher
        self.scheduler = scheduler
        self.geocoder = geocoder
        self.cities = list(cities or [])
        self.logger = app.logger
        self.defaults = Settings().updated({
            'round_time_sec': cfg.get('DEFAULT_ROUND_TIME_SEC', 20),
            'free_radius_km': cfg.get('DEFAULT_FREE_RADIUS_KM', 0),
            'penalty_km': cfg.get('DEFAULT_PENALTY_KM', 20000),
        })
        self.host_grace_sec = int(cfg.get('HOST_GRACE_SEC', 180))
        self.finished_retention_sec = int(cfg.get('FINISHED_RETENTION_SEC', 600))
        self.min_city_population = int(cfg.get('MIN_CITY_POPULATION', MIN_POPULATION))
        app.extensions['geoquiz'] = self

    # ---- lookups and guards ----

    def _session(self, session_id) -> Session:
        session = self.registry.get(session_id)
        if session is None:
            raise NotFound('Game not found')
        return session

    @staticmethod
    def _require_host(session: Session, connection_id) -> None:
        if not session.is_host(connection_id):
            raise NotAuthorized(f'Connection {connection_id} is not the host of {session.id}')

    @staticmethod
    def _require_active(session: Session) -> None:
        if session.state == SessionState.FINISHED:
            raise InvalidState('This game has ended')

    def _broadcast_roster(self, session: Session) -> None:
        self.publisher.to_session(session.id, 'lobby_update', {'players': session.roster()})

    # ---- lobby ----

    def create_session(self, connection_id: str, data=None) -> Session:
        settings = Settings.from_payload(data, self.defaults)
        session = self.registry.create(settings, created_at=self.clock())
        with session.lock:
            session.host_connection_id = connection_id
            self.publisher.enter(connection_id, session.id)
            self.logger.info(f"[session-create] session={session.id} code={session.code} settings={settings.to_dict()}")
            self.publisher.to_connection(connection_id, 'session_created', {
                'session_id': session.id,
                'code': session.code,
                'host_token': session.host_token,
                'settings': settings.to_dict(),
            })
            self._broadcast_roster(session)
        return session

    def update_settings(self, connection_id: str, session_id, data) -> Settings:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            if session.state != SessionState.LOBBY:
                raise InvalidState('Settings can only be changed in the lobby')
            data = data or {}
            changes = {k: data[k] for k in ('round_time_sec', 'free_radius_km') if k in data}
            session.settings = session.settings.updated(changes)
            self.publisher.to_session(session.id, 'settings_updated', {'settings': session.settings.to_dict()})
            return session.settings

    def join(self, connection_id: str, code, name=None) -> Tuple[Session, Player]:
        session = self.registry.by_code(code)
        if session is None:
            raise NotFound('No active game with that code')
        with session.lock:
            if session.state == SessionState.FINISHED:
                raise NotFound('No active game with that code')
            player = Player(id=self._new_player_id(session), name=clean_name(name), connection_id=connection_id)
            session.players[player.id] = player
            self.publisher.enter(connection_id, session.id)
            self.logger.info(f"[join] session={session.id} player={player.id} name={player.name!r} state={session.state.value}")
            current = session.current_round
            self.publisher.to_connection(connection_id, 'player_joined', {
                'session_id': session.id,
                'player_id': player.id,
                'name': player.name,
                'code': session.code,
                'state': session.state.value,
                'round': session.round,
                'settings': session.settings.to_dict(),
                'current_round': current.public_dict() if current and session.state == SessionState.IN_ROUND else None,
            })
            self._broadcast_roster(session)
            return session, player

    @staticmethod
    def _new_player_id(session: Session) -> str:
        while True:
            player_id = f"p-{secrets.token_hex(4)}"
            if player_id not in session.players:
                return player_id

    # ---- rounds ----

    def start_round(self, connection_id: str, session_id, city_name=None, lat=None, lng=None) -> Round:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            self._require_active(session)

        name = (city_name or '').strip() or None
        if lat is None and lng is None:
            if not name:
                raise ValidationError('A city name or coordinates are required')
            lat, lng = self._geocode(session, name)
        else:
            try:
                lat, lng = parse_coordinate(lat, lng)
            except ValueError as exc:
                raise ValidationError(f'Invalid target: {exc}') from exc

        with session.lock:
            # The geocoder call above ran unlocked; the session may have moved on
            if self.registry.get(session.id) is not session:
                raise NotFound('Game not found')
            self._require_host(session, connection_id)
            self._require_active(session)
            return self._begin_round(session, name or UNKNOWN_PLACE, lat, lng)

    def _geocode(self, session: Session, name: str):
        try:
            if self.geocoder is None:
                raise GeocodingError('Place lookup is not available')
            return self.geocoder.geocode(name)
        except GeocodingError as exc:
            self.logger.warning(f"[round-abort] session={session.id} city={name!r} {exc}")
            with session.lock:
                if session.state == SessionState.LOBBY:
                    self._broadcast_roster(session)
            raise

    def start_random_round(self, connection_id: str, session_id) -> Round:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            self._require_active(session)
            if session.random_cities is None:
                picked = pick_random_cities(self.cities, min_population=self.min_city_population, rng=self.rng)
                if not picked:
                    raise InvalidState('No cities available for a random game')
                session.random_cities = picked
                self.logger.info(f"[random-cities] session={session.id} picked={len(picked)}")
            self.publisher.to_session(session.id, 'random_cities', {
                'cities': [c.public_dict() for c in session.random_cities],
            })
            first = session.random_cities[0]
            return self._begin_round(session, first.name, first.lat, first.lng)

    def _begin_round(self, session: Session, city_name: str, lat: float, lng: float) -> Round:
        cancel_task(session.round_timer)
        session.round += 1
        now = self.clock()
        duration = session.settings.round_time_sec
        current = Round(
            number=session.round,
            city_name=city_name,
            lat=lat,
            lng=lng,
            started_at=now,
            deadline_at=now + duration,
        )
        session.current_round = current
        session.state = SessionState.IN_ROUND
        session.round_timer = self.scheduler.schedule(
            duration, self._on_round_deadline, session.id, current,
            name=f"round-deadline session={session.id} round={current.number}",
        )
        self.logger.info(f"[round-start] session={session.id} round={current.number} city={city_name!r} deadline={current.deadline_at}")
        payload = current.public_dict()
        payload['round_time_sec'] = duration
        payload['free_radius_km'] = session.settings.free_radius_km
        self.publisher.to_session(session.id, 'round_started', payload)
        return current

    def submit_guess(self, connection_id: str, session_id, lat, lng) -> Guess:
        session = self._session(session_id)
        try:
            lat, lng = parse_coordinate(lat, lng)
        except ValueError as exc:
            raise ValidationError(f'Invalid guess: {exc}') from exc
        with session.lock:
            player = session.player_for_connection(connection_id)
            if player is None:
                raise NotFound('You are not a player in this game')
            current = session.current_round
            if session.state != SessionState.IN_ROUND or current is None:
                raise InvalidState('Not accepting guesses at this time')
            now = self.clock()
            raw = haversine_km(lat, lng, current.lat, current.lng)
            adjusted = adjusted_km(raw, session.settings.free_radius_km)
            guess = current.guesses.get(player.id)
            if guess is None:
                guess = Guess(lat, lng, raw, adjusted, now, lat, lng, now)
                current.guesses[player.id] = guess
            else:
                guess.revise(lat, lng, raw, adjusted, now)
            self.publisher.to_connection(connection_id, 'guess_accepted', {
                'round': current.number,
                'raw_km': round(raw, 1),
                'km': round(adjusted, 1),
                'revisions': guess.revisions,
            })
            return guess

    def end_round(self, connection_id: str, session_id) -> List[dict]:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            if session.state != SessionState.IN_ROUND:
                raise InvalidState('No round in progress')
            return self._end_round(session)

    def _on_round_deadline(self, session_id: str, expected: Round) -> None:
        session = self.registry.get(session_id)
        if session is None:
            return
        with session.lock:
            # Round numbers repeat after a reset, so match the round object itself
            if session.state != SessionState.IN_ROUND or session.current_round is not expected:
                self.logger.info(f"[timer-abort] session={session_id} round={expected.number} superseded")
                return
            self._end_round(session)

    def _end_round(self, session: Session) -> List[dict]:
        cancel_task(session.round_timer)
        session.round_timer = None
        results = score_current_round(session)
        session.state = SessionState.SHOWING_RESULTS
        current = session.current_round
        self.logger.info(f"[round-end] session={session.id} round={current.number} guesses={len(current.guesses)}/{len(session.players)}")
        self.publisher.to_session(session.id, 'round_results', {
            'round': current.number,
            'city': current.target_dict(),
            'results': results,
        })
        return results

    def next_round(self, connection_id: str, session_id) -> None:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            if session.state not in (SessionState.SHOWING_RESULTS, SessionState.IN_ROUND):
                raise InvalidState('There is no round to move on from')
            cancel_task(session.round_timer)
            session.round_timer = None
            session.current_round = None
            session.state = SessionState.LOBBY
            self.publisher.to_session(session.id, 'lobby_ready', {'round': session.round})

    def reset_game(self, connection_id: str, session_id) -> None:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            self._require_active(session)
            cancel_task(session.round_timer)
            session.round_timer = None
            session.round = 0
            session.current_round = None
            session.random_cities = None
            session.history = []
            for player in session.players.values():
                player.total_km = 0.0
            session.state = SessionState.LOBBY
            self.logger.info(f"[reset] session={session.id}")
            self.publisher.to_session(session.id, 'game_reset', {'players': session.roster()})

    def end_game(self, connection_id: str, session_id) -> List[dict]:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            self._require_active(session)
            return self.finish(session, reason='host_ended')

    def finish(self, session: Session, reason: str) -> List[dict]:
        """Move to FINISHED, publish the final leaderboard and schedule removal.

        Callers hold the session lock.
        """
        cancel_task(session.round_timer)
        cancel_task(session.grace_timer)
        session.round_timer = session.grace_timer = None
        session.state = SessionState.FINISHED
        board = leaderboard(session)
        self.logger.info(f"[finish] session={session.id} reason={reason} rounds={len(session.history)}")
        self.publisher.to_session(session.id, 'game_final', {
            'reason': reason,
            'leaderboard': board,
            'history': session.history,
        })
        if self.finished_retention_sec > 0:
            session.reap_timer = self.scheduler.schedule(
                self.finished_retention_sec, self._reap, session.id, name=f"reap session={session.id}"
            )
        else:
            self._reap(session.id)
        return board

    def _reap(self, session_id: str) -> None:
        session = self.registry.remove(session_id)
        if session is None:
            return
        with session.lock:
            cancel_task(session.round_timer)
            cancel_task(session.grace_timer)
            session.round_timer = session.grace_timer = session.reap_timer = None
        self.logger.info(f"[reap] session={session_id} code={session.code}")

    # ---- roster ----

    def kick_player(self, connection_id: str, session_id, player_id) -> Player:
        session = self._session(session_id)
        with session.lock:
            self._require_host(session, connection_id)
            player = session.players.pop(player_id, None)
            if player is None:
                raise NotFound('Player not found')
            if session.current_round is not None:
                session.current_round.guesses.pop(player.id, None)
            self.logger.info(f"[kick] session={session.id} player={player.id}")
            if player.connection_id:
                self.publisher.to_connection(player.connection_id, 'player_kicked', {
                    'session_id': session.id,
                    'player_id': player.id,
                })
                self.publisher.leave(player.connection_id, session.id)
                self.publisher.disconnect(player.connection_id)
            self._broadcast_roster(session)
            return player

    def player_disconnected(self, connection_id: str, session_id) -> Optional[Player]:
        session = self.registry.get(session_id)
        if session is None:
            return None
        with session.lock:
            player = session.player_for_connection(connection_id)
            if player is None:
                return None
            del session.players[player.id]
            if session.current_round is not None:
                session.current_round.guesses.pop(player.id, None)
            self.logger.info(f"[leave] session={session.id} player={player.id}")
            self._broadcast_roster(session)
            return player

    # ---- host continuity ----

    def host_disconnected(self, connection_id: str, session_id) -> bool:
        session = self.registry.get(session_id)
        if session is None:
            return False
        return self.host.on_disconnect(session, connection_id)

    def reclaim_host(self, connection_id: str, session_id, token) -> Session:
        session = self._session(session_id)
        self.host.reclaim(session, connection_id, token)
        return session
