import functools
from typing import Dict

from flask import current_app, request
from flask_socketio import emit

from geoquiz import games, socketio
from geoquiz.broadcast import NAMESPACE
from geoquiz.services.games.errors import GameError, NotAuthorized, ReclaimRejected

# Per-connection roles ('host', 'player') mapped to session ids; one sid may hold both
_sid_to_ctx: Dict[str, Dict[str, str]] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _reports(error_event: str):
    """Translate GameError into an error event for the calling connection only.

    Host-only commands from a non-host connection are dropped without a reply.
    """
    def decorator(handler):
        @functools.wraps(handler)
        def wrapper(data=None):
            try:
                return handler(data or {})
            except ReclaimRejected as exc:
                emit(error_event, {'message': str(exc)})
            except NotAuthorized as exc:
                current_app.logger.info(f"[ignored] sid={_get_sid()} event={handler.__name__} {exc}")
            except GameError as exc:
                emit(error_event, {'message': str(exc)})
        return wrapper
    return decorator


def handle_connect():
    emit('connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    if 'player' in ctx:
        games.player_disconnected(_get_sid(), ctx['player'])
    if 'host' in ctx:
        games.host_disconnected(_get_sid(), ctx['host'])


@_reports('error')
def handle_create_session(data):
    session = games.create_session(_get_sid(), data)
    _sid_to_ctx.setdefault(_get_sid(), {})['host'] = session.id


@_reports('error')
def handle_update_settings(data):
    games.update_settings(_get_sid(), data.get('session_id'), data)


@_reports('join_error')
def handle_join_session(data):
    code = data.get('code')
    if not code:
        emit('join_error', {'message': 'code is required'})
        return
    session, _ = games.join(_get_sid(), code, data.get('name'))
    _sid_to_ctx.setdefault(_get_sid(), {})['player'] = session.id


@_reports('round_error')
def handle_start_round(data):
    games.start_round(
        _get_sid(),
        data.get('session_id'),
        city_name=data.get('city_name'),
        lat=data.get('lat'),
        lng=data.get('lng'),
    )


@_reports('round_error')
def handle_start_random_round(data):
    games.start_random_round(_get_sid(), data.get('session_id'))


@_reports('error')
def handle_submit_guess(data):
    games.submit_guess(_get_sid(), data.get('session_id'), data.get('lat'), data.get('lng'))


@_reports('round_error')
def handle_end_round(data):
    games.end_round(_get_sid(), data.get('session_id'))


@_reports('error')
def handle_next_round(data):
    games.next_round(_get_sid(), data.get('session_id'))


@_reports('error')
def handle_reset_game(data):
    games.reset_game(_get_sid(), data.get('session_id'))


@_reports('error')
def handle_end_game(data):
    games.end_game(_get_sid(), data.get('session_id'))


@_reports('error')
def handle_kick_player(data):
    games.kick_player(_get_sid(), data.get('session_id'), data.get('player_id'))


@_reports('host_reclaim_failed')
def handle_reclaim_host(data):
    session = games.reclaim_host(_get_sid(), data.get('session_id'), data.get('host_token'))
    _sid_to_ctx.setdefault(_get_sid(), {})['host'] = session.id


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the game namespace."""
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'create_session': handle_create_session,
        'update_settings': handle_update_settings,
        'join_session': handle_join_session,
        'start_round': handle_start_round,
        'start_random_round': handle_start_random_round,
        'submit_guess': handle_submit_guess,
        'end_round': handle_end_round,
        'next_round': handle_next_round,
        'reset_game': handle_reset_game,
        'end_game': handle_end_game,
        'kick_player': handle_kick_player,
        'reclaim_host': handle_reclaim_host,
        'ping': handle_ping,
    }
    for event, handler in handlers.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)
