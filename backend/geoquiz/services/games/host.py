import secrets

from geoquiz.models import Session, SessionState
from .errors import ReclaimRejected
from .scheduler import cancel_task


class HostContinuity:
    """Keeps a session alive across host connection drops.

    The host token handed out at creation is the only way to rebind a new
    connection as host. A disconnected host has ``service.host_grace_sec`` to
    come back before the session is finished.
    """

    def __init__(self, service):
        self.service = service

    def on_disconnect(self, session: Session, connection_id: str) -> bool:
        svc = self.service
        with session.lock:
            if not session.is_host(connection_id) or session.state == SessionState.FINISHED:
                return False
            now = svc.clock()
            grace = svc.host_grace_sec
            session.host_connection_id = None
            session.host_disconnected_at = now
            cancel_task(session.grace_timer)
            session.grace_timer = svc.scheduler.schedule(
                grace, self._expire, session.id, now, name=f"host-grace session={session.id}"
            )
            svc.logger.info(f"[host-grace] session={session.id} state={session.state.value} grace={grace}s")
            svc.publisher.to_session(session.id, 'host_disconnected', {
                'session_id': session.id,
                'grace_deadline': now + grace,
            })
            return True

    def reclaim(self, session: Session, connection_id: str, token) -> None:
        svc = self.service
        with session.lock:
            if session.state == SessionState.FINISHED:
                raise ReclaimRejected('This game has already ended')
            if not token or not secrets.compare_digest(str(token).encode(), session.host_token.encode()):
                raise ReclaimRejected('Invalid host token')
            if session.host_connection_id is not None and session.host_connection_id != connection_id:
                raise ReclaimRejected('Another host connection is already active')

            cancel_task(session.grace_timer)
            session.grace_timer = None
            session.host_connection_id = connection_id
            session.host_disconnected_at = None
            svc.publisher.enter(connection_id, session.id)
            svc.logger.info(f"[host-reclaim] session={session.id} state={session.state.value} round={session.round}")
            svc.publisher.to_connection(connection_id, 'host_reclaimed', self.snapshot(session))
            svc.publisher.to_session(session.id, 'host_reconnected', {'session_id': session.id})

    def snapshot(self, session: Session) -> dict:
        payload = session.to_dict()
        current = session.current_round
        payload['current_round'] = (
            current.public_dict() if current and session.state == SessionState.IN_ROUND else None
        )
        payload['random_cities'] = (
            [c.public_dict() for c in session.random_cities] if session.random_cities is not None else None
        )
        return payload

    def _expire(self, session_id: str, disconnected_at: float) -> None:
        svc = self.service
        session = svc.registry.get(session_id)
        if session is None:
            return
        with session.lock:
            if (
                session.state == SessionState.FINISHED
                or session.host_connection_id is not None
                or session.host_disconnected_at != disconnected_at
            ):
                svc.logger.info(f"[host-grace-abort] session={session_id} host returned or game over")
                return
            svc.logger.info(f"[host-timeout] session={session_id} no reclaim, finishing")
            svc.finish(session, reason='host_timeout')
