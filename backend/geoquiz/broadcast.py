NAMESPACE = '/ws'


def session_room(session_id: str) -> str:
    return f"game:{session_id}"


class SocketIOPublisher:
    """Delivers game events over Flask-SocketIO.

    Uses the server object directly so it also works from background tasks
    that run outside a request context.
    """

    def __init__(self, socketio, namespace: str = NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def to_session(self, session_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=session_room(session_id), namespace=self.namespace)

    def to_connection(self, connection_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=connection_id, namespace=self.namespace)

    def enter(self, connection_id: str, session_id: str) -> None:
        self.socketio.server.enter_room(connection_id, session_room(session_id), namespace=self.namespace)

    def leave(self, connection_id: str, session_id: str) -> None:
        self.socketio.server.leave_room(connection_id, session_room(session_id), namespace=self.namespace)

    def disconnect(self, connection_id: str) -> None:
        self.socketio.server.disconnect(connection_id, namespace=self.namespace)
