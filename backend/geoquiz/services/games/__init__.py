"""Game domain services: sessions, scoring and timers.

This package contains the game's domain logic, called by the Socket.IO
handlers and the HTTP blueprint. Transport concerns stay in
``geoquiz.broadcast`` and ``geoquiz.socketio_events``.
"""

from .sessions import GameService

__all__ = ['GameService']
