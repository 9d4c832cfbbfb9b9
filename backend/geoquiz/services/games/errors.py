class GameError(Exception):
    """Base class for errors scoped to one session or one command."""


class ValidationError(GameError):
    pass


class NotAuthorized(GameError):
    pass


class ReclaimRejected(NotAuthorized):
    pass


class NotFound(GameError):
    pass


class InvalidState(GameError):
    pass


class GeocodingError(GameError):
    pass


class ResourceExhausted(GameError):
    pass
