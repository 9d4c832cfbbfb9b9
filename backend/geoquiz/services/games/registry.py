import random
import secrets
import threading
import uuid
from typing import Callable, Dict, List, Optional

from geoquiz.models import Session, Settings
from .errors import ResourceExhausted

MAX_CODE_ATTEMPTS = 1000


def generate_join_code(rng=None) -> str:
    """Six numeric characters, never starting with zero."""
    rng = rng or random
    return str(rng.randint(100000, 999999))


def generate_session_id() -> str:
    return uuid.uuid4().hex


def generate_host_token() -> str:
    return secrets.token_urlsafe(24)


class SessionRegistry:
    """Indexes live sessions by id and by join code.

    Only create/remove mutate the indexes; both run under the registry lock.
    Per-session state is guarded by each session's own lock.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = generate_session_id,
        code_factory: Callable[[], str] = generate_join_code,
        token_factory: Callable[[], str] = generate_host_token,
    ):
        self.id_factory = id_factory
        self.code_factory = code_factory
        self.token_factory = token_factory
        self._by_id: Dict[str, Session] = {}
        self._by_code: Dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, settings: Settings, created_at: float = 0.0) -> Session:
        with self._lock:
            code = self._unique_code()
            session_id = self.id_factory()
            if session_id in self._by_id:
                raise ResourceExhausted('Session id collision, try again')
            session = Session(
                id=session_id,
                code=code,
                host_token=self.token_factory(),
                settings=settings,
                created_at=created_at,
            )
            self._by_id[session_id] = session
            self._by_code[code] = session_id
            return session

    def _unique_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.code_factory()
            if code not in self._by_code:
                return code
        raise ResourceExhausted('Could not allocate a free join code, try again')

    def get(self, session_id) -> Optional[Session]:
        if session_id is None:
            return None
        return self._by_id.get(str(session_id))

    def by_code(self, code) -> Optional[Session]:
        if code is None:
            return None
        session_id = self._by_code.get(str(code).strip())
        return self._by_id.get(session_id) if session_id else None

    def remove(self, session_id) -> Optional[Session]:
        with self._lock:
            session = self._by_id.pop(session_id, None)
            if session is not None and self._by_code.get(session.code) == session_id:
                del self._by_code[session.code]
            return session

    def sessions(self) -> List[Session]:
        with self._lock:
            return list(self._by_id.values())

    def __len__(self):
        return len(self._by_id)

    def __contains__(self, session_id):
        return session_id in self._by_id
