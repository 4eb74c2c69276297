"""Per-tab session identity."""
from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Callable, MutableMapping, Optional

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "learnhub_session_id"

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id(now_ms: Optional[int] = None) -> str:
    """`session_<epoch ms>_<9 random base36 chars>`."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"session_{now_ms}_{suffix}"


class SessionIdentityProvider:
    """Stable session token kept in a tab-scoped storage slot.

    The slot lives exactly as long as the storage mapping it is given; there
    is no expiry. Creating a new token calls `on_new_session`, which the
    owning context uses to drop anything cached for the previous session.
    """

    def __init__(
        self,
        storage: MutableMapping[str, str],
        on_new_session: Optional[Callable[[str], None]] = None,
        key: str = SESSION_STORAGE_KEY,
    ):
        self._storage = storage
        self._on_new_session = on_new_session
        self._key = key

    @property
    def current(self) -> Optional[str]:
        return self._storage.get(self._key)

    def get_or_create_session_id(self) -> str:
        existing = self._storage.get(self._key)
        if existing:
            return existing

        session_id = generate_session_id()
        self._storage[self._key] = session_id
        logger.debug("Started clickstream session %s", session_id)
        if self._on_new_session is not None:
            self._on_new_session(session_id)
        return session_id

    def reset(self) -> None:
        """Forget the current token; the next call starts a new session."""
        self._storage.pop(self._key, None)


def session_started_ms(session_id: Optional[str]) -> Optional[int]:
    """Epoch ms embedded in a session id, None if it is not one of ours."""
    if not session_id:
        return None
    parts = session_id.split("_")
    if len(parts) != 3 or parts[0] != "session" or not parts[1].isdigit():
        return None
    return int(parts[1])
