import os
import json
import errno
import fcntl
import logging
import tempfile
from dataclasses import dataclass

logger = logging.getLogger("evote.storage")

# Keys shared with the login surface and the page scripts
TOKEN = "token"
REFRESH_TOKEN = "refreshToken"
VOTER_ID = "voterId"
NATIONAL_ID = "nationalId"
ROLE = "role"
IS_AUTHENTICATED = "isAuthenticated"
WALLET_ADDRESS = "walletAddress"
WALLET_CONNECTION_TIME = "walletConnectionTime"
OFFLINE_MODE = "offlineMode"
THEME = "theme"
REDIRECT_COUNTER = "redirectCounter"

SESSION_KEYS = (TOKEN, REFRESH_TOKEN, VOTER_ID, NATIONAL_ID, ROLE, IS_AUTHENTICATED)


class FileLock:
    def __init__(self, path):
        self.path = path
        self.f = None

    def __enter__(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self.f = open(self.path, "a+")
        while True:
            try:
                fcntl.flock(self.f.fileno(), fcntl.LOCK_EX)
                break
            except IOError as e:
                if e.errno != errno.EINTR:
                    raise
        return self.f

    def __exit__(self, exc_type, exc, tb):
        try:
            fcntl.flock(self.f.fileno(), fcntl.LOCK_UN)
        finally:
            self.f.close()


def atomic_write_json(path, obj):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=os.path.dirname(path) or ".") as tf:
        json.dump(obj, tf, indent=2)
        tf.flush()
        os.fsync(tf.fileno())
        tmp = tf.name
    os.replace(tmp, path)


class ClientStorage:
    """
    String key/value store with localStorage semantics.

    With a ``path`` every write is flushed atomically to a JSON file so state
    survives restarts; without one it lives only as long as the object, which
    is how the tab-scoped session store is modelled.
    """

    def __init__(self, path: str | None = None):
        self.path = path
        self._items: dict[str, str] = {}
        if path and os.path.exists(path):
            try:
                with open(path, "r") as f:
                    data = json.load(f)
                self._items = {str(k): str(v) for k, v in (data or {}).items()}
            except Exception:
                logger.exception("Corrupt client storage %s; starting fresh.", path)

    def _save(self):
        if not self.path:
            return
        with FileLock(self.path + ".lock"):
            atomic_write_json(self.path, self._items)

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value):
        self._items[key] = str(value)
        self._save()

    def remove_item(self, key: str):
        if self._items.pop(key, None) is not None:
            self._save()

    def clear(self):
        self._items = {}
        self._save()

    def keys(self):
        return list(self._items)

    def __contains__(self, key):
        return key in self._items

    def __len__(self):
        return len(self._items)


@dataclass
class SessionState:
    token: str | None = None
    refresh_token: str | None = None
    voter_id: str | None = None
    role: str | None = None
    is_authenticated: bool = False

    @classmethod
    def load(cls, storage: ClientStorage) -> "SessionState":
        return cls(
            token=storage.get_item(TOKEN) or None,
            refresh_token=storage.get_item(REFRESH_TOKEN) or None,
            # either key is accepted; older logins wrote nationalId
            voter_id=storage.get_item(VOTER_ID) or storage.get_item(NATIONAL_ID) or None,
            role=storage.get_item(ROLE) or None,
            is_authenticated=storage.get_item(IS_AUTHENTICATED) == "true",
        )

    @property
    def authenticated(self) -> bool:
        return bool(self.token and self.voter_id and self.is_authenticated)

    def save(self, storage: ClientStorage):
        for key, value in ((TOKEN, self.token), (REFRESH_TOKEN, self.refresh_token),
                           (VOTER_ID, self.voter_id), (ROLE, self.role)):
            if value:
                storage.set_item(key, value)
            else:
                storage.remove_item(key)
        storage.set_item(IS_AUTHENTICATED, "true" if self.is_authenticated else "false")

    @staticmethod
    def clear(storage: ClientStorage):
        for key in SESSION_KEYS:
            storage.remove_item(key)
