import time
import logging
from urllib.parse import urlencode

import requests

from config import LOGIN_PAGE, STORAGE_FILE
from storage import ClientStorage

logger = logging.getLogger("evote.context")


def login_url(reason: str | None = None, page: str = LOGIN_PAGE) -> str:
    """Login location with a reason code and a cache-busting millisecond timestamp."""
    if not reason:
        return page
    return f"{page}?{urlencode({'redirect_reason': reason, 'time': int(time.time() * 1000)})}"


class EventBus:
    """Fan-out of view events; the presentation layer renders whatever it receives."""

    def __init__(self):
        self._subscribers = []
        self.history = []

    def subscribe(self, callback):
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def emit(self, kind: str, **data):
        event = {"kind": kind, **data}
        self.history.append(event)
        for cb in list(self._subscribers):
            try:
                cb(event)
            except Exception:
                logger.exception("event subscriber failed for %s", kind)
        return event

    def feedback(self, message: str, error: bool = False, target: str = "feedback"):
        return self.emit("feedback", message=message, error=error, target=target)

    def last(self, kind: str):
        for event in reversed(self.history):
            if event["kind"] == kind:
                return event
        return None


class Navigator:
    def __init__(self, location: str = ""):
        self.location = location
        self.history = []
        self.reloads = 0

    def navigate(self, url: str):
        logger.info("navigate -> %s", url)
        self.history.append(url)
        self.location = url

    def reload(self):
        logger.info("reload %s", self.location)
        self.reloads += 1


class ClientContext:
    """
    Everything a page load owns: persisted and tab-scoped storage, the HTTP
    session (and its cookies), navigation, view events and the wallet handles.

    Created at page entry and dropped on navigation.
    """

    def __init__(self, local=None, session=None, http=None, navigator=None, events=None, provider=None):
        self.local = local if local is not None else ClientStorage(STORAGE_FILE)
        self.session = session if session is not None else ClientStorage()
        self.http = http if http is not None else requests.Session()
        self.navigator = navigator or Navigator()
        self.events = events or EventBus()
        self.provider = provider
        self.signer = None
        self.contract = None

    def release_wallet(self):
        if self.provider is not None or self.signer is not None or self.contract is not None:
            logger.info("Blockchain connection cleared")
        self.provider = None
        self.signer = None
        self.contract = None

    def clear_cookies(self):
        self.http.cookies.clear()
