import logging
from enum import Enum

from config import LOGIN_PAGE
from context import ClientContext, login_url
from storage import REDIRECT_COUNTER, SessionState

logger = logging.getLogger("evote.guard")


class GuardOutcome(str, Enum):
    PROCEED = "proceed"
    REDIRECT = "redirect"
    RECOVERY = "recovery"


class SessionGuard:
    """
    Page-load gate. Redirects an unauthenticated visitor to login once per
    tab; a second failed load renders the recovery panel instead, so stale
    or corrupt storage cannot bounce the user between pages forever.
    """

    def __init__(self, context: ClientContext, max_redirects: int = 1):
        self.context = context
        self.max_redirects = max_redirects

    def _redirect_count(self) -> int:
        try:
            return int(self.context.session.get_item(REDIRECT_COUNTER) or "0")
        except ValueError:
            return 0

    def check(self) -> GuardOutcome:
        state = SessionState.load(self.context.local)
        if state.authenticated:
            self.context.session.remove_item(REDIRECT_COUNTER)
            return GuardOutcome.PROCEED

        count = self._redirect_count()
        self.context.session.set_item(REDIRECT_COUNTER, count + 1)
        if count < self.max_redirects:
            logger.info("Not authenticated, redirecting to login")
            self.context.navigator.navigate(login_url("not_authenticated"))
            return GuardOutcome.REDIRECT

        logger.info("Breaking redirect loop - showing recovery panel")
        self.context.events.emit(
            "recovery",
            title="Authentication Error",
            message="Unable to authenticate. Please try one of these options:",
            actions=[
                {"id": "clear_storage", "label": "Clear Browser Storage & Reload"},
                {"id": "login", "label": "Go to Login Page", "href": LOGIN_PAGE},
            ],
        )
        return GuardOutcome.RECOVERY

    def clear_and_reload(self):
        self.context.local.clear()
        self.context.session.clear()
        self.context.clear_cookies()
        self.context.events.feedback("Storage cleared. Page will now reload.")
        self.context.navigator.reload()
