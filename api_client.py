import time
import logging
from dataclasses import dataclass

import requests

from config import (
    API_BASE_URL, PROXY_BASE_URL, REQUEST_TIMEOUT, PROBE_TIMEOUT, LOGOUT_REDIRECT_DELAY
)
from context import ClientContext, login_url
from errors import NetworkFailure
from storage import TOKEN, REFRESH_TOKEN, SessionState

logger = logging.getLogger("evote.api")


@dataclass
class ApiResponse:
    status: int
    data: dict

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class ApiStatus:
    mode: str  # direct | proxy | fallback
    error: str | None = None


class ApiClient:
    def __init__(self, context: ClientContext, base_url: str = API_BASE_URL, proxy_base: str = PROXY_BASE_URL,
                 timeout: float = REQUEST_TIMEOUT, logout_delay: float = LOGOUT_REDIRECT_DELAY, sleep=time.sleep):
        self.context = context
        self.base_url = base_url.rstrip("/")
        self.proxy_base = proxy_base.rstrip("/")
        # switched to the proxy (or emptied) by probe()
        self.api_url = self.base_url
        self.timeout = timeout
        self.logout_delay = logout_delay
        self.sleep = sleep
        self.use_mock_data = False

    @property
    def http(self):
        return self.context.http

    def _headers(self, token: str | None = None) -> dict:
        headers = {"Content-Type": "application/json"}
        token = token or self.context.local.get_item(TOKEN)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _join(base: str, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{base}/{path.lstrip('/')}"

    def _fetch_json(self, method: str, url: str, payload=None):
        r = self.http.request(method, url, json=payload, headers=self._headers(), timeout=self.timeout)
        if not r.ok:
            raise ValueError(f"HTTP {r.status_code} from {url}")
        ctype = r.headers.get("Content-Type", "") or ""
        if "application/json" not in ctype:
            raise ValueError(f"Received non-JSON response from {url}")
        return r.json()

    def request(self, path: str, method: str = "GET", payload=None):
        """
        JSON request against the API with one proxy fallback.

        Parameters:
            path (str): API path such as ``/voting/dates``.
            method (str): HTTP method.
            payload: JSON body, if any.

        Returns:
            The decoded JSON body of whichever route answered.

        Raises:
            NetworkFailure: both the direct call and the proxy call failed.
        """
        try:
            return self._fetch_json(method, self._join(self.api_url or self.base_url, path), payload)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Direct API request failed %s %s: %s", method, path, exc)
            if self.api_url == self.proxy_base:
                raise NetworkFailure("All API connections failed", causes=[exc]) from exc
            direct_error = exc
        try:
            return self._fetch_json(method, self._join(self.proxy_base, path), payload)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Proxy API request failed %s %s: %s", method, path, exc)
            raise NetworkFailure("All API connections failed", causes=[direct_error, exc]) from exc

    def call(self, method: str, path: str, payload=None) -> ApiResponse:
        # Single exchange; the body comes back even for 4xx so server messages reach the user
        url = self._join(self.api_url or self.base_url, path)
        try:
            r = self.http.request(method, url, json=payload, headers=self._headers(), timeout=self.timeout)
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.exception("API call failed %s %s", method, path)
            raise NetworkFailure("An error occurred. Please try again later.", causes=[exc]) from exc
        if not isinstance(data, dict):
            data = {"data": data}
        return ApiResponse(r.status_code, data)

    def refresh(self) -> bool:
        """Swap the refresh token for a new access token. False means the user must log in again."""
        local = self.context.local
        refresh_token = local.get_item(REFRESH_TOKEN)
        if not refresh_token:
            logger.error("No refresh token available")
            return False
        logger.info("Attempting to refresh access token")
        url = self._join(self.api_url or self.base_url, "/refresh")
        try:
            r = self.http.request("POST", url, json={"refresh_token": refresh_token},
                                  headers=self._headers(), timeout=self.timeout)
        except requests.RequestException:
            logger.exception("Token refresh request failed")
            return False
        if not r.ok:
            logger.error("Token refresh failed with status %s: %s", r.status_code, r.text)
            return False
        try:
            data = r.json()
        except ValueError:
            logger.exception("Failed to parse refresh token response")
            return False
        if not isinstance(data, dict) or not data.get("token"):
            logger.error("Refresh response did not contain a new token")
            return False
        local.set_item(TOKEN, data["token"])
        if data.get("refresh_token"):
            local.set_item(REFRESH_TOKEN, data["refresh_token"])
        logger.info("Token refreshed successfully")
        return True

    def logout(self, skip_api_call: bool = False):
        logger.info("Initiating logout process")
        ctx = self.context
        try:
            current_token = ctx.local.get_item(TOKEN)
            # local state goes first so no authenticated call can race the clear
            SessionState.clear(ctx.local)
            ctx.session.clear()
            ctx.clear_cookies()
            if current_token and not skip_api_call:
                url = self._join(self.api_url or self.base_url, "/logout")
                try:
                    r = ctx.http.request("POST", url, headers=self._headers(current_token), timeout=self.timeout)
                    if r.ok:
                        logger.info("API logout successful")
                    else:
                        logger.warning("API logout failed with status %s: %s", r.status_code, r.text)
                except requests.RequestException as e:
                    logger.warning("API logout error: %s", e)
            ctx.release_wallet()
            self.sleep(self.logout_delay)
            ctx.navigator.navigate(login_url("signout"))
        except Exception:
            logger.exception("Logout error")
            ctx.navigator.navigate(login_url("error"))

    def probe(self) -> ApiStatus:
        status = ApiStatus(mode="fallback")
        for mode, base in (("direct", self.base_url), ("proxy", self.proxy_base)):
            try:
                r = self.http.request("GET", f"{base}/api-test", headers={"Content-Type": "application/json"},
                                      timeout=PROBE_TIMEOUT)
            except requests.RequestException as e:
                logger.warning("%s API connection failed: %s", mode, e)
                status.error = str(e)
                continue
            if r.ok:
                logger.info("%s API connection successful", mode)
                self.api_url = base
                status.mode = mode
                status.error = None
                break
            status.error = f"HTTP {r.status_code}"
        else:
            logger.warning("All API connections failed, entering fallback mode")
            self.api_url = ""
            self.use_mock_data = True
            self.context.events.feedback("Running in offline mode. Some features may be limited.",
                                         error=True, target="apiStatus")
        logger.info("API connection status mode=%s error=%s", status.mode, status.error)
        return status
