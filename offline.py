import time
import string
import secrets
import logging

from api_client import ApiResponse
from storage import OFFLINE_MODE
from wallet_provider import verify_wallet_signature

logger = logging.getLogger("evote.offline")

VERIFY_NATIONAL_ID = "/api/verify-national-id"
LINK_WALLET = "/api/link-wallet"
CHECK_WALLET_LINKAGE = "/api/check-wallet-linkage"

OFFLINE_BANNER = "Running in offline mode. Some features may be simulated."

MOCK_CANDIDATES = [
    {"id": 1, "name": "William Ruto", "party": "UDA", "voteCount": 345},
    {"id": 2, "name": "Raila Odinga", "party": "ODM", "voteCount": 287},
    {"id": 3, "name": "Martha Karua", "party": "NARC-Kenya", "voteCount": 156},
    {"id": 4, "name": "Rigathi Gachagua", "party": "UDA", "voteCount": 98},
]

CONSTITUENCIES = [
    {"id": "westlands", "name": "Westlands"},
    {"id": "dagoretti_north", "name": "Dagoretti North"},
    {"id": "dagoretti_south", "name": "Dagoretti South"},
    {"id": "langata", "name": "Langata"},
    {"id": "kibra", "name": "Kibra"},
    {"id": "roysambu", "name": "Roysambu"},
    {"id": "kasarani", "name": "Kasarani"},
    {"id": "ruaraka", "name": "Ruaraka"},
    {"id": "embakasi_south", "name": "Embakasi South"},
    {"id": "embakasi_north", "name": "Embakasi North"},
    {"id": "embakasi_central", "name": "Embakasi Central"},
    {"id": "embakasi_east", "name": "Embakasi East"},
    {"id": "embakasi_west", "name": "Embakasi West"},
    {"id": "makadara", "name": "Makadara"},
    {"id": "kamukunji", "name": "Kamukunji"},
    {"id": "starehe", "name": "Starehe"},
    {"id": "mathare", "name": "Mathare"},
]


def is_offline(storage) -> bool:
    return storage.get_item(OFFLINE_MODE) == "true"


def mock_voting_dates(now: float | None = None, before: int = 2 * 24 * 3600, after: int = 5 * 24 * 3600) -> dict:
    now = int(now if now is not None else time.time())
    return {"start_date": now - before, "end_date": now + after}


def _random_token(length: int = 11) -> str:
    alphabet = string.digits + string.ascii_lowercase
    return "".join(secrets.choice(alphabet) for _ in range(length))


class OfflineLinkingApi:
    """Answers the three linking endpoints locally with the same response shapes as the server."""

    def __init__(self):
        self.linked = {}

    def respond(self, path: str, payload: dict | None = None) -> ApiResponse | None:
        payload = payload or {}
        if path.endswith(VERIFY_NATIONAL_ID):
            logger.info("Mock: verifyNationalId API call")
            return ApiResponse(200, {
                "success": True,
                "message": "National ID verified successfully",
                "challenge": f"IEBC-Verify-{_random_token()}-{int(time.time() * 1000)}",
            })
        if path.endswith(LINK_WALLET):
            logger.info("Mock: linkWallet API call")
            address = payload.get("wallet_address") or ""
            if not verify_wallet_signature(address, payload.get("challenge") or "", payload.get("signature") or ""):
                return ApiResponse(400, {"success": False, "message": "Signature does not match wallet address"})
            self.linked[address.lower()] = payload.get("national_id")
            return ApiResponse(200, {
                "success": True,
                "message": "Wallet successfully linked to National ID",
                "verification_hash": f"mock-hash-{_random_token()}",
            })
        if path.endswith(CHECK_WALLET_LINKAGE):
            logger.info("Mock: checkWalletLinkage API call")
            address = (payload.get("wallet_address") or "").lower()
            return ApiResponse(200, {"success": True, "isLinked": bool(address) and address in self.linked})
        return None
