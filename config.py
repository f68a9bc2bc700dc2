import os
import json
import logging

# --- Config & Constants ---
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000").rstrip("/")
# Same-origin relay served by app.py; used when direct calls to the API fail
PROXY_BASE_URL = os.environ.get("PROXY_BASE_URL", "http://localhost:8080/proxy").rstrip("/")
# Where app.py relays /proxy/* and /api/db-status
DB_API_URL = os.environ.get("DB_API_URL", API_BASE_URL).rstrip("/")

LOGIN_PAGE = os.environ.get("LOGIN_PAGE", "login.html")
INDEX_PAGE = os.environ.get("INDEX_PAGE", "index.html")
STORAGE_FILE = os.environ.get("STORAGE_FILE", "client_storage.json")

REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "10"))
PROBE_TIMEOUT = float(os.environ.get("PROBE_TIMEOUT", "5"))
LOGOUT_REDIRECT_DELAY = float(os.environ.get("LOGOUT_REDIRECT_DELAY", "0.1"))

RPC_URL = os.environ.get("RPC_URL", "http://127.0.0.1:7545")
CONTRACT_ADDRESS = os.environ.get("CONTRACT_ADDRESS", "0xb5121e15fb32F8c1003eb7fA9249b63c5CDa536d")
CONTRACT_ARTIFACT = os.environ.get("CONTRACT_ARTIFACT", "build/contracts/Voting.json")
CONTRACT_INIT_MAX_ATTEMPTS = int(os.environ.get("CONTRACT_INIT_MAX_ATTEMPTS", "3"))
CONTRACT_INIT_RETRY_DELAY = float(os.environ.get("CONTRACT_INIT_RETRY_DELAY", "1"))
# {"RevertReasonSubstring": "error_kind", ...} merged over the defaults in contract_guard
CONTRACT_ERROR_MAP = json.loads(os.environ.get("CONTRACT_ERROR_MAP_JSON", "{}"))

HTML_DIR = os.environ.get("HTML_DIR", os.path.join("src", "html"))
STATIC_DIR = os.environ.get("STATIC_DIR", "src")
ARTIFACT_DIR = os.environ.get("ARTIFACT_DIR", os.path.join("build", "contracts"))
CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "http://localhost:8080")
PORT = int(os.environ.get("PORT", "8080"))

INSTALL_WALLET_URL = "https://metamask.io/download.html"

logger = logging.getLogger("evote")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)
