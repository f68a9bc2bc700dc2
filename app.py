#!/usr/bin/env python3
"""
Web server for the voting front end.

Serves the HTML pages and contract artifacts, a couple of development data
endpoints, and the same-origin /proxy/* relay the page scripts fall back to
when the database API cannot be reached directly.
"""
import os
import time
from datetime import datetime, timezone

import requests
from flask import Flask, Response, abort, request, send_from_directory

from config import (
    ARTIFACT_DIR, CORS_ORIGIN, DB_API_URL, HTML_DIR, PORT, REQUEST_TIMEOUT, STATIC_DIR, logger,
)
from offline import CONSTITUENCIES

app = Flask(__name__, static_folder=None)

CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-eval' 'unsafe-inline' https://cdn.tailwindcss.com https://unpkg.com https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.tailwindcss.com https://cdnjs.cloudflare.com https://fonts.googleapis.com; "
    "connect-src 'self' http://localhost:8000 http://127.0.0.1:8000 ws://localhost:8000 wss://localhost:8000; "
    "font-src 'self' data: https://fonts.gstatic.com; img-src 'self' data: https://*; frame-src 'self'"
)
CORS_PATH_PREFIXES = ("/api/", "/proxy/")
# hop-by-hop and length headers are recomputed by werkzeug
_DROP_HEADERS = {"content-encoding", "content-length", "transfer-encoding", "connection"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.before_request
def log_request():
    logger.info("%s %s", request.method, request.full_path.rstrip("?"))


@app.after_request
def add_security_headers(resp: Response):
    resp.headers["Content-Security-Policy"] = CSP
    if request.path.startswith(CORS_PATH_PREFIXES):
        resp.headers["Access-Control-Allow-Origin"] = CORS_ORIGIN
        resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-Requested-With"
        resp.headers["Access-Control-Expose-Headers"] = "Content-Type, Authorization"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
        resp.headers["Access-Control-Max-Age"] = "86400"
    return resp


# --- Development data endpoints ---
@app.route("/api/data/constituencies")
def constituencies():
    return list(CONSTITUENCIES)


@app.route("/api/health")
def health():
    return {
        "status": "ok",
        "timestamp": _now_iso(),
        "message": f"Web server running. Database API should be running at {DB_API_URL}",
    }


@app.route("/api/db-status")
def db_status():
    web = {"status": "ok", "timestamp": _now_iso()}
    try:
        r = requests.get(f"{DB_API_URL}/health", timeout=REQUEST_TIMEOUT)
        data = r.json()
    except Exception:
        logger.exception("Database API health check failed")
        data = {"status": "error", "message": "Cannot connect to Database API"}
    return {"web_server": web, "database_api": data}


# --- Proxy ---
@app.route("/proxy/api-test")
def proxy_api_test():
    try:
        r = requests.get(f"{DB_API_URL}/api-test", timeout=REQUEST_TIMEOUT)
        return r.json()
    except Exception:
        logger.warning("proxy api-test: database API unreachable")
        return {"status": "error", "message": "Cannot connect to Database API", "timestamp": _now_iso()}


@app.route("/proxy/voting/dates")
def proxy_voting_dates():
    # fixed development window: one hour either side of now
    now = int(time.time())
    return {"start_date": now - 3600, "end_date": now + 3600}


@app.route("/proxy/<path:sub>", methods=["GET", "POST", "PUT", "DELETE"])
def proxy_relay(sub):
    url = f"{DB_API_URL}/{sub}"
    headers = {k: v for k, v in request.headers.items() if k.lower() in ("content-type", "authorization")}
    try:
        upstream = requests.request(
            request.method, url, params=request.args, data=request.get_data(),
            headers=headers, timeout=REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning("proxy %s %s failed: %s", request.method, url, e)
        return {"success": False, "message": "Cannot connect to Database API"}, 502
    out = Response(upstream.content, status=upstream.status_code)
    for k, v in upstream.headers.items():
        if k.lower() not in _DROP_HEADERS:
            out.headers[k] = v
    return out


# --- Static pages and assets ---
@app.route("/build/contracts/<path:filename>")
def contract_artifact(filename):
    return send_from_directory(os.path.abspath(ARTIFACT_DIR), filename)


@app.route("/<any(js, css, assets, dist):folder>/<path:filename>")
def static_asset(folder, filename):
    return send_from_directory(os.path.abspath(os.path.join(STATIC_DIR, folder)), filename)


@app.route("/<page>.html")
def html_page(page):
    path = os.path.abspath(HTML_DIR)
    if not os.path.exists(os.path.join(path, f"{page}.html")):
        abort(404)
    return send_from_directory(path, f"{page}.html")


@app.route("/")
def index():
    return html_page("index")


# --- Server run ---
if __name__ == "__main__":
    logger.info("Access the application at http://localhost:%s", PORT)
    logger.info("Login page available at http://localhost:%s/login.html", PORT)
    logger.info("IMPORTANT: Make sure the Database API is running at %s", DB_API_URL)
    app.run(debug=True, use_reloader=False, host="0.0.0.0", port=PORT)
