"""
FastAPI application: the searchbox HTTP surface.

  POST /chat         generate a reply for a conversation
  POST /web-search   retrieve web snippets for a query
  GET  /dashboard    per-user usage snapshot (Bearer ID token)
  POST /set-cookie   set or clear the userEmail identity cookie
  GET  /health       liveness

Chat and web search attribute usage to the userEmail cookie; requests
without it are anonymous and untracked.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from searchbox import __version__
from searchbox.backends import CompletionError, CompletionGateway
from searchbox.catalog import DEFAULT_MODEL
from searchbox.config import get_config
from searchbox.identity import (
    COOKIE_MAX_AGE,
    COOKIE_NAME,
    DEFAULT_ANONYMOUS_EMAIL,
    IdentityError,
    user_from_cookies,
    verify_id_token,
)
from searchbox.search import SearchGateway
from searchbox.usage import UsageLedger, ledger_from_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Globals: initialized at startup
# ---------------------------------------------------------------------------
usage_ledger: UsageLedger | None = None
search_gateway: SearchGateway | None = None
completion_gateway: CompletionGateway | None = None


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, log_cfg.get("level", "INFO").upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _anonymous(cfg: dict) -> str:
    return cfg.get("identity", {}).get("anonymous_email") or DEFAULT_ANONYMOUS_EMAIL


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global usage_ledger, search_gateway, completion_gateway

    cfg = get_config()
    _setup_logging(cfg)

    usage_ledger = ledger_from_config(cfg)
    search_gateway = SearchGateway.from_config(cfg, ledger=usage_ledger)
    completion_gateway = CompletionGateway.from_config(cfg, ledger=usage_ledger)

    logger.info(
        "searchbox started, listening on %s:%s",
        cfg.get("server", {}).get("host", "0.0.0.0"),
        cfg.get("server", {}).get("port", 8000),
    )
    logger.info("Usage ledger: %s", usage_ledger.name)
    logger.info("Search: %s", search_gateway.url)

    yield

    await search_gateway.drain()
    await completion_gateway.drain()
    logger.info("searchbox shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="searchbox",
    description="Chat and web search with per-user usage accounting.",
    version=__version__,
    lifespan=lifespan,
)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _set_identity_cookie(response: JSONResponse, value: str, max_age: int = COOKIE_MAX_AGE):
    cfg = get_config()
    response.set_cookie(
        key=COOKIE_NAME,
        value=value,
        max_age=max_age,
        path="/",
        samesite="lax",
        httponly=False,
        secure=bool(cfg.get("server", {}).get("secure_cookies", False)),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.post("/chat")
async def chat(request: Request):
    """Generate the assistant reply for `messages` with `model`."""
    cfg = get_config()
    anonymous = _anonymous(cfg)
    user_id = user_from_cookies(request.cookies, anonymous)

    body = await _json_body(request)
    messages = body.get("messages")
    model = body.get("model") or DEFAULT_MODEL

    if not isinstance(messages, list) or not messages or not all(isinstance(m, dict) for m in messages):
        return JSONResponse({"error": "Invalid messages format"}, status_code=400)

    try:
        completion = await completion_gateway.complete(messages, model, user_id=user_id)
    except CompletionError as e:
        status = 400 if e.status_code == 400 else 500
        return JSONResponse({"error": e.message or "Internal server error"}, status_code=status)

    response = JSONResponse(completion.to_dict())
    if user_id == anonymous and COOKIE_NAME not in request.cookies:
        _set_identity_cookie(response, quote(anonymous, safe=""))
    return response


@app.post("/web-search")
async def web_search(request: Request):
    """Retrieve snippets for `query`."""
    cfg = get_config()
    user_id = user_from_cookies(request.cookies, _anonymous(cfg))

    body = await _json_body(request)
    query = body.get("query") or ""
    if not isinstance(query, str) or not query.strip():
        return JSONResponse({"error": "Query is required"}, status_code=400)

    outcome = await search_gateway.search(query, user_id=user_id)
    return JSONResponse(outcome.to_dict(), status_code=200 if outcome.ok else 500)


@app.get("/dashboard")
async def dashboard(request: Request):
    """Usage snapshot for the user identified by the Bearer ID token."""
    cfg = get_config()
    id_cfg = cfg.get("identity", {})
    try:
        claims = await verify_id_token(
            request.headers.get("authorization"),
            lookup_url=id_cfg.get("lookup_url", ""),
            api_key=id_cfg.get("api_key", ""),
        )
    except IdentityError as e:
        logger.warning("Dashboard token verification failed: %s", e)
        return JSONResponse({"error": "Unauthorized. Invalid ID token."}, status_code=401)

    force_refresh = "_nocache" in request.query_params
    snapshot = await usage_ledger.get_dashboard_snapshot(claims.usage_key, force_refresh=force_refresh)
    response = JSONResponse(snapshot)
    response.headers["X-Identity-Token"] = claims.id_token
    return response


@app.post("/set-cookie")
async def set_cookie(request: Request):
    """Set the userEmail cookie, or clear it when no email is given."""
    body = await _json_body(request)
    email = body.get("email")

    if not email:
        logger.info("No email provided, clearing identity cookie")
        response = JSONResponse({"success": True, "message": "Cookie cleared"})
        _set_identity_cookie(response, "", max_age=0)
        return response

    response = JSONResponse({"success": True, "message": "Cookie set"})
    _set_identity_cookie(response, quote(str(email), safe=""))
    return response


@app.get("/health")
async def health():
    """Health check."""
    return JSONResponse({
        "status": "ok",
        "version": __version__,
        "usage_backend": usage_ledger.name if usage_ledger else None,
    })
