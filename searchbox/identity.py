"""
Caller identity.

Two notions of "who is this":
  - the dashboard verifies a Bearer ID token against an accounts-lookup
    endpoint and reads usage under the account email it returns (the uid
    when the account has no email);
  - chat and web search trust the `userEmail` cookie and only use it to
    attribute usage. No cookie means anonymous, and anonymous usage is
    never tracked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import unquote

import httpx

logger = logging.getLogger(__name__)

COOKIE_NAME = "userEmail"
COOKIE_MAX_AGE = 60 * 60 * 24 * 365  # 1 year
DEFAULT_ANONYMOUS_EMAIL = "anonymous@searchbox.local"


class IdentityError(Exception):
    """Missing or invalid identity token."""


@dataclass(frozen=True)
class IdentityClaims:
    uid: str
    id_token: str
    email: str = ""

    @property
    def usage_key(self) -> str:
        """Ledger key for this caller: the email the userEmail cookie carries, else the uid."""
        return self.email or self.uid


def _bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise IdentityError("No ID token was passed")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise IdentityError("No ID token was passed")
    return token


async def verify_id_token(
    authorization: str | None,
    lookup_url: str,
    api_key: str = "",
    timeout: float = 10.0,
) -> IdentityClaims:
    """
    Verify `Authorization: Bearer <token>` and return the caller's uid.

    Raises:
        IdentityError: header missing/malformed, lookup rejected the token,
                       or the lookup response carries no user id.
    """
    token = _bearer_token(authorization)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                lookup_url,
                params={"key": api_key} if api_key else None,
                json={"idToken": token},
                headers={"Content-Type": "application/json"},
            )
    except httpx.HTTPError as e:
        logger.error("Token verification request failed: %s", e)
        raise IdentityError("Invalid ID token") from e

    if resp.status_code >= 400:
        logger.error("Token verification failed: HTTP %d", resp.status_code)
        raise IdentityError("Invalid ID token")

    try:
        users = resp.json().get("users") or []
    except ValueError as e:
        raise IdentityError("Invalid ID token") from e
    if not users:
        raise IdentityError("No user found with provided token")

    uid = users[0].get("localId")
    if not uid:
        raise IdentityError("Invalid user ID in token")

    logger.info("Verified token for uid %s", uid)
    return IdentityClaims(uid=uid, id_token=token, email=(users[0].get("email") or "").strip())


def user_from_cookies(cookies, anonymous: str = DEFAULT_ANONYMOUS_EMAIL) -> str:
    """User id carried by the userEmail cookie, URL-decoded; anonymous when absent."""
    raw = cookies.get(COOKIE_NAME) if cookies else None
    if not raw:
        return anonymous
    return unquote(raw).strip() or anonymous


def is_identified(user_id: str | None, anonymous: str = DEFAULT_ANONYMOUS_EMAIL) -> bool:
    return bool(user_id) and user_id != anonymous
