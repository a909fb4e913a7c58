"""Bluesky search client

Holds an authenticated AT Protocol session and runs keyword searches limited to
a recent time window.

- login() trades the account identifier/app password for an access/refresh
  token pair. A refusal raises AuthenticationError, and because the constructor
  logs in, a client that cannot authenticate is never handed out.
- search() re-authenticates once when the service answers with ExpiredToken and
  replays the same query; a second expiry is not retried. Every other failure is
  logged and reported as None.
- Re-authentication is serialised: pool workers sharing one client wait for the
  first re-login and reuse its session instead of issuing their own.
"""

import json
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, cast

import requests

from .types import PostRecord, Session

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://bsky.social"
CREATE_SESSION_PATH = "/xrpc/com.atproto.server.createSession"
REFRESH_SESSION_PATH = "/xrpc/com.atproto.server.refreshSession"
SEARCH_POSTS_PATH = "/xrpc/app.bsky.feed.searchPosts"

EXPIRED_TOKEN_MARKER = "ExpiredToken"


class AuthenticationError(Exception):
    """Raised when the session endpoint does not accept the configured credentials."""


class TransientSearchFailure(Exception):
    """A search request failed for a reason other than token expiry."""


class TokenExpired(Exception):
    """The search endpoint rejected the access token as expired."""


def since_timestamp(seconds: int, now: Optional[datetime] = None) -> str:
    """Return `now - seconds` as an ISO-8601 UTC timestamp (second precision)."""
    now = now or datetime.now(timezone.utc)
    then = now.astimezone(timezone.utc) - timedelta(seconds=int(seconds))
    return then.strftime("%Y-%m-%dT%H:%M:%SZ")


def _is_success(resp: Any) -> bool:
    status = getattr(resp, "status_code", None)
    return status is not None and 200 <= status < 300


def _record_key(post: Any) -> str:
    # structural identity: two posts are duplicates only if every field matches
    return json.dumps(post, sort_keys=True, default=str)


class BlueskyClient:
    """Session-managed client for the Bluesky searchPosts endpoint.

    Credentials default to BLUESKY_USERNAME / BLUESKY_PASSWORD and the service
    root to BLUESKY_BASE_URL. With `refresh_on_expiry=True` an expired token is
    renewed through refreshSession (falling back to a fresh login); by default
    a fresh login is used.
    """

    def __init__(
        self,
        identifier: Optional[str] = None,
        password: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        refresh_on_expiry: bool = False,
    ) -> None:
        self.identifier = identifier or os.environ.get("BLUESKY_USERNAME")
        self.password = password or os.environ.get("BLUESKY_PASSWORD")
        self.base_url = (
            base_url or os.environ.get("BLUESKY_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.timeout = timeout
        self.refresh_on_expiry = refresh_on_expiry
        self._session: Optional[Session] = None
        self._auth_lock = threading.Lock()
        self.login()

    @property
    def authenticated(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    # --- session lifecycle ---
    def login(self) -> Session:
        """Create a new session and make it the client's current one."""
        if not self.identifier or not self.password:
            self._session = None
            raise AuthenticationError("BLUESKY_USERNAME / BLUESKY_PASSWORD not configured")

        try:
            resp = requests.post(
                self.base_url + CREATE_SESSION_PATH,
                json={"identifier": self.identifier, "password": self.password},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self._session = None
            raise AuthenticationError(f"Failed to log in: {exc}") from exc

        if not _is_success(resp):
            self._session = None
            raise AuthenticationError(f"Failed to log in: {resp.text}")

        self._session = self._session_from(resp)
        log.info("Bluesky session created for %s", self.identifier)
        return self._session

    def refresh_session(self) -> Session:
        """Renew the token pair with the refresh token, logging in again if that fails."""
        current = self._session
        if current is None:
            return self.login()

        try:
            resp = requests.post(
                self.base_url + REFRESH_SESSION_PATH,
                headers={"Authorization": f"Bearer {current['refresh_token']}"},
                timeout=self.timeout,
            )
            if _is_success(resp):
                self._session = self._session_from(resp)
                log.info("Bluesky session refreshed")
                return self._session
            log.warning("Bluesky session refresh refused: %s", resp.text)
        except (requests.RequestException, AuthenticationError) as exc:
            log.warning("Bluesky session refresh failed: %s", exc)
        return self.login()

    @staticmethod
    def _session_from(resp: Any) -> Session:
        try:
            data = cast(Dict[str, Any], resp.json())
            return {
                "access_token": str(data["accessJwt"]),
                "refresh_token": str(data["refreshJwt"]),
            }
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError(f"Malformed session response: {exc}") from exc

    def _reauthenticate(self, stale: Session) -> Session:
        with self._auth_lock:
            current = self._session
            if current is None:
                raise AuthenticationError("Bluesky session was lost by an earlier re-login")
            if current is not stale:
                # another worker already renewed the session while we waited
                return current
            if self.refresh_on_expiry:
                return self.refresh_session()
            return self.login()

    # --- search ---
    def _search_posts(self, params: Dict[str, Any], session: Session) -> List[PostRecord]:
        try:
            resp = requests.get(
                self.base_url + SEARCH_POSTS_PATH,
                params=params,
                headers={"Authorization": f"Bearer {session['access_token']}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientSearchFailure(str(exc)) from exc

        if not _is_success(resp):
            body = resp.text or ""
            if EXPIRED_TOKEN_MARKER in body:
                raise TokenExpired(body)
            raise TransientSearchFailure(f"HTTP {resp.status_code}: {body}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientSearchFailure("Invalid JSON from searchPosts") from exc

        posts = data.get("posts") if isinstance(data, dict) else None
        if posts is None:
            return []
        if not isinstance(posts, list):
            raise TransientSearchFailure(f"Unexpected posts payload: {type(posts).__name__}")
        return cast(List[PostRecord], posts)

    def search(self, term: str, seconds: int) -> Optional[List[PostRecord]]:
        """Search posts for `term` created within the last `seconds` seconds, newest first.

        Returns the post list (possibly empty) or None when the search failed.
        """
        params = {"q": term, "sort": "latest", "since": since_timestamp(seconds)}

        for attempt in (1, 2):
            session = self._session
            if session is None:
                log.warning("Bluesky search skipped, client is not authenticated: %r", term)
                return None
            try:
                return self._search_posts(params, session)
            except TokenExpired:
                if attempt == 2:
                    log.error("Bluesky token expired again after re-login, giving up on %r", term)
                    return None
                log.warning("Bluesky token expired, re-logging in")
                try:
                    self._reauthenticate(session)
                except AuthenticationError as exc:
                    log.error("Bluesky re-authentication failed: %s", exc)
                    return None
            except TransientSearchFailure as exc:
                log.error("Bluesky search failed for %r: %s", term, exc)
                return None
        return None

    def search_multiple(self, terms: Optional[Iterable[str]], seconds: int) -> List[PostRecord]:
        """Search every term and return the flattened results without structural duplicates."""
        if not terms:
            return []

        seen = set()
        results: List[PostRecord] = []
        for term in terms:
            for post in self.search(term, seconds) or []:
                key = _record_key(post)
                if key in seen:
                    continue
                seen.add(key)
                results.append(post)
        return results


__all__ = [
    "BlueskyClient",
    "AuthenticationError",
    "TransientSearchFailure",
    "TokenExpired",
    "since_timestamp",
]
