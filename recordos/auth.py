import asyncio
import enum
import json
import logging
import urllib.parse
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import httpx

from .credential_store import Credential, CredentialStore, now_millis
from .errors import (
    AuthorizationDenied,
    MissingVerifier,
    NetworkError,
    NoRefreshToken,
    RecordOSError,
    SessionExpired,
    TokenExchangeFailed,
)
from .pkce import generate_challenge

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:5173/callback"
DEFAULT_SCOPES = [
    "user-read-private",
    "user-read-email",
    "user-library-read",
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "streaming",
    "playlist-read-private",
    "playlist-read-collaborative",
]

# Tokens expiring within this many seconds are refreshed before use.
DEFAULT_REFRESH_WINDOW = 300


class AuthState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    if qs.get("code"):
        out["code"] = str(qs["code"][0])
    if qs.get("state"):
        out["state"] = str(qs["state"][0])
    if qs.get("error"):
        out["error"] = str(qs["error"][0])
    return out


class AuthorizationFlow:
    """Spotify OAuth (Authorization Code + PKCE) without a client secret.

    idle -> awaiting_redirect -> exchanging -> authorized, with refreshing
    entered from authorized. Tokens live in the injected CredentialStore.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        store: CredentialStore,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], int]] = None,
        rng: Optional[Callable[[int], bytes]] = None,
    ):
        self.config = config or {}
        self.store = store
        self._http = http_client
        self._owns_http = http_client is None
        self._clock = clock or now_millis
        self._rng = rng
        self._refreshing: Optional["asyncio.Future[Credential]"] = None

        if store.read() is not None:
            self.state = AuthState.AUTHORIZED
        elif store.read_verifier():
            self.state = AuthState.AWAITING_REDIRECT
        else:
            self.state = AuthState.IDLE

    # -----------------
    # Config helpers
    # -----------------

    @property
    def client_id(self) -> str:
        return str(self.config.get("spotify_client_id", "")).strip()

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("spotify_redirect_uri", DEFAULT_REDIRECT_URI)).strip()

    @property
    def refresh_window_ms(self) -> int:
        return int(float(self.config.get("token_refresh_window", DEFAULT_REFRESH_WINDOW)) * 1000)

    @property
    def is_logged_in(self) -> bool:
        return self.store.read() is not None

    def _require_client(self) -> Tuple[str, str]:
        if not self.client_id:
            raise ValueError("Missing config.spotify_client_id")
        if not self.redirect_uri:
            raise ValueError("Missing config.spotify_redirect_uri")
        return self.client_id, self.redirect_uri

    # -----------------
    # Login
    # -----------------

    def get_authorize_url(
        self,
        *,
        code_challenge: str,
        scopes: Optional[Iterable[str]] = None,
        show_dialog: bool = False,
    ) -> str:
        client_id, redirect_uri = self._require_client()

        scope_list = list(scopes if scopes is not None else self.config.get("spotify_scopes", DEFAULT_SCOPES))
        scope_str = " ".join([str(s).strip() for s in scope_list if str(s).strip()])

        params: Dict[str, str] = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": str(code_challenge),
            "show_dialog": "true" if show_dialog else "false",
        }
        if scope_str:
            params["scope"] = scope_str

        return f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize?{urllib.parse.urlencode(params)}"

    def begin_login(self, *, show_dialog: Optional[bool] = None) -> str:
        """Start a login attempt and return the URL the user must visit.

        A fresh verifier replaces any verifier left by an abandoned attempt.
        """

        self._require_client()
        if show_dialog is None:
            show_dialog = bool(self.config.get("spotify_show_dialog", False))

        pkce = generate_challenge(rng=self._rng)
        self.store.save_verifier(pkce.code_verifier)
        url = self.get_authorize_url(code_challenge=pkce.code_challenge, show_dialog=show_dialog)

        self.state = AuthState.AWAITING_REDIRECT
        logger.info("Spotify login started; waiting for redirect to %s", self.redirect_uri)
        return url

    async def complete_login(self, code: str) -> Credential:
        """Exchange the authorization code from the redirect for a token pair."""

        verifier = self.store.read_verifier()
        if not verifier:
            raise MissingVerifier()

        client_id, redirect_uri = self._require_client()
        self.state = AuthState.EXCHANGING
        try:
            status, payload = await self._post_form(
                {
                    "client_id": client_id,
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": redirect_uri,
                    "code_verifier": verifier,
                }
            )
        except NetworkError:
            self.state = AuthState.AWAITING_REDIRECT
            raise

        if not 200 <= status < 300:
            self.state = AuthState.AWAITING_REDIRECT
            raise TokenExchangeFailed(_error_description(payload), status=status)

        credential = Credential.from_token_response(payload, now_ms=self._clock())
        if not credential.access_token:
            self.state = AuthState.AWAITING_REDIRECT
            raise TokenExchangeFailed("Token response did not include an access_token", status=status)

        self.store.replace(credential)
        self.store.clear_verifier()
        self.state = AuthState.AUTHORIZED
        logger.info("Spotify token exchange successful")
        return credential

    async def complete_login_from_redirect(self, redirect_url: str) -> Credential:
        """Handle GET /callback?code=... (or ?error=...)."""

        parsed = extract_code_from_redirect_url(redirect_url)
        if parsed.get("error"):
            raise AuthorizationDenied(f"Spotify returned an error: {parsed['error']}")
        if not parsed.get("code"):
            raise ValueError("Redirect URL does not contain an authorization code")
        return await self.complete_login(parsed["code"])

    def logout(self) -> None:
        self.store.clear()
        self.store.clear_verifier()
        self.state = AuthState.IDLE
        logger.info("Spotify credentials cleared")

    def expire_session(self) -> None:
        """Drop a credential Spotify no longer accepts; the login verifier is left alone."""

        self.store.clear()
        self.state = AuthState.IDLE
        logger.warning("Spotify session expired; stored credentials cleared")

    # -----------------
    # Refresh
    # -----------------

    async def refresh(self) -> Credential:
        """Refresh the access token.

        Concurrent callers await the same in-flight token request.
        """

        if self._refreshing is None:
            self._refreshing = asyncio.ensure_future(self._refresh_once())
            self._refreshing.add_done_callback(self._refresh_done)
        return await asyncio.shield(self._refreshing)

    def _refresh_done(self, future: "asyncio.Future[Credential]") -> None:
        if self._refreshing is future:
            self._refreshing = None

    async def _refresh_once(self) -> Credential:
        current = self.store.read()
        refresh_token = current.refresh_token if current else None
        if not refresh_token:
            raise NoRefreshToken()

        previous_state = self.state
        self.state = AuthState.REFRESHING
        try:
            status, payload = await self._post_form(
                {
                    "client_id": self.client_id,
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                }
            )
        except NetworkError:
            self.state = previous_state
            raise

        credential = Credential.from_token_response(
            payload,
            now_ms=self._clock(),
            previous_refresh_token=refresh_token,
        )
        if not 200 <= status < 300 or not credential.access_token:
            # The refresh token is no good any more; drop everything.
            self.store.clear()
            self.state = AuthState.IDLE
            logger.warning("Spotify token refresh rejected (HTTP %s): %s", status, _error_description(payload))
            raise SessionExpired()

        self.store.replace(credential)
        self.state = AuthState.AUTHORIZED
        logger.debug("Spotify access token refreshed")
        return credential

    async def get_valid_access_token(self) -> Optional[str]:
        """Return a usable access token, refreshing it if it is about to expire.

        Returns None when there is no credential or the refresh failed.
        """

        credential = self.store.read()
        if credential is None:
            return None

        if credential.expires_within(self.refresh_window_ms, now_ms=self._clock()):
            try:
                credential = await self.refresh()
            except RecordOSError as e:
                logger.error("Failed to refresh token: %s", e)
                return None

        return credential.access_token

    # -----------------
    # HTTP
    # -----------------

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=float(self.config.get("http_timeout", 30.0)))
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _post_form(self, form: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}

        try:
            resp = await self._client().post(
                SPOTIFY_TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=float(self.config.get("http_timeout", 30.0)),
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Spotify token request failed: {e}") from e

        try:
            payload = resp.json()
        except (json.JSONDecodeError, ValueError):
            payload = {}

        if not isinstance(payload, dict):
            payload = {}

        return resp.status_code, payload


def _error_description(payload: Dict[str, Any]) -> Optional[str]:
    description = payload.get("error_description")
    if description:
        return str(description)
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message")
    return str(error) if error else None
