import json
import logging
from typing import Any, Dict, Optional

import httpx

from .auth import AuthorizationFlow
from .errors import (
    AccessDenied,
    ApiError,
    NetworkError,
    NotAuthenticated,
    RecordOSError,
    SessionExpired,
)

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"

# First call plus at most one refresh-and-retry.
MAX_ATTEMPTS = 2


class ApiGateway:
    """Single entry point for authenticated Spotify Web API calls.

    Retry behavior:
    - 401: one refresh, one retry; a second 401 means the session is gone
    - 403: one refresh, one retry; a second 403 is a real permission problem
    - everything else is returned or raised as-is (no loops)
    """

    def __init__(
        self,
        auth: AuthorizationFlow,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = SPOTIFY_API_BASE_URL,
        timeout: Optional[float] = None,
    ):
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else float(auth.config.get("http_timeout", 30.0))
        self._http = http_client
        self._owns_http = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Any]:
        """Make an authenticated request and return the parsed JSON body.

        Returns None for 204 No Content (and any other empty 2xx body).
        """

        token = await self.auth.get_valid_access_token()
        if token is None:
            raise NotAuthenticated()

        url = self._url(endpoint)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        attempt = 1
        response = await self._send(method, url, token, query, body, headers)
        while response.status_code in (401, 403) and attempt < MAX_ATTEMPTS:
            logger.info(
                "Spotify API returned %s for %s %s; refreshing token and retrying once",
                response.status_code,
                method,
                url,
            )
            token = await self._refresh_for_retry()
            attempt += 1
            response = await self._send(method, url, token, query, body, headers)

        try:
            return self._handle_response(response, method, url)
        except SessionExpired:
            self.auth.expire_session()
            raise

    async def _refresh_for_retry(self) -> str:
        try:
            credential = await self.auth.refresh()
        except (NetworkError, SessionExpired):
            raise
        except RecordOSError as e:
            self.auth.expire_session()
            raise SessionExpired() from e
        return credential.access_token

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Dict[str, str],
        body: Any,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        merged = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            **(headers or {}),
        }
        kwargs: Dict[str, Any] = {"headers": merged, "timeout": self.timeout}
        if params:
            kwargs["params"] = params
        if body is not None:
            kwargs["content"] = json.dumps(body)

        try:
            return await self._client().request(method.upper(), url, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"Spotify API request failed: {e}") from e

    def _handle_response(self, response: httpx.Response, method: str, url: str) -> Optional[Any]:
        status = response.status_code

        if status == 204:
            return None

        if 200 <= status < 300:
            if not response.content:
                return None
            try:
                return response.json()
            except (json.JSONDecodeError, ValueError) as e:
                raise ApiError(status, f"Spotify API response was not JSON: {response.text[:200]}") from e

        message = _error_message(response)
        logger.warning("Spotify API error %s for %s %s: %s", status, method, url, message)

        if status == 401:
            raise SessionExpired()
        if status == 403:
            raise AccessDenied(message)

        retry_after = None
        if status == 429:
            try:
                retry_after = float(response.headers.get("Retry-After", ""))
            except ValueError:
                retry_after = None

        raise ApiError(status, message, retry_after=retry_after)


def _error_message(response: httpx.Response) -> str:
    """Best-effort provider message; tolerates non-JSON bodies."""

    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return f"API error: {response.status_code}"

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("error_description"):
            return str(payload["error_description"])
        if isinstance(error, str) and error:
            return error
    return f"API error: {response.status_code}"
