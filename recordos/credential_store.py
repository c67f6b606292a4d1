import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)

DEFAULT_TOKEN_CACHE_PATH = os.path.join("data", "spotify_tokens.json")

SLOT_ACCESS_TOKEN = "spotify_access_token"
SLOT_REFRESH_TOKEN = "spotify_refresh_token"
SLOT_TOKEN_EXPIRY = "spotify_token_expiry"
SLOT_CODE_VERIFIER = "spotify_code_verifier"

CREDENTIAL_SLOTS = (SLOT_ACCESS_TOKEN, SLOT_REFRESH_TOKEN, SLOT_TOKEN_EXPIRY)


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Credential:
    """Access/refresh token pair as kept by CredentialStore.

    expires_at is an epoch timestamp in milliseconds.
    """

    access_token: str
    expires_at: int
    refresh_token: Optional[str] = None

    @staticmethod
    def from_token_response(
        payload: Dict[str, Any],
        *,
        now_ms: Optional[int] = None,
        previous_refresh_token: Optional[str] = None,
    ) -> "Credential":
        """Convert a token endpoint JSON body into a Credential.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (not always on refresh)
        - scope (space-delimited string)
        """

        now = int(now_millis() if now_ms is None else now_ms)
        try:
            expires_in = max(0.0, float(payload.get("expires_in", 0) or 0))
        except (TypeError, ValueError):
            expires_in = 0.0

        return Credential(
            access_token=str(payload.get("access_token") or ""),
            expires_at=now + int(expires_in * 1000),
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
        )

    def expires_within(self, window_ms: int, *, now_ms: Optional[int] = None) -> bool:
        now = int(now_millis() if now_ms is None else now_ms)
        return now > int(self.expires_at) - int(window_ms)

    def to_slots(self) -> Dict[str, Any]:
        slots: Dict[str, Any] = {
            SLOT_ACCESS_TOKEN: self.access_token,
            SLOT_TOKEN_EXPIRY: int(self.expires_at),
        }
        if self.refresh_token:
            slots[SLOT_REFRESH_TOKEN] = self.refresh_token
        return slots


class CredentialStore:
    """Key/value home of the current credential and the pending PKCE verifier.

    Four scalar slots, mirrored to a JSON file when cache_path is set. Every
    mutation builds the complete new slot dict first and swaps it in with a
    single assignment (and a single os.replace on disk), so a reader never sees
    a new access token paired with a stale refresh token.
    """

    def __init__(self, *, cache_path: Optional[str] = None):
        self.cache_path = cache_path
        self._slots: Dict[str, Any] = self._load()

    # -----------------
    # Credential slots
    # -----------------

    def read(self) -> Optional[Credential]:
        access_token = self._slots.get(SLOT_ACCESS_TOKEN)
        if not access_token:
            return None

        try:
            expires_at = int(self._slots.get(SLOT_TOKEN_EXPIRY) or 0)
        except (TypeError, ValueError):
            # An unreadable expiry is treated as already expired.
            expires_at = 0

        return Credential(
            access_token=str(access_token),
            expires_at=expires_at,
            refresh_token=self._slots.get(SLOT_REFRESH_TOKEN) or None,
        )

    def replace(self, credential: Credential) -> None:
        slots = {k: v for k, v in self._slots.items() if k not in CREDENTIAL_SLOTS}
        slots.update(credential.to_slots())
        self._commit(slots)

    def clear(self) -> None:
        """Drop the whole credential; the verifier slot is left alone."""
        slots = {k: v for k, v in self._slots.items() if k not in CREDENTIAL_SLOTS}
        self._commit(slots)

    # -----------------
    # PKCE verifier slot
    # -----------------

    def read_verifier(self) -> Optional[str]:
        return self._slots.get(SLOT_CODE_VERIFIER) or None

    def save_verifier(self, verifier: str) -> None:
        slots = dict(self._slots)
        slots[SLOT_CODE_VERIFIER] = str(verifier)
        self._commit(slots)

    def clear_verifier(self) -> None:
        if SLOT_CODE_VERIFIER not in self._slots:
            return
        slots = {k: v for k, v in self._slots.items() if k != SLOT_CODE_VERIFIER}
        self._commit(slots)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._slots)

    # -----------------
    # Persistence
    # -----------------

    def _commit(self, slots: Dict[str, Any]) -> None:
        self._slots = slots
        self._persist(slots)

    def _load(self) -> Dict[str, Any]:
        if not self.cache_path or not os.path.exists(self.cache_path):
            return {}

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable token cache %s: %s", self.cache_path, e)
            return {}

        if not isinstance(data, dict):
            return {}

        known = CREDENTIAL_SLOTS + (SLOT_CODE_VERIFIER,)
        return {k: data[k] for k in known if data.get(k) is not None}

    def _persist(self, slots: Dict[str, Any]) -> bool:
        if not self.cache_path:
            return False

        directory = os.path.dirname(os.path.abspath(self.cache_path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tokens-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(slots, f, indent=2)
                os.replace(tmp_path, self.cache_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            return True
        except OSError as e:
            logger.warning("Could not write token cache %s: %s", self.cache_path, e)
            return False
