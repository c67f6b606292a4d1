import json
import logging
import os
import tempfile
from typing import Callable, List, Optional

from .credential_store import now_millis
from .library import AlbumSummary

logger = logging.getLogger(__name__)

DEFAULT_ALBUM_CACHE_PATH = os.path.join("data", "albums_cache.json")
ALBUMS_CACHE_DURATION = 60 * 60  # seconds


class AlbumCache:
    """Keeps the last library's album summaries on disk for a limited time."""

    def __init__(
        self,
        path: str = DEFAULT_ALBUM_CACHE_PATH,
        *,
        ttl_seconds: float = ALBUMS_CACHE_DURATION,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.path = path
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock or now_millis

    def load(self) -> Optional[List[AlbumSummary]]:
        """Return cached summaries, or None when missing, stale or unreadable."""

        if not os.path.exists(self.path):
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            saved_at = int(data.get("saved_at") or 0)
            age_ms = self._clock() - saved_at
            if age_ms < 0 or age_ms >= self.ttl_seconds * 1000:
                logger.debug("Album cache is stale (age %.1f min)", age_ms / 60000)
                return None
            albums = [AlbumSummary.from_dict(a) for a in data.get("albums") or []]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable album cache %s: %s", self.path, e)
            return None

        logger.info("Loading albums from cache (age: %d min)", round(age_ms / 60000))
        return albums

    def save(self, summaries: List[AlbumSummary]) -> bool:
        payload = {"saved_at": self._clock(), "albums": [s.to_dict() for s in summaries]}
        directory = os.path.dirname(os.path.abspath(self.path))

        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".albums-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            return True
        except OSError as e:
            logger.warning("Could not write album cache %s: %s", self.path, e)
            return False

    def clear(self) -> bool:
        try:
            if os.path.exists(self.path):
                os.remove(self.path)
            return True
        except OSError as e:
            logger.warning("Could not remove album cache %s: %s", self.path, e)
            return False
