from typing import Any, Callable, Dict, List, Optional

import httpx

from config import CONFIG_PATH, DEFAULT_CONFIG, load_config, validate_config
from utils.logger import log_info, log_success, log_warning, setup_logging

from .auth import AuthorizationFlow
from .cache import AlbumCache
from .client import SpotifyClient
from .credential_store import Credential, CredentialStore
from .gateway import ApiGateway
from .library import AlbumSummary, filter_albums, summarize_albums, top_decade
from .models import ScanComplete, SyncEvent
from .player import PlaybackController
from .sync import LibrarySync


class RecordSession:
    """Everything the music browser needs, wired from one config dict.

    Owns the httpx.AsyncClient unless one is passed in; use it as an async
    context manager (or call aclose()) to release connections.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        store: Optional[CredentialStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        album_cache: Optional[AlbumCache] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.config = {**DEFAULT_CONFIG, **(config or {})}

        timeout = float(self.config.get("http_timeout", 30.0))
        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

        if store is None:
            cache_path = self.config.get("token_cache_path") if self.config.get("spotify_cache_tokens", True) else None
            store = CredentialStore(cache_path=cache_path)
        self.store = store

        if album_cache is None and self.config.get("album_cache_enabled", True):
            album_cache = AlbumCache(
                self.config.get("album_cache_path") or "data/albums_cache.json",
                ttl_seconds=float(self.config.get("album_cache_ttl", 3600)),
                clock=clock,
            )
        self.album_cache = album_cache

        self.auth = AuthorizationFlow(self.config, store=self.store, http_client=self.http, clock=clock)
        self.gateway = ApiGateway(self.auth, http_client=self.http, timeout=timeout)
        self.client = SpotifyClient(self.gateway)
        self.player = PlaybackController(self.gateway)
        self.sync = LibrarySync(self.client, page_size=int(self.config.get("page_size", 50)))

        self.albums: List[AlbumSummary] = []
        self.last_scan: Optional[ScanComplete] = None

    @classmethod
    def from_config_file(cls, path: str = CONFIG_PATH, **kwargs: Any) -> "RecordSession":
        config = load_config(path)
        setup_logging(config.get("log_level", "INFO"))

        ok, errors = validate_config(config)
        if not ok:
            raise ValueError(f"Invalid config {path}: {'; '.join(errors)}")
        if not str(config.get("spotify_client_id") or "").strip():
            log_warning("spotify_client_id is not set; login will fail until it is configured.")

        return cls(config, **kwargs)

    async def __aenter__(self) -> "RecordSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    # -----------------
    # Auth
    # -----------------

    @property
    def is_logged_in(self) -> bool:
        return self.auth.is_logged_in

    def login_url(self) -> str:
        return self.auth.begin_login()

    async def handle_callback(self, redirect_url: str) -> Credential:
        credential = await self.auth.complete_login_from_redirect(redirect_url)
        log_success("Spotify authentication successful")
        return credential

    async def current_user(self) -> Optional[Dict[str, Any]]:
        return await self.client.me()

    def logout(self) -> None:
        self.auth.logout()
        if self.album_cache is not None:
            self.album_cache.clear()
        self.albums = []
        self.last_scan = None

    # -----------------
    # Library
    # -----------------

    async def load_library(
        self,
        *,
        use_cache: bool = True,
        on_event: Optional[Callable[[SyncEvent], Any]] = None,
    ) -> List[AlbumSummary]:
        """Scan the saved-track library (or reuse a fresh cache) and summarize it by album."""

        if use_cache and self.album_cache is not None:
            cached = self.album_cache.load()
            if cached is not None:
                self.albums = cached
                return cached

        result = await self.sync.run(on_event)
        self.last_scan = result
        self.albums = summarize_albums(result.tracks)
        log_info(f"Found {len(self.albums)} albums from {result.progress.loaded} liked tracks")

        if self.album_cache is not None:
            self.album_cache.save(self.albums)

        return self.albums

    def filtered_albums(
        self,
        *,
        decade: str = "all",
        threshold: Optional[str] = None,
        sort_by: Optional[str] = None,
        descending: Optional[bool] = None,
    ) -> List[AlbumSummary]:
        return filter_albums(
            self.albums,
            threshold=threshold or self.config.get("album_threshold", "auto"),
            sort_by=sort_by or self.config.get("sort_by", "release_date"),
            descending=self.config.get("sort_desc", True) if descending is None else descending,
            decade=decade,
            target=int(self.config.get("target_album_count", 72)),
        )

    def top_decade(self) -> Optional[str]:
        return top_decade(self.albums)
