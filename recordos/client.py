from typing import Any, Dict, List, Optional

from .gateway import ApiGateway

# Spotify caps /me/tracks pages at 50 and /albums?ids= at 20.
MAX_SAVED_TRACKS_LIMIT = 50
MAX_ALBUM_IDS = 20


class SpotifyClient:
    """Thin wrapper over ApiGateway for the read endpoints the browser uses."""

    def __init__(self, gateway: ApiGateway):
        self.gateway = gateway

    async def me(self) -> Optional[Dict[str, Any]]:
        return await self.gateway.request("/me")

    async def saved_tracks(self, *, limit: int = MAX_SAVED_TRACKS_LIMIT, offset: int = 0) -> Dict[str, Any]:
        """One page of the user's saved tracks: {items: [{added_at, track}], total, ...}."""

        limit = max(1, min(MAX_SAVED_TRACKS_LIMIT, int(limit)))
        page = await self.gateway.request("/me/tracks", params={"limit": limit, "offset": int(offset)})
        return page or {}

    async def album(self, album_id: str) -> Optional[Dict[str, Any]]:
        return await self.gateway.request(f"/albums/{album_id}")

    async def albums(self, album_ids: List[str]) -> Dict[str, Any]:
        ids = [str(i).strip() for i in (album_ids or []) if str(i).strip()]
        if not ids:
            return {"albums": []}
        if len(ids) > MAX_ALBUM_IDS:
            raise ValueError(f"At most {MAX_ALBUM_IDS} album ids per request, got {len(ids)}")
        return await self.gateway.request("/albums", params={"ids": ",".join(ids)}) or {"albums": []}

    async def audio_features(self, track_id: str) -> Optional[Dict[str, Any]]:
        return await self.gateway.request(f"/audio-features/{track_id}")

    async def audio_analysis(self, track_id: str) -> Optional[Dict[str, Any]]:
        """Beats, bars and segments for the visualizer."""
        return await self.gateway.request(f"/audio-analysis/{track_id}")
