"""Playback control through the Web API player endpoints.

Most of these endpoints answer 204 No Content, so the methods return None on
success and raise the gateway's typed errors otherwise. device_id is optional;
without it Spotify targets the user's currently active device.
"""

from typing import Any, Dict, List, Optional, Union

from .gateway import ApiGateway


def _device_params(device_id: Optional[str], **extra: Any) -> Dict[str, Any]:
    params = {k: v for k, v in extra.items() if v is not None}
    if device_id:
        params["device_id"] = device_id
    return params


def _uri_of(item: Any) -> str:
    if isinstance(item, str):
        return item
    uri = getattr(item, "uri", None)
    if uri is None and isinstance(item, dict):
        uri = item.get("uri")
    if not uri:
        raise ValueError(f"No Spotify URI on {item!r}")
    return str(uri)


class PlaybackController:
    def __init__(self, gateway: ApiGateway):
        self.gateway = gateway

    async def playback_state(self) -> Optional[Dict[str, Any]]:
        # 204 here means nothing is playing anywhere.
        return await self.gateway.request("/me/player")

    async def play(
        self,
        device_id: Optional[str] = None,
        *,
        context_uri: Optional[str] = None,
        uris: Optional[List[str]] = None,
        offset: Optional[Union[int, str]] = None,
        position_ms: Optional[int] = None,
    ) -> None:
        body: Dict[str, Any] = {}
        if context_uri:
            body["context_uri"] = context_uri
        if uris:
            body["uris"] = list(uris)
        if offset is not None:
            body["offset"] = {"position": offset} if isinstance(offset, int) else {"uri": str(offset)}
        if position_ms is not None:
            body["position_ms"] = int(position_ms)

        await self.gateway.request("/me/player/play", method="PUT", params=_device_params(device_id), body=body)

    async def pause(self, device_id: Optional[str] = None) -> None:
        await self.gateway.request("/me/player/pause", method="PUT", params=_device_params(device_id))

    async def skip_to_next(self, device_id: Optional[str] = None) -> None:
        await self.gateway.request("/me/player/next", method="POST", params=_device_params(device_id))

    async def skip_to_previous(self, device_id: Optional[str] = None) -> None:
        await self.gateway.request("/me/player/previous", method="POST", params=_device_params(device_id))

    async def seek(self, position_ms: int, device_id: Optional[str] = None) -> None:
        position_ms = int(position_ms)
        if position_ms < 0:
            raise ValueError(f"position_ms must be >= 0, got {position_ms}")
        await self.gateway.request(
            "/me/player/seek",
            method="PUT",
            params=_device_params(device_id, position_ms=position_ms),
        )

    async def set_volume(self, volume_percent: int, device_id: Optional[str] = None) -> None:
        volume_percent = int(volume_percent)
        if not 0 <= volume_percent <= 100:
            raise ValueError(f"volume_percent must be between 0 and 100, got {volume_percent}")
        await self.gateway.request(
            "/me/player/volume",
            method="PUT",
            params=_device_params(device_id, volume_percent=volume_percent),
        )

    async def transfer_playback(self, device_id: str, *, play: bool = False) -> None:
        await self.gateway.request("/me/player", method="PUT", body={"device_ids": [device_id], "play": bool(play)})

    async def play_album(self, album: Any, device_id: Optional[str] = None) -> None:
        await self.play(device_id, context_uri=_uri_of(album))

    async def play_track(self, track: Any, album: Any, device_id: Optional[str] = None) -> None:
        """Start track inside its album so playback continues through the album."""
        await self.play(device_id, context_uri=_uri_of(album), offset=_uri_of(track))
