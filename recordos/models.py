import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

_YEAR_RE = re.compile(r"^(\d{4})")


def _normalize_artist_list(artists: Any) -> str:
    if not isinstance(artists, list):
        return ""
    names = []
    for a in artists:
        if isinstance(a, dict) and a.get("name"):
            names.append(str(a.get("name")).strip())
    return ", ".join([n for n in names if n])


def parse_release_year(release_date: Optional[str]) -> Optional[int]:
    """Year of a Spotify release_date ("1979", "1979-05" or "1979-05-01").

    Spotify sometimes reports "0000" for unknown dates; that maps to None.
    """

    m = _YEAR_RE.match(str(release_date or "").strip())
    if not m:
        return None
    year = int(m.group(1))
    return year or None


def parse_added_at(value: Optional[str]) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Album:
    """Album as surfaced by the library scan (first occurrence wins)."""

    id: str
    name: str
    artist: str
    image_url: str
    release_date: str
    total_tracks: int
    uri: str

    @property
    def release_year(self) -> Optional[int]:
        return parse_release_year(self.release_date)

    @staticmethod
    def from_api(album: Any) -> Optional["Album"]:
        if not isinstance(album, dict) or not album.get("id"):
            return None

        images = album.get("images") or []
        first_image = images[0] if isinstance(images, list) and images else {}
        image_url = first_image.get("url") if isinstance(first_image, dict) else None

        try:
            total_tracks = int(album.get("total_tracks") or 0)
        except (TypeError, ValueError):
            total_tracks = 0

        return Album(
            id=str(album["id"]),
            name=str(album.get("name") or ""),
            artist=_normalize_artist_list(album.get("artists")),
            image_url=str(image_url or ""),
            release_date=str(album.get("release_date") or ""),
            total_tracks=total_tracks,
            uri=str(album.get("uri") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "image_url": self.image_url,
            "release_date": self.release_date,
            "total_tracks": self.total_tracks,
            "uri": self.uri,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Album":
        return Album(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            artist=str(data.get("artist") or ""),
            image_url=str(data.get("image_url") or ""),
            release_date=str(data.get("release_date") or ""),
            total_tracks=int(data.get("total_tracks") or 0),
            uri=str(data.get("uri") or ""),
        )


@dataclass(frozen=True)
class TrackItem:
    """One saved track; identity is the Spotify track id."""

    id: str
    name: str
    duration_ms: int
    added_at: datetime
    album: Album
    track_number: int = 0
    uri: str = ""
    artist: str = ""

    @classmethod
    def from_saved_item(cls, item: Any) -> Optional["TrackItem"]:
        """Build from a /me/tracks item ({added_at, track}).

        Local files and items without an album or timestamp are skipped.
        """

        if not isinstance(item, dict):
            return None
        track = item.get("track")
        if not isinstance(track, dict) or track.get("is_local") or not track.get("id"):
            return None

        added_at = parse_added_at(item.get("added_at"))
        album = Album.from_api(track.get("album"))
        if added_at is None or album is None:
            return None

        return cls(
            id=str(track["id"]),
            name=str(track.get("name") or ""),
            duration_ms=int(track.get("duration_ms") or 0),
            added_at=added_at,
            album=album,
            track_number=int(track.get("track_number") or 0),
            uri=str(track.get("uri") or ""),
            artist=_normalize_artist_list(track.get("artists")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "duration_ms": self.duration_ms,
            "added_at": self.added_at.isoformat(),
            "album_id": self.album.id,
            "track_number": self.track_number,
            "uri": self.uri,
            "artist": self.artist,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], album: Album) -> "TrackItem":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            duration_ms=int(data.get("duration_ms") or 0),
            added_at=parse_added_at(data.get("added_at")) or datetime.fromtimestamp(0, tz=timezone.utc),
            album=album,
            track_number=int(data.get("track_number") or 0),
            uri=str(data.get("uri") or ""),
            artist=str(data.get("artist") or ""),
        )


@dataclass(frozen=True)
class SyncProgress:
    loaded: int
    total: Optional[int]


@dataclass(frozen=True)
class Decade:
    """A release-decade bucket. start_year None means no readiness threshold."""

    key: str
    label: str
    start_year: Optional[int]


@dataclass
class DecadeBucket:
    decade: Decade
    albums: List[Album] = field(default_factory=list)
    ready: bool = False


# -----------------
# Scan events
# -----------------


@dataclass(frozen=True)
class Progress:
    progress: SyncProgress


@dataclass(frozen=True)
class TracksLoaded:
    tracks: Tuple[TrackItem, ...]


@dataclass(frozen=True)
class AlbumsDiscovered:
    albums: Tuple[Album, ...]


@dataclass(frozen=True)
class DecadeReady:
    decade: Decade
    albums: Tuple[Album, ...]


@dataclass(frozen=True)
class ScanComplete:
    progress: SyncProgress
    albums: Tuple[Album, ...]
    tracks: Tuple[TrackItem, ...]
    buckets: Tuple[DecadeBucket, ...]
    ordering_violations: int = 0

    def bucket(self, key: str) -> Optional[DecadeBucket]:
        for b in self.buckets:
            if b.decade.key == key:
                return b
        return None


SyncEvent = Union[Progress, TracksLoaded, AlbumsDiscovered, DecadeReady, ScanComplete]
