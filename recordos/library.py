"""Album-level view of a finished library scan.

Albums carry how many of their tracks the user saved. The default ("auto")
selection keeps the TARGET_ALBUM_COUNT albums with the highest share of saved
tracks, which gives a collection of "most loved" albums without a manual
threshold; "all" keeps everything.
"""

from collections import Counter
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .decades import decade_for_album
from .models import Album, TrackItem, parse_release_year

# 72 divides cleanly by 2, 3, 4, 6, 8, 9, 12, 18, 24 and 36 (grid layouts).
TARGET_ALBUM_COUNT = 72

THRESHOLD_AUTO = "auto"
THRESHOLD_ALL = "all"

SORT_RELEASE_DATE = "release_date"
SORT_ARTIST = "artist"
SORT_ALBUM = "album"
SORT_TRACK_COUNT = "track_count"

SORT_LABELS = {
    SORT_RELEASE_DATE: "Release Date",
    SORT_ARTIST: "Artist Name",
    SORT_ALBUM: "Album Name",
    SORT_TRACK_COUNT: "# of Liked Songs",
}


@dataclass
class AlbumSummary:
    album: Album
    liked_tracks: int = 0
    tracks: List[TrackItem] = field(default_factory=list)

    @property
    def liked_percent(self) -> float:
        total = self.album.total_tracks
        return self.liked_tracks / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "album": self.album.to_dict(),
            "liked_tracks": self.liked_tracks,
            "tracks": [t.to_dict() for t in self.tracks],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AlbumSummary":
        album = Album.from_dict(data["album"])
        tracks = [TrackItem.from_dict(t, album) for t in data.get("tracks") or []]
        return AlbumSummary(album=album, liked_tracks=int(data.get("liked_tracks") or len(tracks)), tracks=tracks)


def summarize_albums(tracks: Iterable[TrackItem]) -> List[AlbumSummary]:
    by_id: Dict[str, AlbumSummary] = {}
    for track in tracks:
        summary = by_id.get(track.album.id)
        if summary is None:
            summary = by_id[track.album.id] = AlbumSummary(album=track.album)
        summary.liked_tracks += 1
        summary.tracks.append(track)

    for summary in by_id.values():
        summary.tracks.sort(key=lambda t: t.track_number)

    return sorted(by_id.values(), key=lambda s: s.liked_tracks, reverse=True)


def _by_liked_share(a: AlbumSummary, b: AlbumSummary) -> int:
    diff = b.liked_percent - a.liked_percent
    if abs(diff) > 0.001:
        return 1 if diff > 0 else -1
    return b.liked_tracks - a.liked_tracks


def select_top_albums(summaries: Iterable[AlbumSummary], *, target: int = TARGET_ALBUM_COUNT) -> List[AlbumSummary]:
    """Highest liked percentage first; percentages within 0.001 fall back to liked count."""

    ranked = sorted(summaries, key=cmp_to_key(_by_liked_share))
    return ranked[: max(0, int(target))]


def _release_sort_key(summary: AlbumSummary) -> Tuple[int, int, int]:
    parts = (summary.album.release_date or "").split("-")
    year = parse_release_year(summary.album.release_date) or 0
    month = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 1
    day = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else 1
    return year, month, day


_SORT_KEYS = {
    SORT_RELEASE_DATE: _release_sort_key,
    SORT_ARTIST: lambda s: s.album.artist.casefold(),
    SORT_ALBUM: lambda s: s.album.name.casefold(),
    SORT_TRACK_COUNT: lambda s: s.liked_tracks,
}


def sort_albums(
    summaries: Iterable[AlbumSummary],
    *,
    sort_by: str = SORT_RELEASE_DATE,
    descending: bool = True,
) -> List[AlbumSummary]:
    result = list(summaries)
    key = _SORT_KEYS.get(sort_by)
    if key is None:
        return result
    result.sort(key=key, reverse=descending)
    return result


def filter_albums(
    summaries: Iterable[AlbumSummary],
    *,
    threshold: str = THRESHOLD_AUTO,
    sort_by: str = SORT_RELEASE_DATE,
    descending: bool = True,
    decade: Optional[str] = "all",
    target: int = TARGET_ALBUM_COUNT,
) -> List[AlbumSummary]:
    result = list(summaries)
    if decade and decade != "all":
        result = [s for s in result if decade_for_album(s.album).key == decade]

    if threshold != THRESHOLD_ALL:
        result = select_top_albums(result, target=target)

    return sort_albums(result, sort_by=sort_by, descending=descending)


def top_decade(summaries: Iterable[AlbumSummary]) -> Optional[str]:
    """Most common release decade, e.g. "1990s"."""

    counts: Counter = Counter()
    for s in summaries:
        year = s.album.release_year
        if year:
            counts[(year // 10) * 10] += 1
    if not counts:
        return None
    decade, _ = counts.most_common(1)[0]
    return f"{decade}s"
