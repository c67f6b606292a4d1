"""Release-decade buckets and the "bucket is complete" inference.

Saved tracks arrive most-recently-saved first. An album released in the 2020s
cannot have been saved before 2020, so once the scan reaches a track saved in
2019 the 2020s bucket can receive nothing new and is marked ready. The classic
bucket has no such year to wait for; it is only finalized when the scan ends.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .models import Album, Decade, DecadeBucket

logger = logging.getLogger(__name__)

CLASSIC = "classic"

DECADES: Tuple[Decade, ...] = (
    Decade("2020s", "2020s", 2020),
    Decade("2010s", "2010s", 2010),
    Decade("2000s", "2000s", 2000),
    Decade("1990s", "1990s", 1990),
    Decade("1980s", "1980s", 1980),
    Decade(CLASSIC, "Pre-1980", None),
)

DECADE_ORDER = [d.key for d in DECADES]
DECADE_LABELS = {d.key: d.label for d in DECADES}


def decade_for_year(year: Optional[int]) -> Decade:
    """Bucket for a release year; unknown years land in classic."""

    if year is not None:
        for decade in DECADES:
            if decade.start_year is not None and year >= decade.start_year:
                return decade
    return DECADES[-1]


def decade_for_album(album: Album) -> Decade:
    return decade_for_year(album.release_year)


class DecadeBoard:
    """Per-scan bucket state. Buckets only ever go from unready to ready."""

    def __init__(self, decades: Tuple[Decade, ...] = DECADES):
        self.buckets: Dict[str, DecadeBucket] = {d.key: DecadeBucket(decade=d) for d in decades}
        self.ordering_violations = 0

    def place(self, album: Album) -> Decade:
        decade = decade_for_album(album)
        bucket = self.buckets[decade.key]
        if bucket.ready:
            self.ordering_violations += 1
            logger.warning(
                "Album %r arrived after the %s bucket was marked ready; saved tracks are out of order",
                album.name,
                decade.key,
            )
        bucket.albums.append(album)
        return decade

    def observe_added_year(self, year: int) -> List[Decade]:
        """Mark ready every bucket whose start year is above year; return the newly ready ones."""

        newly_ready = []
        for bucket in self.buckets.values():
            start = bucket.decade.start_year
            if bucket.ready or start is None:
                continue
            if year < start:
                bucket.ready = True
                newly_ready.append(bucket.decade)
        return newly_ready

    def finalize(self) -> List[Decade]:
        """Scan finished: ready every bucket that still waits and holds albums.

        Empty unready buckets stay unready; callers read that as "no albums".
        """

        newly_ready = []
        for bucket in self.buckets.values():
            if not bucket.ready and bucket.albums:
                bucket.ready = True
                newly_ready.append(bucket.decade)
        return newly_ready

    def albums_in(self, key: str) -> Tuple[Album, ...]:
        return tuple(self.buckets[key].albums)

    def snapshot(self) -> Tuple[DecadeBucket, ...]:
        return tuple(
            DecadeBucket(decade=b.decade, albums=list(b.albums), ready=b.ready) for b in self.buckets.values()
        )
