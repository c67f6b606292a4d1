import inspect
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, List, Optional, Set, Tuple

from .client import MAX_SAVED_TRACKS_LIMIT, SpotifyClient
from .decades import DecadeBoard
from .models import (
    Album,
    AlbumsDiscovered,
    Decade,
    DecadeReady,
    Progress,
    ScanComplete,
    SyncEvent,
    SyncProgress,
    TrackItem,
    TracksLoaded,
)

logger = logging.getLogger(__name__)


class _ScanState:
    def __init__(self) -> None:
        self.board = DecadeBoard()
        self.seen_album_ids: Set[str] = set()
        self.albums: List[Album] = []
        self.tracks: List[TrackItem] = []
        self.last_added_at: Optional[datetime] = None
        self.added_at_violations = 0


class LibrarySync:
    """Walk the whole saved-track library and report what it finds as it goes.

    scan() is a cold async generator: each call starts over with fresh state,
    and pages are fetched strictly one after another because decade readiness
    depends on the most-recently-saved-first page order.
    """

    def __init__(self, client: SpotifyClient, *, page_size: int = MAX_SAVED_TRACKS_LIMIT):
        self.client = client
        self.page_size = max(1, min(MAX_SAVED_TRACKS_LIMIT, int(page_size)))

    async def scan(self) -> AsyncIterator[SyncEvent]:
        state = _ScanState()
        offset = 0
        loaded = 0
        total: Optional[int] = None
        pages = 0
        # Without a reported total, keep paging until a short page comes back.
        untotaled = False
        more = True

        while more:
            page = await self.client.saved_tracks(limit=self.page_size, offset=offset)
            pages += 1
            items = page.get("items") or []
            if not isinstance(items, list):
                items = []

            raw_total = page.get("total")
            if raw_total is None and not untotaled:
                logger.warning("Saved-tracks page at offset %d has no total; paging until a short page", offset)
                untotaled = True

            offset += self.page_size
            loaded += len(items)

            if untotaled:
                total = loaded
                more = len(items) >= self.page_size
            else:
                page_total = int(raw_total)
                if total is None:
                    total = page_total
                elif page_total != total:
                    logger.debug("Library total changed mid-scan (%s -> %s); keeping %s", total, page_total, total)
                more = offset < total

            tracks, new_albums, ready = self._process_page(items, state)

            if tracks:
                yield TracksLoaded(tuple(tracks))
            if new_albums:
                yield AlbumsDiscovered(tuple(new_albums))
            for decade in ready:
                logger.info("Decade %s ready (%d albums)", decade.key, len(state.board.buckets[decade.key].albums))
                yield DecadeReady(decade, state.board.albums_in(decade.key))
            yield Progress(SyncProgress(loaded=loaded, total=total))

        for decade in state.board.finalize():
            yield DecadeReady(decade, state.board.albums_in(decade.key))

        violations = state.board.ordering_violations + state.added_at_violations
        logger.info(
            "Library scan complete: %d saved tracks, %d albums, %d page(s)",
            loaded,
            len(state.albums),
            pages,
        )
        yield ScanComplete(
            progress=SyncProgress(loaded=loaded, total=total),
            albums=tuple(state.albums),
            tracks=tuple(state.tracks),
            buckets=state.board.snapshot(),
            ordering_violations=violations,
        )

    def _process_page(
        self, items: List[Any], state: _ScanState
    ) -> Tuple[List[TrackItem], List[Album], List[Decade]]:
        tracks: List[TrackItem] = []
        new_albums: List[Album] = []
        ready: List[Decade] = []

        for item in items:
            track = TrackItem.from_saved_item(item)
            if track is None:
                continue

            if state.last_added_at is not None and track.added_at > state.last_added_at:
                state.added_at_violations += 1
                logger.warning(
                    "Saved track %s (added %s) is newer than the one before it; decade readiness may be early",
                    track.id,
                    track.added_at.isoformat(),
                )
            state.last_added_at = track.added_at

            tracks.append(track)
            state.tracks.append(track)

            album = track.album
            if album.id not in state.seen_album_ids:
                state.seen_album_ids.add(album.id)
                state.albums.append(album)
                new_albums.append(album)
                state.board.place(album)

            ready.extend(state.board.observe_added_year(track.added_at.year))

        return tracks, new_albums, ready

    async def run(self, on_event: Optional[Callable[[SyncEvent], Any]] = None) -> ScanComplete:
        """Drive scan() to the end, handing every event to on_event.

        on_event may be a plain function or a coroutine function.
        """

        result: Optional[ScanComplete] = None
        async for event in self.scan():
            if on_event is not None:
                outcome = on_event(event)
                if inspect.isawaitable(outcome):
                    await outcome
            if isinstance(event, ScanComplete):
                result = event

        if result is None:
            raise RuntimeError("Library scan ended without a ScanComplete event")
        return result
