import math
import os
import sys
import unittest
from datetime import datetime, timedelta, timezone

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(THIS_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from recordos.decades import DecadeBoard, decade_for_year
from recordos.errors import SessionExpired
from recordos.models import (
    Album,
    AlbumsDiscovered,
    DecadeReady,
    Progress,
    ScanComplete,
    TrackItem,
    TracksLoaded,
)
from recordos.sync import LibrarySync


def saved_item(idx: int, added_at: str, album_id: str = "alb", release_date: str = "2020-01-01", **track_extra):
    track = {
        "id": f"t{idx}",
        "uri": f"spotify:track:t{idx}",
        "name": f"Song {idx}",
        "artists": [{"name": "Artist"}],
        "album": {
            "id": album_id,
            "name": f"Album {album_id}",
            "artists": [{"name": "Artist"}, {"name": "Guest"}],
            "images": [{"url": f"https://i.scdn.co/image/{album_id}"}],
            "release_date": release_date,
            "total_tracks": 10,
            "uri": f"spotify:album:{album_id}",
        },
        "duration_ms": 180000,
        "track_number": idx + 1,
    }
    track.update(track_extra)
    return {"added_at": added_at, "track": track}


class FakeSpotifyClient:
    """Serves a fixed list of saved-track items in pages, newest first."""

    def __init__(self, items=None, *, total_liked: int = 0):
        if items is None:
            start = datetime(2024, 6, 1, tzinfo=timezone.utc)
            items = [
                saved_item(i, (start - timedelta(days=i)).strftime("%Y-%m-%dT%H:%M:%SZ"), album_id=f"alb{i // 10}")
                for i in range(total_liked)
            ]
        self.items = list(items)
        self.calls = []

    async def saved_tracks(self, *, limit: int = 50, offset: int = 0):
        self.calls.append({"limit": limit, "offset": offset})
        page = self.items[offset: offset + limit]
        return {"items": page, "total": len(self.items), "limit": limit, "offset": offset}


class UntotaledClient(FakeSpotifyClient):
    async def saved_tracks(self, *, limit: int = 50, offset: int = 0):
        page = await super().saved_tracks(limit=limit, offset=offset)
        del page["total"]
        return page


async def collect(sync: LibrarySync):
    return [event async for event in sync.scan()]


class TestPagination(unittest.IsolatedAsyncioTestCase):
    async def test_fetches_ceil_total_over_page_size_pages(self):
        client = FakeSpotifyClient(total_liked=120)
        events = await collect(LibrarySync(client))

        self.assertEqual(len(client.calls), math.ceil(120 / 50))
        self.assertEqual([c["offset"] for c in client.calls], [0, 50, 100])
        self.assertTrue(all(c["limit"] == 50 for c in client.calls))

        progress = [e.progress for e in events if isinstance(e, Progress)]
        self.assertEqual([p.loaded for p in progress], [50, 100, 120])
        self.assertTrue(all(p.total == 120 for p in progress))
        self.assertEqual(sum(1 for p in progress if p.loaded == 120), 1)

        complete = events[-1]
        self.assertIsInstance(complete, ScanComplete)
        self.assertEqual(complete.progress.loaded, 120)
        self.assertEqual(len(complete.tracks), 120)
        self.assertEqual(len(complete.albums), 12)

    async def test_exact_multiple_of_page_size(self):
        client = FakeSpotifyClient(total_liked=100)
        await collect(LibrarySync(client))
        self.assertEqual(len(client.calls), 2)

    async def test_missing_total_pages_until_short_page(self):
        client = UntotaledClient(total_liked=120)
        with self.assertLogs("recordos.sync", level="WARNING") as logs:
            events = await collect(LibrarySync(client))

        self.assertEqual([c["offset"] for c in client.calls], [0, 50, 100])
        self.assertEqual(sum(1 for line in logs.output if "no total" in line), 1)
        progress = [e.progress for e in events if isinstance(e, Progress)]
        self.assertEqual([p.loaded for p in progress], [50, 100, 120])
        self.assertEqual(events[-1].progress.total, 120)
        self.assertEqual(len(events[-1].tracks), 120)

    async def test_missing_total_on_exact_multiple_fetches_one_empty_page(self):
        client = UntotaledClient(total_liked=100)
        with self.assertLogs("recordos.sync", level="WARNING"):
            events = await collect(LibrarySync(client))

        self.assertEqual([c["offset"] for c in client.calls], [0, 50, 100])
        self.assertEqual(events[-1].progress.loaded, 100)

    async def test_page_size_is_clamped(self):
        self.assertEqual(LibrarySync(FakeSpotifyClient(), page_size=500).page_size, 50)
        self.assertEqual(LibrarySync(FakeSpotifyClient(), page_size=0).page_size, 1)

    async def test_empty_library(self):
        client = FakeSpotifyClient(total_liked=0)
        events = await collect(LibrarySync(client))

        self.assertEqual(len(client.calls), 1)
        self.assertFalse(any(isinstance(e, AlbumsDiscovered) for e in events))
        self.assertFalse(any(isinstance(e, TracksLoaded) for e in events))
        self.assertFalse(any(isinstance(e, DecadeReady) for e in events))
        self.assertEqual(events[0].progress.loaded, 0)
        self.assertEqual(events[0].progress.total, 0)

        complete = events[-1]
        self.assertIsInstance(complete, ScanComplete)
        self.assertEqual(complete.albums, ())
        self.assertTrue(all(not b.ready and not b.albums for b in complete.buckets))

    async def test_local_and_broken_items_are_skipped_but_counted(self):
        items = [
            saved_item(0, "2024-01-02T00:00:00Z"),
            saved_item(1, "2024-01-01T00:00:00Z", is_local=True),
            {"added_at": "2023-12-31T00:00:00Z", "track": None},
            saved_item(3, "2023-12-30T00:00:00Z", album=None),
        ]
        events = await collect(LibrarySync(FakeSpotifyClient(items)))

        complete = events[-1]
        self.assertEqual([t.id for t in complete.tracks], ["t0"])
        self.assertEqual(complete.progress.loaded, 4)

    async def test_scan_is_restartable(self):
        client = FakeSpotifyClient(total_liked=30)
        sync = LibrarySync(client)

        first = (await collect(sync))[-1]
        second = (await collect(sync))[-1]

        self.assertEqual(len(client.calls), 2)
        self.assertEqual(first.albums, second.albums)
        self.assertEqual(second.progress.loaded, 30)

    async def test_errors_propagate_out_of_the_scan(self):
        class ExpiringClient(FakeSpotifyClient):
            async def saved_tracks(self, *, limit=50, offset=0):
                if offset:
                    raise SessionExpired()
                return await super().saved_tracks(limit=limit, offset=offset)

        events = []
        with self.assertRaises(SessionExpired):
            async for event in LibrarySync(ExpiringClient(total_liked=80)).scan():
                events.append(event)
        self.assertIsInstance(events[-1], Progress)
        self.assertFalse(any(isinstance(e, ScanComplete) for e in events))


class TestAlbumsAndDecades(unittest.IsolatedAsyncioTestCase):
    async def test_album_seen_on_three_pages_is_announced_once(self):
        items = [saved_item(i, f"2024-01-{20 - i:02d}T00:00:00Z", album_id="same") for i in range(6)]
        events = await collect(LibrarySync(FakeSpotifyClient(items), page_size=2))

        discovered = [a for e in events if isinstance(e, AlbumsDiscovered) for a in e.albums]
        self.assertEqual([a.id for a in discovered], ["same"])
        self.assertEqual(len(events[-1].albums), 1)
        self.assertEqual(len(events[-1].tracks), 6)

    async def test_first_occurrence_wins(self):
        items = [
            saved_item(0, "2024-01-02T00:00:00Z", album_id="a", release_date="2001"),
            saved_item(1, "2024-01-01T00:00:00Z", album_id="a", release_date="1999"),
        ]
        complete = (await collect(LibrarySync(FakeSpotifyClient(items))))[-1]
        self.assertEqual(complete.albums[0].release_date, "2001")

    async def test_page_events_come_in_order(self):
        items = [saved_item(0, "2019-05-01T00:00:00Z", album_id="new", release_date="2021-03-01")]
        events = await collect(LibrarySync(FakeSpotifyClient(items)))

        self.assertEqual(
            [type(e) for e in events],
            [TracksLoaded, AlbumsDiscovered, DecadeReady, Progress, ScanComplete],
        )
        self.assertEqual(events[2].decade.key, "2020s")

    async def test_decade_ready_follows_added_year(self):
        items = [
            saved_item(0, "2021-08-01T00:00:00Z", album_id="a2021", release_date="2021-01-01"),
            saved_item(1, "2020-08-01T00:00:00Z", album_id="a2020", release_date="2020-05-05"),
            saved_item(2, "2019-08-01T00:00:00Z", album_id="a2019", release_date="2019"),
            saved_item(3, "1978-08-01T00:00:00Z", album_id="a1975", release_date="1975-02"),
        ]
        events = await collect(LibrarySync(FakeSpotifyClient(items), page_size=1))

        # Group events by the page whose Progress closes them.
        pages, current = [], []
        for e in events:
            current.append(e)
            if isinstance(e, Progress):
                pages.append(current)
                current = []
        tail = current

        def ready_keys(evts):
            return [e.decade.key for e in evts if isinstance(e, DecadeReady)]

        self.assertEqual(len(pages), 4)
        self.assertEqual(ready_keys(pages[0]), [])
        self.assertEqual(ready_keys(pages[1]), [])
        self.assertEqual(ready_keys(pages[2]), ["2020s"])
        self.assertEqual(ready_keys(pages[3]), ["2010s", "2000s", "1990s", "1980s"])

        # classic only when the scan ends, just before ScanComplete
        self.assertEqual(ready_keys(tail), ["classic"])
        self.assertIsInstance(tail[-1], ScanComplete)

        ready_2020s = [e for e in events if isinstance(e, DecadeReady) and e.decade.key == "2020s"][0]
        self.assertEqual([a.id for a in ready_2020s.albums], ["a2021", "a2020"])

        complete = tail[-1]
        self.assertEqual(complete.ordering_violations, 0)
        self.assertTrue(complete.bucket("classic").ready)
        self.assertEqual([a.id for a in complete.bucket("classic").albums], ["a1975"])
        self.assertEqual([a.id for a in complete.bucket("2010s").albums], ["a2019"])
        self.assertTrue(complete.bucket("2000s").ready)
        self.assertEqual(complete.bucket("2000s").albums, [])

    async def test_each_decade_is_announced_at_most_once(self):
        client = FakeSpotifyClient(total_liked=120)
        events = await collect(LibrarySync(client, page_size=7))
        keys = [e.decade.key for e in events if isinstance(e, DecadeReady)]
        self.assertEqual(len(keys), len(set(keys)))

    async def test_empty_bucket_stays_unready_at_scan_end(self):
        items = [saved_item(0, "2024-01-01T00:00:00Z", album_id="new", release_date="2023")]
        complete = (await collect(LibrarySync(FakeSpotifyClient(items))))[-1]

        self.assertTrue(complete.bucket("2020s").ready)
        for key in ("2010s", "2000s", "1990s", "1980s", "classic"):
            self.assertFalse(complete.bucket(key).ready, key)

    async def test_out_of_order_saves_are_counted(self):
        items = [
            saved_item(0, "2015-01-01T00:00:00Z", album_id="old", release_date="2012"),
            saved_item(1, "2022-01-01T00:00:00Z", album_id="late", release_date="2021"),
        ]
        with self.assertLogs("recordos", level="WARNING"):
            complete = (await collect(LibrarySync(FakeSpotifyClient(items))))[-1]

        # Newer-than-previous save, plus an album landing in an already-ready bucket.
        self.assertEqual(complete.ordering_violations, 2)
        self.assertEqual([a.id for a in complete.bucket("2020s").albums], ["late"])

    async def test_run_hands_every_event_to_callback(self):
        seen = []

        async def on_event(event):
            seen.append(type(event).__name__)

        result = await LibrarySync(FakeSpotifyClient(total_liked=60)).run(on_event)

        self.assertIsInstance(result, ScanComplete)
        self.assertEqual(seen[-1], "ScanComplete")
        self.assertEqual(seen.count("Progress"), 2)

        plain = []
        await LibrarySync(FakeSpotifyClient(total_liked=5)).run(plain.append)
        self.assertIsInstance(plain[-1], ScanComplete)


class TestDecadeHelpers(unittest.TestCase):
    def test_decade_for_year(self):
        self.assertEqual(decade_for_year(2024).key, "2020s")
        self.assertEqual(decade_for_year(2020).key, "2020s")
        self.assertEqual(decade_for_year(2019).key, "2010s")
        self.assertEqual(decade_for_year(1980).key, "1980s")
        self.assertEqual(decade_for_year(1979).key, "classic")
        self.assertEqual(decade_for_year(None).key, "classic")

    def test_unknown_release_year_is_classic(self):
        board = DecadeBoard()
        album = Album("x", "X", "A", "", "0000", 1, "spotify:album:x")
        self.assertIsNone(album.release_year)
        self.assertEqual(board.place(album).key, "classic")

    def test_observe_added_year_never_readies_classic(self):
        board = DecadeBoard()
        newly = board.observe_added_year(1900)
        self.assertEqual([d.key for d in newly], ["2020s", "2010s", "2000s", "1990s", "1980s"])
        self.assertEqual(board.observe_added_year(1800), [])
        self.assertFalse(board.buckets["classic"].ready)

    def test_track_item_parses_saved_item(self):
        track = TrackItem.from_saved_item(saved_item(4, "2020-02-03T04:05:06Z", album_id="a"))
        self.assertEqual(track.id, "t4")
        self.assertEqual(track.added_at, datetime(2020, 2, 3, 4, 5, 6, tzinfo=timezone.utc))
        self.assertEqual(track.album.artist, "Artist, Guest")
        self.assertEqual(track.album.image_url, "https://i.scdn.co/image/a")
        self.assertEqual(track.track_number, 5)


if __name__ == "__main__":
    unittest.main(verbosity=2)
