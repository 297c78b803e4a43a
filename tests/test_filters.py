from __future__ import annotations

import unittest

from fb_search.dates import SECONDS_PER_DAY, to_epoch
from fb_search.extract import CandidateItem
from fb_search.filters import RECENT_WINDOW_DAYS, CrawlState, admit, date_rejection

_DAY = to_epoch("2024-05-10")
assert _DAY is not None


def _item(url: str | None, ts: int | None = None) -> CandidateItem:
    return CandidateItem(url=url, timestamp=ts)


class TestDates(unittest.TestCase):
    def test_to_epoch_variants(self) -> None:
        self.assertEqual(to_epoch("2024-05-10"), 1715299200)
        self.assertEqual(to_epoch("2024-05-10T00:00:00Z"), 1715299200)
        self.assertEqual(to_epoch("2024-05-10T02:00:00+02:00"), 1715299200)
        self.assertEqual(to_epoch(1715299200), 1715299200)
        self.assertEqual(to_epoch(1715299200000), 1715299200)
        self.assertEqual(to_epoch("1715299200"), 1715299200)
        self.assertIsNone(to_epoch("yesterday"))
        self.assertIsNone(to_epoch(""))
        self.assertIsNone(to_epoch(None))
        self.assertIsNone(to_epoch(True))


class TestDateWindow(unittest.TestCase):
    def test_start_date_is_inclusive(self) -> None:
        state = CrawlState(max_results=10, start_epoch=_DAY)
        self.assertIsNone(date_rejection(_DAY, state))
        self.assertEqual(date_rejection(_DAY - 1, state), "before_start_date")

    def test_end_date_covers_whole_day(self) -> None:
        state = CrawlState(max_results=10, end_epoch=_DAY)
        self.assertIsNone(date_rejection(_DAY + SECONDS_PER_DAY - 1, state))
        self.assertEqual(date_rejection(_DAY + SECONDS_PER_DAY, state), "after_end_date")

    def test_recent_window(self) -> None:
        now = _DAY + 100 * SECONDS_PER_DAY
        state = CrawlState(max_results=10, recent_only=True)
        cutoff = now - RECENT_WINDOW_DAYS * SECONDS_PER_DAY
        self.assertIsNone(date_rejection(cutoff, state, now=now))
        self.assertEqual(date_rejection(cutoff - 1, state, now=now), "older_than_recent_window")

    def test_explicit_window_disables_recent_window(self) -> None:
        now = _DAY + 100 * SECONDS_PER_DAY
        state = CrawlState(max_results=10, recent_only=True, start_epoch=_DAY)
        self.assertIsNone(date_rejection(_DAY + 1, state, now=now))

    def test_undated_items_always_pass(self) -> None:
        state = CrawlState(max_results=10, recent_only=True, start_epoch=_DAY, end_epoch=_DAY)
        self.assertIsNone(date_rejection(None, state))
        self.assertIsNone(date_rejection(0, state))


class TestAdmit(unittest.TestCase):
    def test_dedup_by_url(self) -> None:
        state = CrawlState(max_results=10)
        self.assertTrue(admit(_item("https://m.facebook.com/reel/1234567"), state).accepted)

        dup = admit(_item("https://m.facebook.com/reel/1234567"), state)
        self.assertFalse(dup.accepted)
        self.assertEqual(dup.reason, "duplicate_url")
        self.assertEqual(state.seen_urls, {"https://m.facebook.com/reel/1234567"})

    def test_missing_url(self) -> None:
        state = CrawlState(max_results=10)
        verdict = admit(_item(None), state)
        self.assertEqual(verdict.reason, "missing_url")
        self.assertEqual(state.seen_urls, set())

    def test_rejected_by_date_is_not_marked_seen(self) -> None:
        state = CrawlState(max_results=10, start_epoch=_DAY)
        verdict = admit(_item("https://m.facebook.com/reel/1234567", _DAY - 5), state)
        self.assertEqual(verdict.reason, "before_start_date")
        self.assertEqual(state.seen_urls, set())

    def test_crawl_state_rejects_non_positive_limit(self) -> None:
        with self.assertRaises(ValueError):
            CrawlState(max_results=0)

    def test_target_reached(self) -> None:
        state = CrawlState(max_results=2)
        self.assertFalse(state.target_reached)
        state.total_emitted = 2
        self.assertTrue(state.target_reached)


if __name__ == "__main__":
    unittest.main()
