from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from fb_search.errors import SinkError
from fb_search.retry import RetryConfig, RetryEvent
from fb_search.sink import ApifyDatasetSink, JsonlSink, MemorySink


class _FakeDatasetClient:
    def __init__(self, failures: list[BaseException]) -> None:
        self._failures = list(failures)
        self.pushed: list[Any] = []
        self.calls = 0

    def push_items(self, items: Any) -> None:
        self.calls += 1
        if self._failures:
            raise self._failures.pop(0)
        self.pushed.append(items)


class _FakeApifyClient:
    def __init__(self, failures: list[BaseException] | None = None) -> None:
        self.dataset_ids: list[str] = []
        self._dataset_client = _FakeDatasetClient(failures or [])

    def dataset(self, dataset_id: str) -> _FakeDatasetClient:
        self.dataset_ids.append(dataset_id)
        return self._dataset_client


_FAST_RETRY = RetryConfig(max_attempts=3, base_delay_seconds=0.0, max_delay_seconds=0.0, jitter_ratio=0.0)


class TestJsonlSink(unittest.TestCase):
    def test_writes_one_object_per_line(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "out" / "posts.jsonl"
            with JsonlSink(path) as sink:
                sink.push({"url": "https://m.facebook.com/reel/1234567", "message": "héllo"})
                sink.push({"_summary": {"total": 1}})
                self.assertEqual(sink.count, 2)

            lines = path.read_text(encoding="utf-8").splitlines()
            self.assertEqual(len(lines), 2)
            self.assertEqual(json.loads(lines[0])["message"], "héllo")
            self.assertEqual(json.loads(lines[1]), {"_summary": {"total": 1}})

    def test_overwrite_only_on_first_open(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "posts.jsonl"
            path.write_text('{"old": true}\n', encoding="utf-8")

            sink = JsonlSink(path, overwrite=True)
            sink.push({"n": 1})
            sink.close()
            sink.push({"n": 2})
            sink.close()

            rows = [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines()]
            self.assertEqual(rows, [{"n": 1}, {"n": 2}])

    def test_append_mode(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "posts.jsonl"
            path.write_text('{"old": true}\n', encoding="utf-8")
            with JsonlSink(path, overwrite=False) as sink:
                sink.push({"n": 1})
            self.assertEqual(len(path.read_text(encoding="utf-8").splitlines()), 2)

    def test_unwritable_path(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            blocker = Path(td) / "file"
            blocker.write_text("x", encoding="utf-8")
            with self.assertRaises(SinkError):
                JsonlSink(blocker / "posts.jsonl").push({"n": 1})


class TestMemorySink(unittest.TestCase):
    def test_copies_records(self) -> None:
        sink = MemorySink()
        record = {"a": 1}
        sink.push(record)
        record["a"] = 2
        self.assertEqual(sink.records, [{"a": 1}])


class TestApifyDatasetSink(unittest.TestCase):
    def test_push_one_item_per_call(self) -> None:
        fake = _FakeApifyClient()
        sink = ApifyDatasetSink("token", "ds_1", client=fake, retry=_FAST_RETRY)

        sink.push({"url": "u1"})
        sink.push({"url": "u2"})

        self.assertEqual(fake.dataset_ids, ["ds_1", "ds_1"])
        self.assertEqual(fake._dataset_client.pushed, [{"url": "u1"}, {"url": "u2"}])
        self.assertEqual(sink.count, 2)

    def test_retries_transient_failures(self) -> None:
        fake = _FakeApifyClient(failures=[ConnectionError("reset")])
        events: list[RetryEvent] = []
        sink = ApifyDatasetSink(
            "token",
            "ds_1",
            client=fake,
            retry=_FAST_RETRY,
            on_retry=events.append,
            sleep_fn=lambda s: None,
        )

        sink.push({"url": "u1"})

        self.assertEqual(fake._dataset_client.calls, 2)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].reason, "network_error")

    def test_non_retryable_failure_is_wrapped(self) -> None:
        fake = _FakeApifyClient(failures=[ValueError("bad payload")])
        sink = ApifyDatasetSink("token", "ds_1", client=fake, retry=_FAST_RETRY, sleep_fn=lambda s: None)

        with self.assertRaises(SinkError):
            sink.push({"url": "u1"})
        self.assertEqual(fake._dataset_client.calls, 1)
        self.assertEqual(sink.count, 0)

    def test_requires_dataset_id(self) -> None:
        with self.assertRaises(SinkError):
            ApifyDatasetSink("token", "  ", client=_FakeApifyClient())


if __name__ == "__main__":
    unittest.main()
