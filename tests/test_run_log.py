from __future__ import annotations

import io
import json
import tempfile
import unittest
from pathlib import Path

from fb_search.run_log import RunLogger


class TestRunLogger(unittest.TestCase):
    def test_writes_jsonl_records(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "logs" / "run.log"
            with RunLogger.open(path, run_id="run-1") as log:
                log.set_identity("session_abc")
                log.info("page_loaded", url="https://m.facebook.com/", status=200)
                log.warning("cookie_audit", detail="xs expired")

            rows = [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines()]

        self.assertEqual([r["event"] for r in rows], ["page_loaded", "cookie_audit"])
        self.assertEqual(rows[0]["run_id"], "run-1")
        self.assertEqual(rows[0]["identity"], "session_abc")
        self.assertEqual(rows[0]["url"], "https://m.facebook.com/")
        self.assertEqual(rows[0]["data"], {"status": 200})
        self.assertEqual(rows[1]["level"], "WARN")

    def test_exception_record_has_truncated_traceback(self) -> None:
        log = RunLogger(None)
        try:
            raise RuntimeError("x" * 5000)
        except RuntimeError as e:
            log.exception("run_failed", exc=e, query="q")

        rec = log.records[-1]
        self.assertEqual(rec["level"], "ERROR")
        self.assertEqual(rec["data"]["error"]["type"], "RuntimeError")
        self.assertLessEqual(len(rec["data"]["error"]["message"]), 2000)
        self.assertIn("Traceback", rec["data"]["error"]["traceback"])
        self.assertEqual(rec["data"]["query"], "q")

    def test_echo_only_warnings_and_errors(self) -> None:
        stream = io.StringIO()
        log = RunLogger(None, echo=stream)
        log.info("quiet")
        log.warning("loud", reason="blocked")
        log.error("louder")

        lines = stream.getvalue().splitlines()
        self.assertEqual(len(lines), 2)
        self.assertTrue(lines[0].startswith("WARN loud "))
        self.assertTrue(lines[1].startswith("ERROR louder "))
        self.assertEqual(log.events(), ["quiet", "loud", "louder"])

    def test_generated_run_id(self) -> None:
        self.assertEqual(len(RunLogger(None).run_id), 32)
        self.assertTrue(RunLogger(None, run_id="  ").run_id)


if __name__ == "__main__":
    unittest.main()
