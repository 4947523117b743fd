"""
Tests for per-stage exclusive sections.
"""
import threading
import time

from match_scheduler.utils.stage_locks import stage_lock


class TestStageLock:
    def test_reentrant_in_same_thread(self):
        with stage_lock(1):
            with stage_lock(1):
                pass

    def test_same_stage_serializes(self):
        events = []

        def worker(tag):
            with stage_lock(42):
                events.append(f"{tag}-in")
                time.sleep(0.02)
                events.append(f"{tag}-out")

        threads = [threading.Thread(target=worker, args=(t,)) for t in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Sections never interleave
        assert events[0].split("-")[0] == events[1].split("-")[0]
        assert events[2].split("-")[0] == events[3].split("-")[0]

    def test_different_stages_do_not_block(self):
        acquired = threading.Event()

        def other():
            with stage_lock(8):
                acquired.set()

        with stage_lock(7):
            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(timeout=1.0)
            t.join()
