"""Tests for queue administration: status, requeue, cleanup."""

import os
import time


def _put(queue, directory, name, text="{}", age_seconds=None):
    path = queue.base_path / directory / name
    path.write_text(text)
    if age_seconds is not None:
        old = time.time() - age_seconds
        os.utime(path, (old, old))
    return path


class TestQueueStatus:
    def test_counts_per_directory(self, queue):
        _put(queue, "pending", "a.json")
        _put(queue, "pending", "b.json")
        _put(queue, "failed", "c.json")
        _put(queue, "success", "d.json")
        _put(queue, "processing", "e.json")
        _put(queue, "processing", "e.json.lock")

        status = queue.get_queue_status()
        assert status.pending_count == 2
        assert status.processing_count == 1
        assert status.failed_count == 1
        assert status.success_count == 1
        assert status.is_running is False

    def test_empty(self, queue):
        status = queue.get_queue_status()
        assert (status.pending_count, status.processing_count,
                status.failed_count, status.success_count) == (0, 0, 0, 0)


class TestRetryFailed:
    def test_moves_all_failed_to_pending(self, queue):
        _put(queue, "failed", "a.json")
        _put(queue, "failed", "b.json")

        assert queue.retry_failed_submissions() == 2
        status = queue.get_queue_status()
        assert status.failed_count == 0
        assert status.pending_count == 2

    def test_nothing_to_retry(self, queue):
        assert queue.retry_failed_submissions() == 0

    def test_name_collision_keeps_both(self, queue):
        _put(queue, "pending", "a.json", "pending copy")
        _put(queue, "failed", "a.json", "failed copy")

        assert queue.retry_failed_submissions() == 1
        assert queue.get_queue_status().pending_count == 2


class TestCleanupOldSuccess:
    def test_removes_only_old_files(self, queue):
        old = _put(queue, "success", "old.json", age_seconds=10 * 86400)
        new = _put(queue, "success", "new.json", age_seconds=86400)

        assert queue.cleanup_old_success_files(7) == 1
        assert not old.exists()
        assert new.exists()

    def test_other_directories_untouched(self, queue):
        pending = _put(queue, "pending", "p.json", age_seconds=30 * 86400)
        assert queue.cleanup_old_success_files(1) == 0
        assert pending.exists()


class TestClearAll:
    def test_removes_everything(self, queue):
        for directory in ("pending", "processing", "success", "failed"):
            _put(queue, directory, f"{directory}.json")

        assert queue.clear_all_queues() == 4
        status = queue.get_queue_status()
        assert status.pending_count == status.processing_count == 0
        assert status.failed_count == status.success_count == 0

    def test_directories_survive(self, queue):
        queue.clear_all_queues()
        for directory in ("pending", "processing", "success", "failed"):
            assert (queue.base_path / directory).is_dir()


class TestCleanupDuplicates:
    def test_keeps_newest_copy(self, queue):
        older = _put(queue, "pending", "dup.json", "older", age_seconds=600)
        newer = _put(queue, "success", "dup.json", "newer", age_seconds=10)
        unique = _put(queue, "failed", "unique.json")

        assert queue.cleanup_duplicate_files() == 1
        assert not older.exists()
        assert newer.exists()
        assert unique.exists()

    def test_three_copies_leave_one(self, queue):
        _put(queue, "pending", "dup.json", age_seconds=300)
        _put(queue, "failed", "dup.json", age_seconds=200)
        newest = _put(queue, "success", "dup.json", age_seconds=100)

        assert queue.cleanup_duplicate_files() == 2
        assert newest.exists()

    def test_no_duplicates(self, queue):
        _put(queue, "pending", "a.json")
        _put(queue, "success", "b.json")
        assert queue.cleanup_duplicate_files() == 0
