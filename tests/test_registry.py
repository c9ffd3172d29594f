import threading
from unittest import TestCase

from quickdef.registry import JobKey, JobRegistry


class TestJobRegistry(TestCase):
    def setUp(self):
        self.jobs = JobRegistry()
        self.key = JobKey(1, 'flake8')

    def test_empty_registry_has_no_current_job(self):
        self.assertIsNone(self.jobs.get(self.key))
        self.assertFalse(self.jobs.is_current(self.key, object()))
        self.assertEqual(0, len(self.jobs))

    def test_set_returns_the_replaced_job(self):
        first, second = object(), object()

        self.assertIsNone(self.jobs.set(self.key, first))
        self.assertIs(first, self.jobs.set(self.key, second))
        self.assertIs(second, self.jobs.get(self.key))

    def test_only_the_latest_job_is_current(self):
        first, second = object(), object()
        self.jobs.set(self.key, first)
        self.jobs.set(self.key, second)

        self.assertFalse(self.jobs.is_current(self.key, first))
        self.assertTrue(self.jobs.is_current(self.key, second))

    def test_setting_none_clears_the_key(self):
        job = object()
        self.jobs.set(self.key, job)

        self.assertIs(job, self.jobs.set(self.key, None))
        self.assertIsNone(self.jobs.get(self.key))
        self.assertFalse(self.jobs.is_current(self.key, job))
        self.assertEqual(0, len(self.jobs))

    def test_keys_are_independent(self):
        a, b = object(), object()
        self.jobs.set(JobKey(1, 'flake8'), a)
        self.jobs.set(JobKey(1, 'mypy'), b)
        self.jobs.set(JobKey(2, 'flake8'), b)

        self.assertTrue(self.jobs.is_current(JobKey(1, 'flake8'), a))
        self.assertTrue(self.jobs.is_current(JobKey(1, 'mypy'), b))
        self.assertEqual(3, len(self.jobs))
        self.assertCountEqual([a, b, b], self.jobs.running())

    def test_concurrent_updates_keep_one_current_job(self):
        jobs = [object() for _ in range(200)]
        barrier = threading.Barrier(4)
        replaced = []
        lock = threading.Lock()

        def worker(chunk):
            barrier.wait()
            for job in chunk:
                previous = self.jobs.set(self.key, job)
                with lock:
                    replaced.append(previous)

        threads = [
            threading.Thread(target=worker, args=(jobs[i::4],))
            for i in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        current = self.jobs.get(self.key)
        # Every job but the final one has been replaced exactly once.
        self.assertEqual(
            set(map(id, jobs)) - {id(current)},
            set(id(job) for job in replaced if job is not None)
        )
        self.assertEqual(1, replaced.count(None))
        self.assertEqual(1, len(self.jobs))
