"""Tests for keyed locks and deadlines."""

import threading
import time

import pytest

from library_circulation.services import Deadline, KeyedLockRegistry
from library_circulation.services.errors import DeadlineExceeded


class TestDeadline:
    def test_remaining_and_expiry(self):
        deadline = Deadline.after(60.0, "borrow")

        assert 0 < deadline.remaining() <= 60.0
        assert deadline.expired is False
        deadline.check()

    def test_zero_timeout_is_expired(self):
        deadline = Deadline.after(0, "borrow")

        assert deadline.remaining() == 0.0
        with pytest.raises(DeadlineExceeded, match="borrow"):
            deadline.check()


class TestKeyedLockRegistry:
    def test_same_key_is_exclusive(self):
        registry = KeyedLockRegistry()
        held = threading.Event()
        release = threading.Event()

        def holder():
            with registry.hold(["book:1"], Deadline.after(5.0, "holder")):
                held.set()
                release.wait(5.0)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5.0)
        try:
            with pytest.raises(DeadlineExceeded):
                with registry.hold(["book:1"], Deadline.after(0.05, "waiter")):
                    pass
        finally:
            release.set()
            thread.join()

    def test_different_keys_do_not_block(self):
        registry = KeyedLockRegistry()

        with registry.hold(["book:1"], Deadline.after(1.0, "first")):
            with registry.hold(["book:2"], Deadline.after(0.05, "second")):
                pass

    def test_locks_released_after_failure(self):
        registry = KeyedLockRegistry()

        with pytest.raises(RuntimeError):
            with registry.hold(["book:1", "member:1"], Deadline.after(1.0, "op")):
                raise RuntimeError("boom")

        with registry.hold(["member:1", "book:1"], Deadline.after(0.05, "op")):
            pass

    def test_idle_keys_are_evicted(self):
        registry = KeyedLockRegistry()

        with registry.hold(["book:1", "member:1"], Deadline.after(1.0, "op")):
            assert len(registry) == 2
        assert len(registry) == 0

        for n in range(100):
            with registry.hold([f"email:member{n}@library.org"], Deadline.after(1.0, "op")):
                pass
        assert len(registry) == 0

    def test_timed_out_waiter_is_evicted(self):
        registry = KeyedLockRegistry()

        with registry.hold(["book:1"], Deadline.after(1.0, "holder")):
            with pytest.raises(DeadlineExceeded):
                with registry.hold(["book:1", "member:1"], Deadline.after(0.05, "waiter")):
                    pass
            assert len(registry) == 1
        assert len(registry) == 0

    def test_partial_acquisition_is_rolled_back(self):
        registry = KeyedLockRegistry()

        with registry.hold(["member:1"], Deadline.after(1.0, "outer")):
            with pytest.raises(DeadlineExceeded):
                # "book:1" sorts first and is taken, then "member:1" times out
                with registry.hold(["member:1", "book:1"], Deadline.after(0.05, "inner")):
                    pass

        with registry.hold(["book:1"], Deadline.after(0.05, "after")):
            pass

    def test_opposite_orders_do_not_deadlock(self):
        registry = KeyedLockRegistry()
        errors = []

        def worker(keys):
            try:
                for _ in range(50):
                    with registry.hold(keys, Deadline.after(5.0, "worker")):
                        time.sleep(0)
            except DeadlineExceeded as e:
                errors.append(e)

        threads = [
            threading.Thread(target=worker, args=(["book:1", "member:1"],)),
            threading.Thread(target=worker, args=(["member:1", "book:1"],)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
