# services/booking-service/src/tests/unit/test_locks.py
"""
Unit Tests for Per-Key Locks
"""

import threading
import time
import uuid

from apps.core.locks import KeyedLockRegistry


class TestKeyedLockRegistry:
    """Tests for KeyedLockRegistry."""

    def setup_method(self):
        self.registry = KeyedLockRegistry('test')

    def test_same_key_same_lock(self):
        assert self.registry.get('a') is self.registry.get('a')
        assert self.registry.get('a') is not self.registry.get('b')
        assert len(self.registry) == 2

    def test_uuid_and_string_keys_match(self):
        key = uuid.uuid4()
        assert self.registry.get(key) is self.registry.get(str(key))

    def test_lock_is_reentrant(self):
        with self.registry.hold('a'):
            with self.registry.hold('a'):
                pass

    def test_same_key_serializes(self):
        events = []

        def worker(name):
            with self.registry.hold('vehicle'):
                events.append(('in', name))
                time.sleep(0.05)
                events.append(('out', name))

        threads = [threading.Thread(target=worker, args=(n,)) for n in ('a', 'b')]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert events[0][0] == 'in'
        assert events[1] == ('out', events[0][1])
        assert events[2][0] == 'in'
        assert events[3] == ('out', events[2][1])

    def test_different_keys_do_not_block(self):
        other_entered = threading.Event()

        def other():
            with self.registry.hold('vehicle-b'):
                other_entered.set()

        with self.registry.hold('vehicle-a'):
            thread = threading.Thread(target=other)
            thread.start()
            assert other_entered.wait(timeout=2)
        thread.join()
