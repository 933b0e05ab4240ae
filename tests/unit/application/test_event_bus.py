"""
Unit tests for EventBus.
"""

import threading
from datetime import datetime

from narration.application.event_bus import EventBus
from narration.domain.events import JobPausedEvent, JobStartedEvent


def _started(job_id="j1"):
    return JobStartedEvent(aggregate_id=job_id, occurred_at=datetime.utcnow(), total_items=1)


def _paused(job_id="j1"):
    return JobPausedEvent(
        aggregate_id=job_id, occurred_at=datetime.utcnow(), completed_items=0, failed_items=0
    )


def test_dispatches_by_event_class():
    bus = EventBus()
    started, paused = [], []
    bus.subscribe(JobStartedEvent, started.append)
    bus.subscribe(JobPausedEvent, paused.append)

    bus.publish(_started())

    assert len(started) == 1
    assert paused == []


def test_typed_handlers_run_before_wildcards_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe_all(lambda e: calls.append("wildcard"))
    bus.subscribe(JobStartedEvent, lambda e: calls.append("first"))
    bus.subscribe(JobStartedEvent, lambda e: calls.append("second"))

    bus.publish(_started())

    assert calls == ["first", "second", "wildcard"]


def test_failing_handler_does_not_stop_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("handler bug")

    bus.subscribe(JobStartedEvent, broken)
    bus.subscribe(JobStartedEvent, received.append)

    bus.publish(_started())

    assert len(received) == 1


def test_unsubscribe():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(JobStartedEvent, received.append)
    unsubscribe_all = bus.subscribe_all(received.append)

    unsubscribe()
    unsubscribe_all()
    bus.publish(_started())

    assert received == []
    assert bus.subscription_count() == 0


def test_unsubscribe_removes_only_its_own_registration():
    class Recorder:
        def __init__(self, calls, name):
            self.calls = calls
            self.name = name

        def handle(self, event):
            self.calls.append(self.name)

    bus = EventBus()
    calls = []
    first, second = Recorder(calls, "first"), Recorder(calls, "second")
    bus.subscribe(JobStartedEvent, first.handle)
    bus.subscribe(JobStartedEvent, second.handle)
    unsubscribe_again = bus.subscribe(JobStartedEvent, first.handle)
    bus.subscribe_all(first.handle)
    unsubscribe_wildcard_again = bus.subscribe_all(first.handle)

    unsubscribe_again()
    unsubscribe_wildcard_again()
    bus.publish(_started())

    assert calls == ["first", "second", "first"]
    assert bus.subscription_count(JobStartedEvent) == 2


def test_subscription_count():
    bus = EventBus()
    bus.subscribe(JobStartedEvent, lambda e: None)
    bus.subscribe(JobPausedEvent, lambda e: None)
    bus.subscribe_all(lambda e: None)

    assert bus.subscription_count(JobStartedEvent) == 1
    assert bus.subscription_count() == 3

    bus.clear()
    assert bus.subscription_count() == 0


def test_publish_without_handlers_is_a_no_op():
    EventBus().publish(_paused())


def test_concurrent_publish_delivers_every_event():
    bus = EventBus()
    received = []
    lock = threading.Lock()

    def handler(event):
        with lock:
            received.append(event.aggregate_id)

    bus.subscribe(JobStartedEvent, handler)
    threads = [
        threading.Thread(target=lambda n=n: bus.publish(_started(f"j{n}"))) for n in range(20)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(received) == sorted(f"j{n}" for n in range(20))
