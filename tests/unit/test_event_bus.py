from vidforge.domain.events import BatchProgress, RunStarted
from vidforge.infrastructure.event_bus import EventBus

def test_publish_reaches_only_matching_subscribers():
    bus = EventBus()
    started = []
    progress = []
    bus.subscribe(RunStarted, started.append)
    bus.subscribe(BatchProgress, progress.append)

    event = RunStarted(run_id="r1", input_path="clip.mp4")
    bus.publish(event)

    assert started == [event]
    assert progress == []

def test_publish_without_subscribers():
    EventBus().publish(BatchProgress(total=1, finished=0, succeeded=0, failed=0))

def test_subscribe_during_publish_does_not_affect_current_delivery():
    bus = EventBus()
    calls = []

    def late(event):
        calls.append("late")

    def first(event):
        calls.append("first")
        bus.subscribe(RunStarted, late)

    bus.subscribe(RunStarted, first)
    bus.publish(RunStarted(run_id="r1", input_path="a.mp4"))
    assert calls == ["first"]

    bus.publish(RunStarted(run_id="r2", input_path="b.mp4"))
    assert calls == ["first", "first", "late"]
