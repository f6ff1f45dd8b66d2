from conftest import FakeClock
from sketchstudio.notifications import NO_TIMEOUT, NotificationCenter


def make_center():
    clock = FakeClock()
    return clock, NotificationCenter(timeout=2.0, grace=0.5, clock=clock)


def test_notification_closes_then_disappears():
    clock, center = make_center()
    note = center.add("Sketch saved.")

    clock.advance(1.9)
    center.tick()
    assert center.messages == ["Sketch saved."]

    clock.advance(0.2)
    center.tick()
    assert center.find(note.id).closing
    assert center.messages == []

    clock.advance(0.5)
    center.tick()
    assert center.items == []


def test_early_close_is_not_resurrected_by_timer():
    clock, center = make_center()
    note = center.add("Hello")

    clock.advance(0.1)
    center.close(note.id)
    clock.advance(0.5)
    center.tick()
    assert center.find(note.id) is None

    # the original auto-dismiss deadline passes afterwards
    clock.advance(5)
    center.tick()
    assert center.items == []


def test_close_twice_is_harmless():
    clock, center = make_center()
    note = center.add("Hello")
    center.close(note.id)
    center.close(note.id)
    clock.advance(0.5)
    center.tick()
    center.close(note.id)
    assert center.items == []


def test_no_timeout_stays_until_closed():
    clock, center = make_center()
    center.add("Sticky", timeout=NO_TIMEOUT)
    clock.advance(60)
    center.tick()
    assert center.messages == ["Sticky"]


def test_keyed_notification_replaces_previous():
    clock, center = make_center()
    for index in range(10):
        center.add(f"state {index}", key="presence")
    center.add("other")

    assert center.messages == ["state 9", "other"]
    clock.advance(3)
    center.tick()
    clock.advance(1)
    center.tick()
    assert center.items == []


def test_ids_are_unique():
    _, center = make_center()
    ids = [center.add(str(index)).id for index in range(100)]
    assert len(set(ids)) == 100
