"""Tests for typing presence and auto-scroll state."""

from devcollab.client.presence import AutoScrollPolicy, TypingIndicator


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestTypingIndicator:
    def test_expires_after_timeout(self):
        clock = FakeClock()
        typing = TypingIndicator(timeout=3.0, clock=clock)

        typing.mark("Alice")
        clock.now += 2.9
        assert typing.active() == ["Alice"]

        clock.now += 0.2
        assert typing.active() == []

    def test_new_event_extends_presence(self):
        clock = FakeClock()
        typing = TypingIndicator(timeout=3.0, clock=clock)

        typing.mark("Alice")
        clock.now += 2.0
        typing.mark("Alice")
        clock.now += 2.0

        assert typing.active() == ["Alice"]

    def test_clear_and_sorting(self):
        typing = TypingIndicator(clock=FakeClock())
        typing.mark("Bob")
        typing.mark("Alice")
        typing.mark("Carol")

        typing.clear("Carol")
        typing.clear("nobody")

        assert typing.active() == ["Alice", "Bob"]


class TestAutoScrollPolicy:
    def test_starts_at_bottom(self):
        assert AutoScrollPolicy().should_scroll_on_new_message() is True

    def test_near_bottom_within_threshold(self):
        policy = AutoScrollPolicy(threshold=50)

        assert policy.update(scroll_top=551, scroll_height=1000, client_height=400) is True
        assert policy.update(scroll_top=550, scroll_height=1000, client_height=400) is False
        assert policy.should_scroll_on_new_message() is False

    def test_returning_to_bottom_resumes(self):
        policy = AutoScrollPolicy()
        policy.update(0, 1000, 400)

        policy.update(600, 1000, 400)

        assert policy.should_scroll_on_new_message() is True
